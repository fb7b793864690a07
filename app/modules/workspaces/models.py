# Supabase tables: workspaces, workspace_members
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

workspaces:
- id: uuid (primary key)
- name: text (not null)
- description: text (nullable)
- visibility: text (not null, default: 'private') - values: private, public
- is_archived: bool (default: false)
- created_by: uuid (not null) - creator, becomes workspace_admin
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

workspace_members:
- id: uuid (primary key)
- workspace_id: uuid (foreign key to workspaces.id, not null)
- user_id: uuid (not null)
- role_id: uuid (foreign key to roles.id, not null) - a workspace-scoped role
- created_at: timestamp (default: now())
- unique constraint on (workspace_id, user_id)

Every insert, role update and delete on workspace_members is followed by a call
to the RBAC invalidation hook once the write has returned.
"""
