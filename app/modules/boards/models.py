# Supabase tables: boards, board_members
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

boards:
- id: uuid (primary key)
- workspace_id: uuid (foreign key to workspaces.id, not null)
- name: text (not null)
- description: text (nullable)
- visibility: text (not null, default: 'private') - values: private, workspace, public
- member_manage_policy: text (not null, default: 'admins_only') - values: admins_only, all_members
- comment_policy: text (not null, default: 'members') - values: disabled, members, workspace, anyone
- invite_token: text (nullable, unique) - set while an invite link is active
- is_closed: bool (default: false)
- created_by: uuid (not null) - creator, becomes board_owner
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

board_members:
- id: uuid (primary key)
- board_id: uuid (foreign key to boards.id, not null)
- user_id: uuid (not null)
- role_id: uuid (foreign key to roles.id, not null) - a board-scoped role
- created_at: timestamp (default: now())
- unique constraint on (board_id, user_id)

Membership rows are created on board creation (board_owner), member add and
invite link join, and destroyed on removal or board deletion. Each of these
writes is followed by a call to the RBAC invalidation hook.
"""
