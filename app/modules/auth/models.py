# Supabase Auth
# This module uses Supabase's built-in authentication system
# No custom tables are required - Supabase Auth handles:
# - User registration and login (auth.users table)
# - JWT token generation and validation

"""
Supabase Auth provides:
- auth.get_user() - Get current user from JWT token

The RBAC core only needs the user id; it never reads auth.users directly.
Memberships reference users by id (workspace_members.user_id, board_members.user_id).
"""
