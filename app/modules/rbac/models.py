# Supabase tables: roles, permissions, role_permissions, workspaces, workspace_members,
# boards, board_members, lists, cards
# This file documents the expected database schema and the in-process types the
# resolution engine works with. Actual reads are handled in supabase_stores.py

"""
Expected Supabase table structure (authorization-relevant columns only):

roles / permissions / role_permissions:
- same layout as seeded by app/scripts/seed_permissions_roles.py
- roles.name: e.g. "workspace_admin", "board_owner"
- permissions.name: e.g. "boards:update", "members:invite"

workspaces:
- id: uuid (primary key)
- visibility: text (not null, default: 'private') - values: private, public
- is_archived: bool (default: false)

workspace_members:
- id: uuid (primary key)
- user_id: uuid (not null)
- workspace_id: uuid (foreign key to workspaces.id, not null)
- role_id: uuid (foreign key to roles.id, not null)
- unique constraint on (user_id, workspace_id)

boards:
- id: uuid (primary key)
- workspace_id: uuid (foreign key to workspaces.id, not null)
- visibility: text (not null, default: 'private') - values: private, workspace, public
- member_manage_policy: text (default: 'admins_only') - values: admins_only, all_members
- comment_policy: text (default: 'members') - values: disabled, members, workspace, anyone
- invite_token: text (nullable)
- is_closed: bool (default: false)

board_members:
- id: uuid (primary key)
- user_id: uuid (not null)
- board_id: uuid (foreign key to boards.id, not null)
- role_id: uuid (foreign key to roles.id, not null)
- unique constraint on (user_id, board_id)

lists:
- id: uuid (primary key)
- board_id: uuid (foreign key to boards.id, not null)

cards:
- id: uuid (primary key)
- list_id: uuid (foreign key to lists.id, not null)
"""

import enum
from dataclasses import dataclass
from typing import Optional


class RoleScope(str, enum.Enum):
    WORKSPACE = "workspace"
    BOARD = "board"


class Role(str, enum.Enum):
    ADMIN = "admin"
    WORKSPACE_ADMIN = "workspace_admin"
    WORKSPACE_MODERATOR = "workspace_moderator"
    WORKSPACE_MEMBER = "workspace_member"
    WORKSPACE_OBSERVER = "workspace_observer"
    BOARD_OWNER = "board_owner"
    BOARD_ADMIN = "board_admin"
    BOARD_MEMBER = "board_member"
    BOARD_OBSERVER = "board_observer"

    @property
    def scope(self) -> RoleScope:
        # Naming convention: board_* roles are board-scoped
        if self.value.startswith("board_"):
            return RoleScope.BOARD
        return RoleScope.WORKSPACE

    @classmethod
    def parse(cls, name: Optional[str]) -> Optional["Role"]:
        """Map a role name read from a store onto the closed set, None if unknown"""
        if name is None:
            return None
        try:
            return cls(name)
        except ValueError:
            return None


WORKSPACE_ROLES = frozenset(r for r in Role if r.scope is RoleScope.WORKSPACE)
BOARD_ROLES = frozenset(r for r in Role if r.scope is RoleScope.BOARD)


class Permission(str, enum.Enum):
    BOARDS_CREATE = "boards:create"
    BOARDS_READ = "boards:read"
    BOARDS_UPDATE = "boards:update"
    BOARDS_DELETE = "boards:delete"
    BOARDS_MANAGE = "boards:manage"
    LISTS_CREATE = "lists:create"
    LISTS_READ = "lists:read"
    LISTS_UPDATE = "lists:update"
    LISTS_DELETE = "lists:delete"
    LISTS_ARCHIVE = "lists:archive"
    CARDS_CREATE = "cards:create"
    CARDS_READ = "cards:read"
    CARDS_UPDATE = "cards:update"
    CARDS_DELETE = "cards:delete"
    CARDS_ASSIGN = "cards:assign"
    CARDS_MOVE = "cards:move"
    CARDS_ARCHIVE = "cards:archive"
    COMMENTS_CREATE = "comments:create"
    COMMENTS_READ = "comments:read"
    COMMENTS_UPDATE = "comments:update"
    COMMENTS_DELETE = "comments:delete"
    COMMENTS_MODERATE = "comments:moderate"
    MEMBERS_INVITE = "members:invite"
    MEMBERS_REMOVE = "members:remove"
    MEMBERS_READ = "members:read"
    MEMBERS_MANAGE = "members:manage"
    LABELS_CREATE = "labels:create"
    LABELS_READ = "labels:read"
    LABELS_UPDATE = "labels:update"
    LABELS_DELETE = "labels:delete"
    CHECKLISTS_CREATE = "checklists:create"
    CHECKLISTS_READ = "checklists:read"
    CHECKLISTS_UPDATE = "checklists:update"
    CHECKLISTS_DELETE = "checklists:delete"
    ATTACHMENTS_CREATE = "attachments:create"
    ATTACHMENTS_READ = "attachments:read"
    ATTACHMENTS_DELETE = "attachments:delete"
    NOTIFICATIONS_READ = "notifications:read"
    NOTIFICATIONS_MANAGE = "notifications:manage"
    WORKSPACES_CREATE = "workspaces:create"
    WORKSPACES_READ = "workspaces:read"
    WORKSPACES_UPDATE = "workspaces:update"
    WORKSPACES_DELETE = "workspaces:delete"
    WORKSPACES_MANAGE = "workspaces:manage"
    USERS_READ = "users:read"
    USERS_UPDATE = "users:update"
    USERS_MANAGE = "users:manage"
    USERS_DELETE = "users:delete"
    REPORTS_READ = "reports:read"
    REPORTS_EXPORT = "reports:export"
    SYSTEM_ADMIN = "system:admin"
    SYSTEM_BACKUP = "system:backup"
    SYSTEM_MAINTENANCE = "system:maintenance"


class WorkspaceVisibility(str, enum.Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class BoardVisibility(str, enum.Enum):
    PRIVATE = "private"
    WORKSPACE = "workspace"
    PUBLIC = "public"


class MemberManagePolicy(str, enum.Enum):
    ADMINS_ONLY = "admins_only"
    ALL_MEMBERS = "all_members"


class CommentPolicy(str, enum.Enum):
    DISABLED = "disabled"
    MEMBERS = "members"
    WORKSPACE = "workspace"
    ANYONE = "anyone"


@dataclass(frozen=True)
class RoleRecord:
    id: str
    name: str
    description: Optional[str] = None


@dataclass(frozen=True)
class MembershipRecord:
    """A membership row with its role name already joined in"""

    id: str
    user_id: str
    scope_id: str
    role_id: str
    role_name: str

    @property
    def role(self) -> Optional[Role]:
        return Role.parse(self.role_name)


@dataclass(frozen=True)
class WorkspaceRecord:
    id: str
    visibility: WorkspaceVisibility = WorkspaceVisibility.PRIVATE
    is_archived: bool = False


@dataclass(frozen=True)
class BoardRecord:
    id: str
    workspace_id: str
    visibility: BoardVisibility = BoardVisibility.PRIVATE
    member_manage_policy: MemberManagePolicy = MemberManagePolicy.ADMINS_ONLY
    comment_policy: CommentPolicy = CommentPolicy.MEMBERS
    is_closed: bool = False


class DenialReason(str, enum.Enum):
    """Reason classes carried by a denied decision; callers map them to HTTP statuses"""

    AUTHENTICATION_REQUIRED = "Authentication required"
    NOT_A_MEMBER = "Not a member"
    INSUFFICIENT_ROLE = "Insufficient role privileges"
    INSUFFICIENT_PERMISSIONS = "Insufficient permissions"
    NOT_FOUND = "Resource not found"
    ACCESS_DENIED = "Access denied"
    MISSING_RESOURCE_ID = "Resource id required"

    @property
    def status_code(self) -> int:
        return _DENIAL_STATUS[self]


_DENIAL_STATUS = {
    DenialReason.AUTHENTICATION_REQUIRED: 401,
    DenialReason.NOT_A_MEMBER: 403,
    DenialReason.INSUFFICIENT_ROLE: 403,
    DenialReason.INSUFFICIENT_PERMISSIONS: 403,
    DenialReason.NOT_FOUND: 404,
    DenialReason.ACCESS_DENIED: 403,
    DenialReason.MISSING_RESOURCE_ID: 400,
}
