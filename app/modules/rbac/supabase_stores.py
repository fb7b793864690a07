import logging
from typing import Any, Dict, FrozenSet, Optional

from supabase import Client

from app.modules.rbac.exceptions import StoreUnavailableError
from app.modules.rbac.models import (
    BoardRecord, BoardVisibility, CommentPolicy, MembershipRecord, MemberManagePolicy,
    RoleRecord, WorkspaceRecord, WorkspaceVisibility
)
from app.modules.rbac.stores import CatalogStore, MembershipStore, ResourceStore

logger = logging.getLogger(__name__)


def _first(result) -> Optional[Dict[str, Any]]:
    return result.data[0] if result.data else None


def _membership_from_row(row: Dict[str, Any], scope_field: str) -> Optional[MembershipRecord]:
    role = row.get("roles") or {}
    if not role.get("name"):
        logger.warning(f"Membership {row.get('id')} has no resolvable role; ignoring it")
        return None
    return MembershipRecord(
        id=row["id"],
        user_id=row["user_id"],
        scope_id=row[scope_field],
        role_id=row["role_id"],
        role_name=role["name"],
    )


class SupabaseCatalogStore(CatalogStore):
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_role_by_name(self, name: str) -> Optional[RoleRecord]:
        try:
            result = self.supabase.table("roles")\
                .select("id, name, description")\
                .eq("name", name)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreUnavailableError(f"Failed to read role '{name}': {e}") from e
        row = _first(result)
        if not row:
            return None
        return RoleRecord(id=row["id"], name=row["name"], description=row.get("description"))

    def get_permissions_for_role(self, role_name: str) -> FrozenSet[str]:
        role = self.get_role_by_name(role_name)
        if role is None:
            return frozenset()
        try:
            result = self.supabase.table("role_permissions")\
                .select("permission_id, permissions(name)")\
                .eq("role_id", role.id)\
                .execute()
        except Exception as e:
            raise StoreUnavailableError(f"Failed to read permissions of role '{role_name}': {e}") from e
        names = set()
        for rp in result.data or []:
            if rp.get("permissions") and rp["permissions"].get("name"):
                names.add(rp["permissions"]["name"])
        return frozenset(names)


class SupabaseMembershipStore(MembershipStore):
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_workspace_membership(self, user_id: str, workspace_id: str) -> Optional[MembershipRecord]:
        try:
            result = self.supabase.table("workspace_members")\
                .select("id, user_id, workspace_id, role_id, roles(name)")\
                .eq("user_id", user_id)\
                .eq("workspace_id", workspace_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to read workspace membership of user {user_id} in {workspace_id}: {e}"
            ) from e
        row = _first(result)
        return _membership_from_row(row, "workspace_id") if row else None

    def get_board_membership(self, user_id: str, board_id: str) -> Optional[MembershipRecord]:
        try:
            result = self.supabase.table("board_members")\
                .select("id, user_id, board_id, role_id, roles(name)")\
                .eq("user_id", user_id)\
                .eq("board_id", board_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to read board membership of user {user_id} on {board_id}: {e}"
            ) from e
        row = _first(result)
        return _membership_from_row(row, "board_id") if row else None

    def get_workspace_id_for_board(self, board_id: str) -> Optional[str]:
        try:
            result = self.supabase.table("boards")\
                .select("workspace_id")\
                .eq("id", board_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreUnavailableError(f"Failed to read board {board_id}: {e}") from e
        row = _first(result)
        return row["workspace_id"] if row else None


class SupabaseResourceStore(ResourceStore):
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_workspace(self, workspace_id: str) -> Optional[WorkspaceRecord]:
        try:
            result = self.supabase.table("workspaces")\
                .select("id, visibility, is_archived")\
                .eq("id", workspace_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreUnavailableError(f"Failed to read workspace {workspace_id}: {e}") from e
        row = _first(result)
        if not row:
            return None
        return WorkspaceRecord(
            id=row["id"],
            visibility=WorkspaceVisibility(row.get("visibility") or "private"),
            is_archived=bool(row.get("is_archived")),
        )

    def get_board(self, board_id: str) -> Optional[BoardRecord]:
        try:
            result = self.supabase.table("boards")\
                .select("id, workspace_id, visibility, member_manage_policy, comment_policy, is_closed")\
                .eq("id", board_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreUnavailableError(f"Failed to read board {board_id}: {e}") from e
        row = _first(result)
        if not row:
            return None
        return BoardRecord(
            id=row["id"],
            workspace_id=row["workspace_id"],
            visibility=BoardVisibility(row.get("visibility") or "private"),
            member_manage_policy=MemberManagePolicy(row.get("member_manage_policy") or "admins_only"),
            comment_policy=CommentPolicy(row.get("comment_policy") or "members"),
            is_closed=bool(row.get("is_closed")),
        )

    def get_board_id_for_list(self, list_id: str) -> Optional[str]:
        try:
            result = self.supabase.table("lists")\
                .select("board_id")\
                .eq("id", list_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreUnavailableError(f"Failed to read list {list_id}: {e}") from e
        row = _first(result)
        return row["board_id"] if row else None

    def get_board_id_for_card(self, card_id: str) -> Optional[str]:
        try:
            result = self.supabase.table("cards")\
                .select("list_id, lists(board_id)")\
                .eq("id", card_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreUnavailableError(f"Failed to read card {card_id}: {e}") from e
        row = _first(result)
        if not row or not row.get("lists"):
            return None
        return row["lists"].get("board_id")
