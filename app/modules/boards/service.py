import logging
import secrets
from supabase import Client
from app.modules.boards.schemas import (
    BoardCreate, BoardSettingsUpdate, BoardResponse, BoardMemberAdd, BoardMemberResponse,
    InviteLinkResponse, CommentPermissionResponse
)
from app.modules.rbac.authorizer import BOARD_OWNER_ROLES, UserContext
from app.modules.rbac.engine import ROLE_TIERS, ResolutionEngine
from app.modules.rbac.exceptions import ResourceNotFoundError, StoreUnavailableError
from app.modules.rbac.invalidation import InvalidationHook, MembershipAction, MembershipChange
from app.modules.rbac.models import (
    BOARD_ROLES, BoardRecord, CommentPolicy, DenialReason, MemberManagePolicy,
    Permission, Role, RoleScope
)
from typing import Any, Dict, List, Optional
from fastapi import HTTPException

logger = logging.getLogger(__name__)

MEMBER_COLUMNS = "id, board_id, user_id, role_id, created_at, roles(name)"


def _member_response(row: Dict[str, Any]) -> BoardMemberResponse:
    return BoardMemberResponse(
        id=row["id"],
        board_id=row["board_id"],
        user_id=row["user_id"],
        role=(row.get("roles") or {}).get("name") or "",
        created_at=row.get("created_at"),
    )


def can_manage_members(board: BoardRecord, actor: UserContext) -> bool:
    """Apply the board's member manage policy to the caller's effective role"""
    if Permission.MEMBERS_INVITE.value in actor.permissions:
        return True
    if board.member_manage_policy == MemberManagePolicy.ALL_MEMBERS:
        role = Role.parse(actor.effective_role)
        return role is not None and ROLE_TIERS[role] >= ROLE_TIERS[Role.BOARD_MEMBER]
    return False


class BoardService:
    def __init__(self, supabase: Client, engine: ResolutionEngine, hook: InvalidationHook):
        self.supabase = supabase
        self.engine = engine
        self.hook = hook

    def _notify(self, action: MembershipAction, user_id: str, board_id: str):
        self.hook.membership_changed(MembershipChange(
            action=action,
            scope=RoleScope.BOARD,
            user_id=user_id,
            scope_id=board_id,
        ))

    def _role_id(self, role: Role) -> str:
        record = self.engine.catalog.get_role_by_name(role.value)
        if record is None:
            logger.error(f"Role '{role.value}' is missing from the catalog; run the seed script")
            raise HTTPException(status_code=500, detail=f"Role '{role.value}' is not configured")
        return record.id

    def _board(self, board_id: str) -> BoardRecord:
        try:
            board = self.engine.resources.get_board(board_id)
        except StoreUnavailableError as e:
            logger.error(f"Error reading board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to read board")
        if board is None:
            raise HTTPException(status_code=404, detail="Board not found")
        return board

    def _require_member_management(self, board: BoardRecord, actor: UserContext):
        if not can_manage_members(board, actor):
            logger.info(f"User {actor.user_id} may not manage members of board {board.id}")
            raise HTTPException(status_code=403, detail=DenialReason.INSUFFICIENT_PERMISSIONS.value)

    def _discard_board(self, board_id: str):
        try:
            self.supabase.table("boards").delete().eq("id", board_id).execute()
        except Exception as e:
            logger.error(f"Could not roll back board {board_id}; it has no owner: {e}")

    def create_board(self, board_data: BoardCreate, user_id: str) -> BoardResponse:
        """Create a board in a workspace; the creator becomes its board_owner"""
        try:
            workspace = self.engine.resources.get_workspace(board_data.workspace_id)
        except StoreUnavailableError as e:
            logger.error(f"Error reading workspace {board_data.workspace_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to read workspace")
        if workspace is None:
            raise HTTPException(status_code=404, detail="Workspace not found")
        if workspace.is_archived:
            raise HTTPException(status_code=400, detail="Cannot create a board in an archived workspace")

        try:
            owner_role_id = self._role_id(Role.BOARD_OWNER)
            result = self.supabase.table("boards").insert({
                "workspace_id": board_data.workspace_id,
                "name": board_data.name,
                "description": board_data.description,
                "visibility": board_data.visibility.value,
                "member_manage_policy": board_data.member_manage_policy.value,
                "comment_policy": board_data.comment_policy.value,
                "created_by": user_id
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create board")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating board in workspace {board_data.workspace_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to create board")
        board = result.data[0]

        try:
            self.supabase.table("board_members").insert({
                "board_id": board["id"],
                "user_id": user_id,
                "role_id": owner_role_id
            }).execute()
        except Exception as e:
            logger.error(f"Error adding creator {user_id} to board {board['id']}: {e}")
            self._discard_board(board["id"])
            raise HTTPException(status_code=503, detail="Failed to create board")

        self._notify(MembershipAction.CREATE, user_id, board["id"])
        logger.info(f"Board {board['id']} created by {user_id}")
        return BoardResponse(**board)

    def update_board_settings(self, board_id: str, settings_data: BoardSettingsUpdate) -> BoardResponse:
        """Update board name, visibility and policies"""
        update_data = settings_data.model_dump(exclude_none=True, mode="json")
        if not update_data:
            raise HTTPException(status_code=400, detail="No fields to update")
        try:
            result = self.supabase.table("boards")\
                .update(update_data)\
                .eq("id", board_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error updating board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to update board")
        if not result.data:
            raise HTTPException(status_code=404, detail="Board not found")
        return BoardResponse(**result.data[0])

    def _workspace_member_ids(self, workspace_id: str) -> List[str]:
        try:
            result = self.supabase.table("workspace_members")\
                .select("user_id")\
                .eq("workspace_id", workspace_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error listing members of workspace {workspace_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to read workspace members")
        return [row["user_id"] for row in result.data or []]

    def delete_board(self, board_id: str) -> bool:
        """
        Delete a board and its memberships, then drop the cached decisions of
        everyone who could reach it: board members and, through inheritance,
        members of the owning workspace.
        """
        board = self._board(board_id)
        member_ids = [m.user_id for m in self.list_members(board_id)]
        for user_id in self._workspace_member_ids(board.workspace_id):
            if user_id not in member_ids:
                member_ids.append(user_id)
        try:
            self.supabase.table("board_members")\
                .delete()\
                .eq("board_id", board_id)\
                .execute()

            result = self.supabase.table("boards")\
                .delete()\
                .eq("id", board_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error deleting board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to delete board")

        self.hook.board_deleted(board_id, member_ids)
        logger.info(f"Board {board_id} deleted; evicted {len(member_ids)} members")
        return len(result.data or []) > 0

    def get_member(self, board_id: str, user_id: str) -> Optional[BoardMemberResponse]:
        try:
            result = self.supabase.table("board_members")\
                .select(MEMBER_COLUMNS)\
                .eq("board_id", board_id)\
                .eq("user_id", user_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error reading member {user_id} of board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to read board members")
        return _member_response(result.data[0]) if result.data else None

    def list_members(self, board_id: str) -> List[BoardMemberResponse]:
        """List all members of a board"""
        try:
            result = self.supabase.table("board_members")\
                .select(MEMBER_COLUMNS)\
                .eq("board_id", board_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error listing members of board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to read board members")
        return [_member_response(row) for row in result.data or []]

    def _insert_member(self, board_id: str, user_id: str, role: Role) -> BoardMemberResponse:
        try:
            result = self.supabase.table("board_members").insert({
                "board_id": board_id,
                "user_id": user_id,
                "role_id": self._role_id(role)
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to add member")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error adding {user_id} to board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to add member")

        self._notify(MembershipAction.CREATE, user_id, board_id)
        return _member_response(dict(result.data[0], roles={"name": role.value}))

    def add_member(self, board_id: str, member_data: BoardMemberAdd, actor: UserContext) -> BoardMemberResponse:
        """Add a member with a board-scoped role, subject to the member manage policy"""
        if member_data.role not in BOARD_ROLES:
            raise HTTPException(status_code=400, detail=f"'{member_data.role.value}' is not a board role")
        board = self._board(board_id)
        self._require_member_management(board, actor)
        if member_data.role == Role.BOARD_OWNER and Role.parse(actor.effective_role) not in BOARD_OWNER_ROLES:
            raise HTTPException(status_code=403, detail=DenialReason.INSUFFICIENT_ROLE.value)
        if self.get_member(board_id, member_data.user_id):
            raise HTTPException(status_code=400, detail="User is already a member of this board")
        return self._insert_member(board_id, member_data.user_id, member_data.role)

    def update_member_role(self, board_id: str, user_id: str, role: Role, actor: UserContext) -> BoardMemberResponse:
        """Change a member's board role. Only an owner may grant or take away ownership."""
        if role not in BOARD_ROLES:
            raise HTTPException(status_code=400, detail=f"'{role.value}' is not a board role")
        member = self.get_member(board_id, user_id)
        if member is None:
            raise HTTPException(status_code=404, detail="Member not found")
        if member.role == role.value:
            raise HTTPException(status_code=400, detail=f"Member already has role '{role.value}'")
        touches_owner = Role.BOARD_OWNER.value in (member.role, role.value)
        if touches_owner and Role.parse(actor.effective_role) not in BOARD_OWNER_ROLES:
            raise HTTPException(status_code=403, detail=DenialReason.INSUFFICIENT_ROLE.value)

        try:
            self.supabase.table("board_members")\
                .update({"role_id": self._role_id(role)})\
                .eq("id", member.id)\
                .execute()
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating role of {user_id} on board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to update member role")

        self._notify(MembershipAction.ROLE_CHANGE, user_id, board_id)
        return member.model_copy(update={"role": role.value})

    def remove_member(self, board_id: str, user_id: str, actor: UserContext) -> bool:
        """Remove a member; anyone may leave, removing others needs members:remove"""
        member = self.get_member(board_id, user_id)
        if member is None:
            raise HTTPException(status_code=404, detail="Member not found")
        if user_id != actor.user_id:
            if Permission.MEMBERS_REMOVE.value not in actor.permissions:
                raise HTTPException(status_code=403, detail=DenialReason.INSUFFICIENT_PERMISSIONS.value)
            if member.role == Role.BOARD_OWNER.value:
                raise HTTPException(status_code=403, detail="The board owner cannot be removed by another member")

        try:
            self.supabase.table("board_members")\
                .delete()\
                .eq("id", member.id)\
                .execute()
        except Exception as e:
            logger.error(f"Error removing {user_id} from board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to remove member")

        self._notify(MembershipAction.DELETE, user_id, board_id)
        return True

    def create_invite_link(self, board_id: str, actor: UserContext) -> InviteLinkResponse:
        """Create (or rotate) the board's invite link"""
        board = self._board(board_id)
        self._require_member_management(board, actor)
        token = secrets.token_urlsafe(24)
        try:
            self.supabase.table("boards")\
                .update({"invite_token": token})\
                .eq("id", board_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error creating invite link for board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to create invite link")
        return InviteLinkResponse(board_id=board_id, invite_token=token)

    def delete_invite_link(self, board_id: str, actor: UserContext) -> bool:
        board = self._board(board_id)
        self._require_member_management(board, actor)
        try:
            self.supabase.table("boards")\
                .update({"invite_token": None})\
                .eq("id", board_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error deleting invite link of board {board_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to delete invite link")
        return True

    def join_by_link(self, invite_token: str, user_id: str) -> BoardMemberResponse:
        """Join a board through its invite link as board_member"""
        try:
            result = self.supabase.table("boards")\
                .select("id, is_closed")\
                .eq("invite_token", invite_token)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error resolving invite link: {e}")
            raise HTTPException(status_code=503, detail="Failed to resolve invite link")
        if not result.data:
            raise HTTPException(status_code=404, detail="Invite link is invalid or has been revoked")
        board = result.data[0]
        if board.get("is_closed"):
            raise HTTPException(status_code=400, detail="Board is closed")

        existing = self.get_member(board["id"], user_id)
        if existing:
            return existing
        return self._insert_member(board["id"], user_id, Role.BOARD_MEMBER)

    def check_comment_permission(self, user_id: Optional[str], board_id: str) -> CommentPermissionResponse:
        """Whether the caller may comment on cards of the board under its comment policy"""
        board = self._board(board_id)
        policy = board.comment_policy

        def answer(allowed: bool, reason: Optional[str] = None) -> CommentPermissionResponse:
            return CommentPermissionResponse(allowed=allowed, comment_policy=policy, reason=reason)

        if board.is_closed:
            return answer(False, "Board is closed")
        if policy == CommentPolicy.DISABLED:
            return answer(False, "Comments are disabled on this board")
        if not user_id:
            return answer(False, DenialReason.AUTHENTICATION_REQUIRED.value)

        try:
            if policy == CommentPolicy.ANYONE:
                result = self.engine.can_view_board(user_id, board_id)
                return answer(result.allowed, result.reason.value if result.reason else None)
            access = self.engine.get_board_access(user_id, board_id)
        except ResourceNotFoundError:
            raise HTTPException(status_code=404, detail="Board not found")
        except StoreUnavailableError as e:
            logger.error(f"Denying comment on board {board_id} for user {user_id}: {e}")
            return answer(False, DenialReason.ACCESS_DENIED.value)

        can_create = Permission.COMMENTS_CREATE.value in access.permissions
        if policy == CommentPolicy.WORKSPACE and access.workspace_role is not None:
            return answer(True)
        if access.effective_role is None:
            return answer(False, DenialReason.NOT_A_MEMBER.value)
        if not can_create:
            return answer(False, DenialReason.INSUFFICIENT_PERMISSIONS.value)
        return answer(True)
