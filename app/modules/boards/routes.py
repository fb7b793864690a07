from fastapi import APIRouter, Depends
from app.database.supabase_client import get_service_supabase
from app.modules.boards.schemas import (
    BoardCreate, BoardSettingsUpdate, BoardResponse, BoardMemberAdd, BoardMemberRoleUpdate,
    BoardMemberResponse, InviteLinkResponse, CommentPermissionResponse
)
from app.modules.boards.service import BoardService
from app.modules.rbac.authorizer import AccessDecision, BOARD_ADMIN_ROLES, BOARD_MEMBER_ROLES, IdSource
from app.modules.rbac.container import get_engine, get_invalidation_hook
from app.modules.rbac.engine import ResolutionEngine
from app.modules.rbac.invalidation import InvalidationHook
from app.modules.rbac.models import Permission
from app.core.dependencies import (
    check_board_access, get_current_user_id, require_board_permission,
    require_board_role, require_workspace_permission
)
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/boards", tags=["boards"])


def get_board_service(
    supabase: Client = Depends(get_service_supabase),
    engine: ResolutionEngine = Depends(get_engine),
    hook: InvalidationHook = Depends(get_invalidation_hook)
) -> BoardService:
    return BoardService(supabase, engine, hook)


@router.post("", response_model=BoardResponse, status_code=201)
async def create_board(
    board_data: BoardCreate,
    current_user: Dict = Depends(get_current_user_id),
    decision: AccessDecision = Depends(require_workspace_permission(
        Permission.BOARDS_CREATE, id_field="workspace_id", id_source=IdSource.BODY
    )),
    service: BoardService = Depends(get_board_service)
):
    """Create a board (requires boards:create in the target workspace)"""
    return service.create_board(board_data, current_user["id"])


@router.post("/join/{invite_token}", response_model=BoardMemberResponse)
async def join_board(
    invite_token: str,
    current_user: Dict = Depends(get_current_user_id),
    service: BoardService = Depends(get_board_service)
):
    """Join a board through its invite link"""
    return service.join_by_link(invite_token, current_user["id"])


@router.patch("/{board_id}", response_model=BoardResponse)
async def update_board(
    board_id: str,
    settings_data: BoardSettingsUpdate,
    decision: AccessDecision = Depends(require_board_permission(Permission.BOARDS_UPDATE)),
    service: BoardService = Depends(get_board_service)
):
    """Update board settings (requires boards:update)"""
    return service.update_board_settings(board_id, settings_data)


@router.delete("/{board_id}", status_code=204)
async def delete_board(
    board_id: str,
    decision: AccessDecision = Depends(require_board_permission(Permission.BOARDS_DELETE)),
    service: BoardService = Depends(get_board_service)
):
    """Delete a board (requires boards:delete)"""
    service.delete_board(board_id)
    return None


@router.get("/{board_id}/members", response_model=List[BoardMemberResponse])
async def list_members(
    board_id: str,
    decision: AccessDecision = Depends(require_board_permission(Permission.MEMBERS_READ)),
    service: BoardService = Depends(get_board_service)
):
    """List board members"""
    return service.list_members(board_id)


@router.post("/{board_id}/members", response_model=BoardMemberResponse, status_code=201)
async def add_member(
    board_id: str,
    member_data: BoardMemberAdd,
    decision: AccessDecision = Depends(require_board_role(BOARD_MEMBER_ROLES)),
    service: BoardService = Depends(get_board_service)
):
    """Add a member (admins, or any member when the board allows it)"""
    return service.add_member(board_id, member_data, decision.user)


@router.patch("/{board_id}/members/{user_id}", response_model=BoardMemberResponse)
async def update_member_role(
    board_id: str,
    user_id: str,
    role_data: BoardMemberRoleUpdate,
    decision: AccessDecision = Depends(require_board_role(BOARD_ADMIN_ROLES)),
    service: BoardService = Depends(get_board_service)
):
    """Change a member's board role (board admins and owners)"""
    return service.update_member_role(board_id, user_id, role_data.role, decision.user)


@router.delete("/{board_id}/members/{user_id}", status_code=204)
async def remove_member(
    board_id: str,
    user_id: str,
    decision: AccessDecision = Depends(require_board_permission(Permission.MEMBERS_READ)),
    service: BoardService = Depends(get_board_service)
):
    """Remove a member, or leave the board when removing yourself"""
    service.remove_member(board_id, user_id, decision.user)
    return None


@router.post("/{board_id}/invite-link", response_model=InviteLinkResponse, status_code=201)
async def create_invite_link(
    board_id: str,
    decision: AccessDecision = Depends(require_board_role(BOARD_MEMBER_ROLES)),
    service: BoardService = Depends(get_board_service)
):
    """Create or rotate the invite link (observers cannot)"""
    return service.create_invite_link(board_id, decision.user)


@router.delete("/{board_id}/invite-link", status_code=204)
async def delete_invite_link(
    board_id: str,
    decision: AccessDecision = Depends(require_board_role(BOARD_MEMBER_ROLES)),
    service: BoardService = Depends(get_board_service)
):
    """Revoke the invite link"""
    service.delete_invite_link(board_id, decision.user)
    return None


@router.get("/{board_id}/comments/permission", response_model=CommentPermissionResponse)
async def get_comment_permission(
    board_id: str,
    decision: AccessDecision = Depends(check_board_access()),
    service: BoardService = Depends(get_board_service)
):
    """Whether the caller may comment on this board under its comment policy"""
    user_id = decision.user.user_id if decision.user else None
    return service.check_comment_permission(user_id, board_id)
