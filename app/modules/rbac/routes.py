from fastapi import APIRouter, Depends, Query
from app.config.permissions_config import get_permission_matrix
from app.core.dependencies import (
    check_board_access, check_workspace_access, get_current_user_id,
    require_card_permission, require_list_permission
)
from app.modules.rbac.authorizer import (
    AccessDecision, AuthorizationRule, Authorizer, ResourceType
)
from app.modules.rbac.container import get_authorizer
from app.modules.rbac.engine import ROLE_TIERS
from app.modules.rbac.models import Permission, Role
from app.modules.rbac.schemas import (
    AccessResponse, CatalogResponse, PermissionCheckResponse, PermissionEntry, RoleEntry
)
from typing import Dict

router = APIRouter(prefix="/rbac", tags=["rbac"])


def _access_response(decision: AccessDecision) -> AccessResponse:
    user = decision.user
    return AccessResponse(
        allowed=decision.allowed,
        resource_type=decision.resource_type.value,
        resource_id=decision.resource_id,
        board_id=decision.board_id,
        workspace_id=decision.workspace_id,
        effective_role=user.effective_role if user else None,
        board_role=user.board_role if user else None,
        workspace_role=user.workspace_role if user else None,
        is_board_member=user.is_board_member if user else False,
        is_workspace_member=user.is_workspace_member if user else False,
        permissions=sorted(user.permissions) if user else [],
    )


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(
    current_user: Dict = Depends(get_current_user_id),
):
    """Roles, their scope and tier, and the permissions each grants"""
    matrix = get_permission_matrix()
    roles = []
    for role in matrix["roles"]:
        parsed = Role(role["name"])
        roles.append(RoleEntry(
            name=role["name"],
            description=role.get("description"),
            scope=parsed.scope.value,
            tier=ROLE_TIERS[parsed],
            permissions=role["permissions"],
        ))
    return CatalogResponse(
        permissions=[PermissionEntry(**p) for p in matrix["permissions"]],
        roles=roles,
    )


@router.get("/boards/{board_id}/access", response_model=AccessResponse)
async def get_board_access(
    board_id: str,
    decision: AccessDecision = Depends(check_board_access()),
):
    """Whether the caller can view the board, and with which role and permissions"""
    return _access_response(decision)


@router.get("/boards/{board_id}/permissions/check", response_model=PermissionCheckResponse)
async def check_board_permission(
    board_id: str,
    permission: str = Query(..., description="Permission name, e.g. cards:create"),
    current_user: Dict = Depends(get_current_user_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Answer a single permission check without failing the request on denial"""
    rule = AuthorizationRule(
        resource_type=ResourceType.BOARD,
        id_field="board_id",
        permissions=(permission,),
    )
    decision = authorizer.decide(current_user["id"], rule, path_params={"board_id": board_id})
    return PermissionCheckResponse(
        allowed=decision.allowed,
        permission=permission,
        reason=decision.reason.value if decision.reason else None,
    )


@router.get("/workspaces/{workspace_id}/access", response_model=AccessResponse)
async def get_workspace_access(
    workspace_id: str,
    decision: AccessDecision = Depends(check_workspace_access()),
):
    """Whether the caller can view the workspace, and with which role and permissions"""
    return _access_response(decision)


@router.get("/lists/{list_id}/access", response_model=AccessResponse)
async def get_list_access(
    list_id: str,
    decision: AccessDecision = Depends(require_list_permission(Permission.LISTS_READ)),
):
    """Access on the board that owns the list"""
    return _access_response(decision)


@router.get("/cards/{card_id}/access", response_model=AccessResponse)
async def get_card_access(
    card_id: str,
    decision: AccessDecision = Depends(require_card_permission(Permission.CARDS_READ)),
):
    """Access on the board that owns the card"""
    return _access_response(decision)
