from fastapi import APIRouter, Depends
from app.database.supabase_client import get_service_supabase
from app.modules.workspaces.schemas import (
    WorkspaceCreate, WorkspaceResponse, WorkspaceMemberAdd,
    WorkspaceMemberRoleUpdate, WorkspaceMemberResponse
)
from app.modules.workspaces.service import WorkspaceService
from app.modules.rbac.authorizer import AccessDecision, WORKSPACE_MANAGER_ROLES
from app.modules.rbac.container import get_engine, get_invalidation_hook
from app.modules.rbac.engine import ResolutionEngine
from app.modules.rbac.invalidation import InvalidationHook
from app.modules.rbac.models import Permission
from app.core.dependencies import (
    get_current_user_id, require_workspace_permission, require_workspace_role
)
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


def get_workspace_service(
    supabase: Client = Depends(get_service_supabase),
    engine: ResolutionEngine = Depends(get_engine),
    hook: InvalidationHook = Depends(get_invalidation_hook)
) -> WorkspaceService:
    return WorkspaceService(supabase, engine.catalog, hook)


@router.post("", response_model=WorkspaceResponse, status_code=201)
async def create_workspace(
    workspace_data: WorkspaceCreate,
    current_user: Dict = Depends(get_current_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    """Create a new workspace (creator becomes workspace_admin)"""
    return service.create_workspace(workspace_data, current_user["id"])


@router.get("/{workspace_id}/members", response_model=List[WorkspaceMemberResponse])
async def list_members(
    workspace_id: str,
    decision: AccessDecision = Depends(require_workspace_permission(Permission.WORKSPACES_READ)),
    service: WorkspaceService = Depends(get_workspace_service)
):
    """List workspace members (requires workspaces:read in the workspace)"""
    return service.list_members(workspace_id)


@router.post("/{workspace_id}/members", response_model=WorkspaceMemberResponse, status_code=201)
async def add_member(
    workspace_id: str,
    member_data: WorkspaceMemberAdd,
    decision: AccessDecision = Depends(require_workspace_role(WORKSPACE_MANAGER_ROLES)),
    service: WorkspaceService = Depends(get_workspace_service)
):
    """Add a member to the workspace (workspace admins and moderators; only admins add admins)"""
    return service.add_member(workspace_id, member_data, decision.user)


@router.patch("/{workspace_id}/members/{user_id}", response_model=WorkspaceMemberResponse)
async def update_member_role(
    workspace_id: str,
    user_id: str,
    role_data: WorkspaceMemberRoleUpdate,
    decision: AccessDecision = Depends(require_workspace_role(WORKSPACE_MANAGER_ROLES)),
    service: WorkspaceService = Depends(get_workspace_service)
):
    """Change a member's workspace role (workspace admins and moderators)"""
    return service.update_member_role(workspace_id, user_id, role_data.role, decision.user)


@router.delete("/{workspace_id}/members/{user_id}", status_code=204)
async def remove_member(
    workspace_id: str,
    user_id: str,
    decision: AccessDecision = Depends(require_workspace_role(WORKSPACE_MANAGER_ROLES)),
    service: WorkspaceService = Depends(get_workspace_service)
):
    """Remove a member from the workspace (workspace admins and moderators)"""
    service.remove_member(workspace_id, user_id, decision.user)
    return None
