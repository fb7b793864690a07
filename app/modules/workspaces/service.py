import logging
from supabase import Client
from app.modules.rbac.authorizer import WORKSPACE_ADMIN_ROLES, UserContext
from app.modules.rbac.invalidation import InvalidationHook, MembershipAction, MembershipChange
from app.modules.rbac.models import DenialReason, Role, RoleScope, WORKSPACE_ROLES
from app.modules.rbac.stores import CatalogStore
from app.modules.workspaces.schemas import (
    WorkspaceCreate, WorkspaceResponse, WorkspaceMemberAdd, WorkspaceMemberResponse
)
from typing import Any, Dict, List, Optional
from fastapi import HTTPException

logger = logging.getLogger(__name__)

MEMBER_COLUMNS = "id, workspace_id, user_id, role_id, created_at, roles(name)"

# System admin is seeded, never granted through a workspace
ASSIGNABLE_ROLES = WORKSPACE_ROLES - {Role.ADMIN}


def _member_response(row: Dict[str, Any]) -> WorkspaceMemberResponse:
    return WorkspaceMemberResponse(
        id=row["id"],
        workspace_id=row["workspace_id"],
        user_id=row["user_id"],
        role=(row.get("roles") or {}).get("name") or "",
        created_at=row.get("created_at"),
    )


class WorkspaceService:
    def __init__(self, supabase: Client, catalog: CatalogStore, hook: InvalidationHook):
        self.supabase = supabase
        self.catalog = catalog
        self.hook = hook

    def _notify(self, action: MembershipAction, user_id: str, workspace_id: str):
        self.hook.membership_changed(MembershipChange(
            action=action,
            scope=RoleScope.WORKSPACE,
            user_id=user_id,
            scope_id=workspace_id,
        ))

    def _role_id(self, role: Role) -> str:
        record = self.catalog.get_role_by_name(role.value)
        if record is None:
            logger.error(f"Role '{role.value}' is missing from the catalog; run the seed script")
            raise HTTPException(status_code=500, detail=f"Role '{role.value}' is not configured")
        return record.id

    def _discard_workspace(self, workspace_id: str):
        try:
            self.supabase.table("workspaces").delete().eq("id", workspace_id).execute()
        except Exception as e:
            logger.error(f"Could not roll back workspace {workspace_id}; it has no admin: {e}")

    def create_workspace(self, workspace_data: WorkspaceCreate, user_id: str) -> WorkspaceResponse:
        """Create a workspace; the creator becomes its workspace_admin"""
        try:
            admin_role_id = self._role_id(Role.WORKSPACE_ADMIN)
            result = self.supabase.table("workspaces").insert({
                "name": workspace_data.name,
                "description": workspace_data.description,
                "visibility": workspace_data.visibility.value,
                "created_by": user_id
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create workspace")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating workspace for user {user_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to create workspace")
        workspace = result.data[0]

        try:
            self.supabase.table("workspace_members").insert({
                "workspace_id": workspace["id"],
                "user_id": user_id,
                "role_id": admin_role_id
            }).execute()
        except Exception as e:
            logger.error(f"Error adding creator {user_id} to workspace {workspace['id']}: {e}")
            self._discard_workspace(workspace["id"])
            raise HTTPException(status_code=503, detail="Failed to create workspace")

        self._notify(MembershipAction.CREATE, user_id, workspace["id"])
        logger.info(f"Workspace {workspace['id']} created by {user_id}")
        return WorkspaceResponse(**workspace)

    def get_member(self, workspace_id: str, user_id: str) -> Optional[WorkspaceMemberResponse]:
        try:
            result = self.supabase.table("workspace_members")\
                .select(MEMBER_COLUMNS)\
                .eq("workspace_id", workspace_id)\
                .eq("user_id", user_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error reading member {user_id} of workspace {workspace_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to read workspace members")
        return _member_response(result.data[0]) if result.data else None

    def list_members(self, workspace_id: str) -> List[WorkspaceMemberResponse]:
        """List all members of a workspace"""
        try:
            result = self.supabase.table("workspace_members")\
                .select(MEMBER_COLUMNS)\
                .eq("workspace_id", workspace_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error listing members of workspace {workspace_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to read workspace members")
        return [_member_response(row) for row in result.data or []]

    def _require_admin_for(self, actor: UserContext, *roles: str):
        if Role.WORKSPACE_ADMIN.value in roles and Role.parse(actor.effective_role) not in WORKSPACE_ADMIN_ROLES:
            logger.info(f"User {actor.user_id} ({actor.effective_role}) may not grant or revoke workspace_admin")
            raise HTTPException(status_code=403, detail=DenialReason.INSUFFICIENT_ROLE.value)

    def _is_last_admin(self, workspace_id: str) -> bool:
        admins = [m for m in self.list_members(workspace_id) if m.role == Role.WORKSPACE_ADMIN.value]
        return len(admins) <= 1

    def add_member(self, workspace_id: str, member_data: WorkspaceMemberAdd, actor: UserContext) -> WorkspaceMemberResponse:
        """Add a member with a workspace-scoped role. Only admins may add another workspace_admin."""
        if member_data.role not in ASSIGNABLE_ROLES:
            raise HTTPException(status_code=400, detail=f"'{member_data.role.value}' cannot be granted in a workspace")
        self._require_admin_for(actor, member_data.role.value)
        if self.get_member(workspace_id, member_data.user_id):
            raise HTTPException(status_code=400, detail="User is already a member of this workspace")

        try:
            result = self.supabase.table("workspace_members").insert({
                "workspace_id": workspace_id,
                "user_id": member_data.user_id,
                "role_id": self._role_id(member_data.role)
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to add member")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error adding {member_data.user_id} to workspace {workspace_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to add member")

        self._notify(MembershipAction.CREATE, member_data.user_id, workspace_id)
        row = dict(result.data[0], roles={"name": member_data.role.value})
        return _member_response(row)

    def update_member_role(self, workspace_id: str, user_id: str, role: Role, actor: UserContext) -> WorkspaceMemberResponse:
        """
        Change a member's workspace role.

        Granting or taking away workspace_admin needs a workspace admin, and the
        last workspace_admin cannot be demoted. System admins are not managed here.
        """
        if role not in ASSIGNABLE_ROLES:
            raise HTTPException(status_code=400, detail=f"'{role.value}' cannot be granted in a workspace")
        member = self.get_member(workspace_id, user_id)
        if member is None:
            raise HTTPException(status_code=404, detail="Member not found")
        if member.role == Role.ADMIN.value:
            raise HTTPException(status_code=403, detail="Cannot change the role of a system admin")
        if member.role == role.value:
            raise HTTPException(status_code=400, detail=f"Member already has role '{role.value}'")
        self._require_admin_for(actor, member.role, role.value)
        if member.role == Role.WORKSPACE_ADMIN.value and self._is_last_admin(workspace_id):
            raise HTTPException(status_code=400, detail="Cannot demote the last workspace admin")

        try:
            self.supabase.table("workspace_members")\
                .update({"role_id": self._role_id(role)})\
                .eq("id", member.id)\
                .execute()
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating role of {user_id} in workspace {workspace_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to update member role")

        self._notify(MembershipAction.ROLE_CHANGE, user_id, workspace_id)
        return member.model_copy(update={"role": role.value})

    def remove_member(self, workspace_id: str, user_id: str, actor: UserContext) -> bool:
        """Remove a member. Only admins remove a workspace_admin, and never the last one."""
        member = self.get_member(workspace_id, user_id)
        if member is None:
            raise HTTPException(status_code=404, detail="Member not found")
        if member.role == Role.ADMIN.value:
            raise HTTPException(status_code=403, detail="Cannot remove a system admin")
        self._require_admin_for(actor, member.role)
        if member.role == Role.WORKSPACE_ADMIN.value and self._is_last_admin(workspace_id):
            raise HTTPException(status_code=400, detail="Cannot remove the last workspace admin")

        try:
            self.supabase.table("workspace_members")\
                .delete()\
                .eq("id", member.id)\
                .execute()
        except Exception as e:
            logger.error(f"Error removing {user_id} from workspace {workspace_id}: {e}")
            raise HTTPException(status_code=503, detail="Failed to remove member")

        self._notify(MembershipAction.DELETE, user_id, workspace_id)
        return True
