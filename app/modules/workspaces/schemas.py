from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from app.modules.rbac.models import Role, WorkspaceVisibility


class WorkspaceCreate(BaseModel):
    name: str
    description: Optional[str] = None
    visibility: WorkspaceVisibility = WorkspaceVisibility.PRIVATE


class WorkspaceResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    visibility: WorkspaceVisibility
    is_archived: bool = False
    created_by: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WorkspaceMemberAdd(BaseModel):
    user_id: str
    role: Role = Role.WORKSPACE_MEMBER


class WorkspaceMemberRoleUpdate(BaseModel):
    role: Role


class WorkspaceMemberResponse(BaseModel):
    id: str
    workspace_id: str
    user_id: str
    role: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
