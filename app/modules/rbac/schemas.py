from pydantic import BaseModel
from typing import Optional, List


class PermissionEntry(BaseModel):
    name: str
    resource: str
    action: str
    description: Optional[str] = None


class RoleEntry(BaseModel):
    name: str
    description: Optional[str] = None
    scope: str
    tier: int
    permissions: List[str]


class CatalogResponse(BaseModel):
    permissions: List[PermissionEntry]
    roles: List[RoleEntry]


class AccessResponse(BaseModel):
    allowed: bool
    resource_type: str
    resource_id: str
    board_id: Optional[str] = None
    workspace_id: Optional[str] = None
    effective_role: Optional[str] = None
    board_role: Optional[str] = None
    workspace_role: Optional[str] = None
    is_board_member: bool = False
    is_workspace_member: bool = False
    permissions: List[str] = []


class PermissionCheckResponse(BaseModel):
    allowed: bool
    permission: str
    reason: Optional[str] = None