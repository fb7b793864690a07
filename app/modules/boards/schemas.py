from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from app.modules.rbac.models import BoardVisibility, CommentPolicy, MemberManagePolicy, Role


class BoardCreate(BaseModel):
    workspace_id: str
    name: str
    description: Optional[str] = None
    visibility: BoardVisibility = BoardVisibility.PRIVATE
    member_manage_policy: MemberManagePolicy = MemberManagePolicy.ADMINS_ONLY
    comment_policy: CommentPolicy = CommentPolicy.MEMBERS


class BoardSettingsUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    visibility: Optional[BoardVisibility] = None
    member_manage_policy: Optional[MemberManagePolicy] = None
    comment_policy: Optional[CommentPolicy] = None
    is_closed: Optional[bool] = None


class BoardResponse(BaseModel):
    id: str
    workspace_id: str
    name: str
    description: Optional[str] = None
    visibility: BoardVisibility
    member_manage_policy: MemberManagePolicy
    comment_policy: CommentPolicy
    is_closed: bool = False
    created_by: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BoardMemberAdd(BaseModel):
    user_id: str
    role: Role = Role.BOARD_MEMBER


class BoardMemberRoleUpdate(BaseModel):
    role: Role


class BoardMemberResponse(BaseModel):
    id: str
    board_id: str
    user_id: str
    role: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InviteLinkResponse(BaseModel):
    board_id: str
    invite_token: str


class CommentPermissionResponse(BaseModel):
    allowed: bool
    comment_policy: CommentPolicy
    reason: Optional[str] = None
