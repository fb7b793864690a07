"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from app.modules.rbac.authorizer import (
    AccessDecision, AuthorizationRule, Authorizer, IdSource, ResourceType
)
from app.modules.rbac.container import get_authorizer
from app.modules.rbac.models import Permission, Role
from supabase import Client
from typing import Any, Iterable, Optional, Dict, Union
import logging

logger = logging.getLogger(__name__)

# auto_error=False: public resources may be read without a token
security = HTTPBearer(auto_error=False)

PermissionArg = Union[Permission, str]


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Optional[dict]:
    """Identity from the bearer token, or None when no token was sent"""
    token = credentials.credentials if credentials else None
    return auth_service.identify(token)


def get_tolerant_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Optional[dict]:
    """Like get_optional_user, but a rejected token counts as no token"""
    token = credentials.credentials if credentials else None
    return auth_service.identify(token, tolerate_invalid=True)


def get_current_user_id(user_data: Optional[dict] = Depends(get_optional_user)) -> dict:
    """Extract current user info from JWT token"""
    if user_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_data


async def _read_json_body(request: Request) -> Optional[Dict[str, Any]]:
    # Starlette caches the body, so the endpoint can still parse it
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def authorize(rule: AuthorizationRule):
    """Factory function to create an authorization dependency for one route rule"""
    # Anonymous-capable rules treat a rejected token as no token
    identity = get_tolerant_user if rule.allow_anonymous else get_optional_user

    async def check_access(
        request: Request,
        user_data: Optional[dict] = Depends(identity),
        authorizer: Authorizer = Depends(get_authorizer),
    ) -> AccessDecision:
        body = await _read_json_body(request) if rule.id_source == IdSource.BODY else None
        user_id = user_data["id"] if user_data else None
        # Store reads block; keep them off the event loop
        decision = await run_in_threadpool(
            authorizer.decide,
            user_id,
            rule,
            dict(request.path_params),
            body,
            dict(request.query_params),
        )
        if not decision.allowed:
            headers = {"WWW-Authenticate": "Bearer"} if decision.status_code == 401 else None
            raise HTTPException(status_code=decision.status_code, detail=decision.detail, headers=headers)
        return decision
    return check_access


def _rule(resource_type: ResourceType, id_field: str, id_source: IdSource, **kwargs) -> AuthorizationRule:
    return AuthorizationRule(resource_type=resource_type, id_field=id_field, id_source=id_source, **kwargs)


def require_board_permission(*permissions: PermissionArg, id_field: str = "board_id", id_source: IdSource = IdSource.PATH):
    return authorize(_rule(ResourceType.BOARD, id_field, id_source, permissions=permissions))


def require_workspace_permission(*permissions: PermissionArg, id_field: str = "workspace_id", id_source: IdSource = IdSource.PATH):
    return authorize(_rule(ResourceType.WORKSPACE, id_field, id_source, permissions=permissions))


def require_list_permission(*permissions: PermissionArg, id_field: str = "list_id", id_source: IdSource = IdSource.PATH):
    return authorize(_rule(ResourceType.LIST, id_field, id_source, permissions=permissions))


def require_card_permission(*permissions: PermissionArg, id_field: str = "card_id", id_source: IdSource = IdSource.PATH):
    return authorize(_rule(ResourceType.CARD, id_field, id_source, permissions=permissions))


def require_board_role(roles: Iterable[Role], id_field: str = "board_id", id_source: IdSource = IdSource.PATH):
    return authorize(_rule(ResourceType.BOARD, id_field, id_source, allowed_roles=frozenset(roles)))


def require_workspace_role(roles: Iterable[Role], id_field: str = "workspace_id", id_source: IdSource = IdSource.PATH):
    return authorize(_rule(ResourceType.WORKSPACE, id_field, id_source, allowed_roles=frozenset(roles)))


def check_board_access(id_field: str = "board_id", id_source: IdSource = IdSource.PATH):
    """Visibility check: public boards are readable without a token"""
    return authorize(_rule(ResourceType.BOARD, id_field, id_source, allow_anonymous=True))


def check_workspace_access(id_field: str = "workspace_id", id_source: IdSource = IdSource.PATH):
    return authorize(_rule(ResourceType.WORKSPACE, id_field, id_source, allow_anonymous=True))
