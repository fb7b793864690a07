"""
Transport-agnostic authorization of a single request against a route rule.

A request walks Unauthenticated -> Identified -> ScopeResolved -> Decided.
Every failure, including store outages, ends in a denied AccessDecision;
nothing raised below this layer reaches business logic.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from app.modules.rbac.cache import CachedDecision
from app.modules.rbac.engine import AccessResult, ResolutionEngine, permission_name
from app.modules.rbac.exceptions import ResourceNotFoundError, StoreUnavailableError
from app.modules.rbac.models import DenialReason, Role

logger = logging.getLogger(__name__)


class ResourceType(str, enum.Enum):
    WORKSPACE = "workspace"
    BOARD = "board"
    LIST = "list"
    CARD = "card"


class IdSource(str, enum.Enum):
    PATH = "path"
    BODY = "body"
    QUERY = "query"


class AuthorizationStage(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    IDENTIFIED = "identified"
    SCOPE_RESOLVED = "scope_resolved"
    DECIDED = "decided"


# Role presets. Effective roles compare on a shared tier scale, so each preset
# lists the workspace roles that rank alongside the board roles it names.
BOARD_OWNER_ROLES = frozenset({Role.ADMIN, Role.WORKSPACE_ADMIN, Role.BOARD_OWNER})
BOARD_ADMIN_ROLES = BOARD_OWNER_ROLES | {Role.BOARD_ADMIN}
BOARD_MEMBER_ROLES = BOARD_ADMIN_ROLES | {Role.WORKSPACE_MODERATOR, Role.WORKSPACE_MEMBER, Role.BOARD_MEMBER}
WORKSPACE_ADMIN_ROLES = frozenset({Role.ADMIN, Role.WORKSPACE_ADMIN})
WORKSPACE_MANAGER_ROLES = WORKSPACE_ADMIN_ROLES | {Role.WORKSPACE_MODERATOR}
WORKSPACE_MEMBER_ROLES = WORKSPACE_ADMIN_ROLES | {Role.WORKSPACE_MODERATOR, Role.WORKSPACE_MEMBER}


@dataclass(frozen=True)
class AuthorizationRule:
    """Per-route declaration of what to check and where the target id lives"""

    resource_type: ResourceType
    id_field: str
    id_source: IdSource = IdSource.PATH
    permissions: Tuple[str, ...] = ()
    allowed_roles: FrozenSet[Role] = frozenset()
    allow_anonymous: bool = False

    def __post_init__(self):
        # Accept Permission members and plain iterables
        object.__setattr__(self, "permissions", tuple(permission_name(p) for p in self.permissions))
        object.__setattr__(self, "allowed_roles", frozenset(Role(r) for r in self.allowed_roles))

    @property
    def has_requirements(self) -> bool:
        return bool(self.permissions or self.allowed_roles)


@dataclass(frozen=True)
class UserContext:
    user_id: str
    effective_role: Optional[str] = None
    board_role: Optional[str] = None
    workspace_role: Optional[str] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_board_member(self) -> bool:
        return self.board_role is not None

    @property
    def is_workspace_member(self) -> bool:
        return self.workspace_role is not None

    @classmethod
    def from_access(cls, user_id: str, access: CachedDecision) -> "UserContext":
        return cls(
            user_id=user_id,
            effective_role=access.effective_role,
            board_role=access.board_role,
            workspace_role=access.workspace_role,
            permissions=access.permissions,
        )


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    stage: AuthorizationStage
    reason: Optional[DenialReason] = None
    message: Optional[str] = None
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[str] = None
    board_id: Optional[str] = None
    workspace_id: Optional[str] = None
    user: Optional[UserContext] = None

    @property
    def status_code(self) -> int:
        if self.allowed:
            return 200
        return self.reason.status_code

    @property
    def detail(self) -> Optional[str]:
        if self.allowed:
            return None
        return self.message or self.reason.value


class Authorizer:
    def __init__(self, engine: ResolutionEngine):
        self.engine = engine

    def decide(
        self,
        user_id: Optional[str],
        rule: AuthorizationRule,
        path_params: Optional[Mapping[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> AccessDecision:
        stage = AuthorizationStage.UNAUTHENTICATED
        if not user_id and (rule.has_requirements or not rule.allow_anonymous):
            return self._deny(stage, DenialReason.AUTHENTICATION_REQUIRED, rule)
        if user_id:
            stage = AuthorizationStage.IDENTIFIED

        resource_id = self._extract_id(rule, path_params, body, query)
        if resource_id is None:
            logger.warning(
                f"No {rule.resource_type.value} id in {rule.id_source.value} field '{rule.id_field}'"
            )
            return self._deny(stage, DenialReason.MISSING_RESOURCE_ID, rule)

        try:
            if rule.resource_type == ResourceType.WORKSPACE:
                return self._decide_workspace(user_id, rule, resource_id)
            if rule.resource_type == ResourceType.BOARD:
                board_id = resource_id
            else:
                board_id = self.engine.resolve_board_id(rule.resource_type.value, resource_id)
            return self._decide_board(user_id, rule, resource_id, board_id)
        except ResourceNotFoundError as e:
            logger.info(f"Authorization target missing: {e}")
            return self._deny(stage, DenialReason.NOT_FOUND, rule, resource_id=resource_id)
        except StoreUnavailableError as e:
            logger.error(
                f"Denying {rule.resource_type.value} {resource_id} for user {user_id}: store unavailable: {e}"
            )
            return self._deny(stage, DenialReason.ACCESS_DENIED, rule, resource_id=resource_id)
        except Exception as e:
            logger.exception(
                f"Denying {rule.resource_type.value} {resource_id} for user {user_id}: unexpected error: {e}"
            )
            return self._deny(stage, DenialReason.ACCESS_DENIED, rule, resource_id=resource_id)

    def _decide_board(self, user_id, rule, resource_id, board_id) -> AccessDecision:
        scope = dict(resource_id=resource_id, board_id=board_id)
        if not rule.has_requirements:
            return self._visibility(user_id, rule, self.engine.can_view_board(user_id, board_id),
                                    lambda: self.engine.get_board_access(user_id, board_id), scope)
        access = self.engine.get_board_access(user_id, board_id)
        return self._requirements(user_id, rule, access, scope)

    def _decide_workspace(self, user_id, rule, workspace_id) -> AccessDecision:
        scope = dict(resource_id=workspace_id, workspace_id=workspace_id)
        if not rule.has_requirements:
            return self._visibility(user_id, rule, self.engine.can_view_workspace(user_id, workspace_id),
                                    lambda: self.engine.get_workspace_access(user_id, workspace_id), scope)
        access = self.engine.get_workspace_access(user_id, workspace_id)
        return self._requirements(user_id, rule, access, scope)

    def _visibility(self, user_id, rule, result: AccessResult, load_access, scope) -> AccessDecision:
        stage = AuthorizationStage.SCOPE_RESOLVED
        if not result.allowed:
            logger.info(f"User {user_id} cannot view {rule.resource_type.value} {scope['resource_id']}: {result.reason.value}")
            return self._deny(stage, result.reason, rule, **scope)
        if not user_id:
            return self._allow(rule, None, **scope)
        try:
            user = UserContext.from_access(user_id, load_access())
        except StoreUnavailableError as e:
            # Visibility is already granted; the role context is optional
            logger.error(
                f"Role context for user {user_id} on {rule.resource_type.value} {scope['resource_id']} "
                f"unavailable, allowing without roles: {e}"
            )
            user = UserContext(user_id)
        return self._allow(rule, user, **scope)

    def _requirements(self, user_id, rule, access: CachedDecision, scope) -> AccessDecision:
        stage = AuthorizationStage.SCOPE_RESOLVED
        user = UserContext.from_access(user_id, access)
        if access.effective_role is None:
            logger.info(f"User {user_id} is not a member for {rule.resource_type.value} {scope['resource_id']}")
            return self._deny(stage, DenialReason.NOT_A_MEMBER, rule, user=user, **scope)

        if rule.allowed_roles:
            held = {Role.parse(access.effective_role), Role.parse(access.board_role)}
            if not held & rule.allowed_roles:
                allowed = ", ".join(sorted(r.value for r in rule.allowed_roles))
                logger.info(f"User {user_id} role {access.effective_role} not in [{allowed}]")
                return self._deny(stage, DenialReason.INSUFFICIENT_ROLE, rule, user=user,
                                  message=f"Insufficient role privileges. Required one of: {allowed}", **scope)

        missing = [p for p in rule.permissions if p not in access.permissions]
        if missing:
            logger.info(f"User {user_id} lacks {', '.join(missing)} on {rule.resource_type.value} {scope['resource_id']}")
            return self._deny(stage, DenialReason.INSUFFICIENT_PERMISSIONS, rule, user=user,
                              message=f"Insufficient permissions. Required: {', '.join(missing)}", **scope)
        return self._allow(rule, user, **scope)

    @staticmethod
    def _extract_id(rule, path_params, body, query) -> Optional[str]:
        source = {
            IdSource.PATH: path_params,
            IdSource.BODY: body,
            IdSource.QUERY: query,
        }[rule.id_source]
        if not isinstance(source, Mapping):
            return None
        value = source.get(rule.id_field)
        if value is None or value == "":
            return None
        return str(value)

    @staticmethod
    def _allow(rule, user, **scope) -> AccessDecision:
        return AccessDecision(
            allowed=True,
            stage=AuthorizationStage.DECIDED,
            resource_type=rule.resource_type,
            user=user,
            **scope,
        )

    @staticmethod
    def _deny(stage, reason: DenialReason, rule, **kwargs) -> AccessDecision:
        return AccessDecision(
            allowed=False,
            stage=stage,
            reason=reason,
            resource_type=rule.resource_type,
            **kwargs,
        )