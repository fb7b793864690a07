"""
Resolution engine: turns membership rows into an effective role and a
permission set for one user on one board or workspace.

All board-level inheritance lives in get_board_access; every other board check
goes through it.
"""

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from app.modules.rbac.cache import (
    CachedDecision, DecisionCache, NullDecisionCache, board_scope, workspace_scope
)
from app.modules.rbac.exceptions import CacheUnavailableError, ResourceNotFoundError
from app.modules.rbac.models import (
    BoardVisibility, DenialReason, MembershipRecord, Permission, Role, WorkspaceVisibility
)
from app.modules.rbac.stores import CatalogStore, MembershipStore, ResourceStore

logger = logging.getLogger(__name__)


# Shared ordinal scale: owner/admin > moderator > member > observer
ROLE_TIERS: Dict[Role, int] = {
    Role.ADMIN: 4,
    Role.WORKSPACE_ADMIN: 4,
    Role.BOARD_OWNER: 4,
    Role.BOARD_ADMIN: 4,
    Role.WORKSPACE_MODERATOR: 3,
    Role.WORKSPACE_MEMBER: 2,
    Role.BOARD_MEMBER: 2,
    Role.WORKSPACE_OBSERVER: 1,
    Role.BOARD_OBSERVER: 1,
}

# Workspace roles from this tier up act on every board of the workspace
ELEVATED_TIER = 3


def higher_role(board_role: Optional[Role], workspace_role: Optional[Role]) -> Optional[Role]:
    """Pick the higher of the two roles; ties go to the board role"""
    if board_role is None:
        return workspace_role
    if workspace_role is None:
        return board_role
    if ROLE_TIERS[workspace_role] > ROLE_TIERS[board_role]:
        return workspace_role
    return board_role


PermissionLike = Union[Permission, str]


def permission_name(permission: PermissionLike) -> str:
    return permission.value if isinstance(permission, Permission) else permission


@dataclass(frozen=True)
class AccessResult:
    allowed: bool
    reason: Optional[DenialReason] = None

    @classmethod
    def allow(cls) -> "AccessResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason) -> "AccessResult":
        return cls(allowed=False, reason=reason)


class ResolutionEngine:
    def __init__(
        self,
        catalog: CatalogStore,
        memberships: MembershipStore,
        resources: ResourceStore,
        cache: Optional[DecisionCache] = None,
        executor: Optional[Executor] = None,
    ):
        self.catalog = catalog
        self.memberships = memberships
        self.resources = resources
        self.cache = cache or NullDecisionCache()
        self._executor = executor

    # ------------------------------------------------------------------
    # Board scope
    # ------------------------------------------------------------------

    def get_board_access(self, user_id: str, board_id: str) -> CachedDecision:
        """
        Resolved access of a user on a board.

        The effective role is the higher of the direct board role and the role
        held in the owning workspace. The permission set is the effective
        role's permissions united with the direct board role's, so it never
        falls below what the board row grants.

        Raises:
            ResourceNotFoundError: board does not exist
            StoreUnavailableError: a store read failed
        """
        scope_id = board_scope(board_id)
        cached = self._cache_get(user_id, scope_id)
        if cached is not None:
            return cached

        generation = self._cache_generation(user_id)
        workspace_id = self.memberships.get_workspace_id_for_board(board_id)
        if workspace_id is None:
            raise ResourceNotFoundError("board", board_id)

        board_row, workspace_row = self._gather(
            lambda: self.memberships.get_board_membership(user_id, board_id),
            lambda: self.memberships.get_workspace_membership(user_id, workspace_id),
        )
        board_role = self._role_of(board_row)
        workspace_role = self._role_of(workspace_row)
        effective = higher_role(board_role, workspace_role)

        permissions = set()
        if effective is not None:
            permissions |= self.catalog.get_permissions_for_role(effective.value)
        if board_role is not None and board_role is not effective:
            permissions |= self.catalog.get_permissions_for_role(board_role.value)

        decision = CachedDecision(
            effective_role=effective.value if effective else None,
            board_role=board_role.value if board_role else None,
            workspace_role=workspace_role.value if workspace_role else None,
            permissions=frozenset(permissions),
        )
        self._cache_put(user_id, scope_id, decision, generation)
        return decision

    def get_effective_board_role(self, user_id: str, board_id: str) -> Optional[Role]:
        return Role.parse(self.get_board_access(user_id, board_id).effective_role)

    def has_board_permission(self, user_id: str, board_id: str, permission: PermissionLike) -> bool:
        # Visibility never satisfies a permission check
        access = self.get_board_access(user_id, board_id)
        if access.effective_role is None:
            return False
        return permission_name(permission) in access.permissions

    def can_view_board(self, user_id: Optional[str], board_id: str) -> AccessResult:
        board = self.resources.get_board(board_id)
        if board is None:
            raise ResourceNotFoundError("board", board_id)

        if board.visibility == BoardVisibility.PUBLIC:
            return AccessResult.allow()
        if not user_id:
            return AccessResult.deny(DenialReason.AUTHENTICATION_REQUIRED)

        access = self.get_board_access(user_id, board_id)
        if board.visibility == BoardVisibility.WORKSPACE and access.workspace_role is not None:
            return AccessResult.allow()
        if access.board_role is not None:
            return AccessResult.allow()
        workspace_role = Role.parse(access.workspace_role)
        if workspace_role is not None and ROLE_TIERS[workspace_role] >= ELEVATED_TIER:
            return AccessResult.allow()
        return AccessResult.deny(DenialReason.ACCESS_DENIED)

    # ------------------------------------------------------------------
    # Workspace scope
    # ------------------------------------------------------------------

    def get_workspace_access(self, user_id: str, workspace_id: str) -> CachedDecision:
        """Resolved access on a workspace; direct membership only"""
        scope_id = workspace_scope(workspace_id)
        cached = self._cache_get(user_id, scope_id)
        if cached is not None:
            return cached

        generation = self._cache_generation(user_id)
        workspace, row = self._gather(
            lambda: self.resources.get_workspace(workspace_id),
            lambda: self.memberships.get_workspace_membership(user_id, workspace_id),
        )
        if workspace is None:
            raise ResourceNotFoundError("workspace", workspace_id)

        role = self._role_of(row)
        permissions = self.catalog.get_permissions_for_role(role.value) if role else frozenset()
        decision = CachedDecision(
            effective_role=role.value if role else None,
            workspace_role=role.value if role else None,
            permissions=frozenset(permissions),
        )
        self._cache_put(user_id, scope_id, decision, generation)
        return decision

    def get_workspace_role(self, user_id: str, workspace_id: str) -> Optional[Role]:
        return Role.parse(self.get_workspace_access(user_id, workspace_id).workspace_role)

    def has_workspace_permission(self, user_id: str, workspace_id: str, permission: PermissionLike) -> bool:
        access = self.get_workspace_access(user_id, workspace_id)
        if access.workspace_role is None:
            return False
        return permission_name(permission) in access.permissions

    def can_view_workspace(self, user_id: Optional[str], workspace_id: str) -> AccessResult:
        workspace = self.resources.get_workspace(workspace_id)
        if workspace is None:
            raise ResourceNotFoundError("workspace", workspace_id)

        if workspace.visibility == WorkspaceVisibility.PUBLIC:
            return AccessResult.allow()
        if not user_id:
            return AccessResult.deny(DenialReason.AUTHENTICATION_REQUIRED)
        if self.get_workspace_access(user_id, workspace_id).workspace_role is not None:
            return AccessResult.allow()
        return AccessResult.deny(DenialReason.ACCESS_DENIED)

    # ------------------------------------------------------------------
    # Store passthroughs
    # ------------------------------------------------------------------

    def get_board_membership(self, user_id: str, board_id: str) -> Optional[MembershipRecord]:
        return self.memberships.get_board_membership(user_id, board_id)

    def get_workspace_membership(self, user_id: str, workspace_id: str) -> Optional[MembershipRecord]:
        return self.memberships.get_workspace_membership(user_id, workspace_id)

    def resolve_board_id(self, resource_type: str, resource_id: str) -> str:
        """Translate a list or card id into the id of the board that owns it"""
        if resource_type == "list":
            board_id = self.resources.get_board_id_for_list(resource_id)
        elif resource_type == "card":
            board_id = self.resources.get_board_id_for_card(resource_id)
        else:
            raise ValueError(f"Cannot resolve a board for resource type '{resource_type}'")
        if board_id is None:
            raise ResourceNotFoundError(resource_type, resource_id)
        return board_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _gather(self, *calls: Callable) -> Tuple:
        if self._executor is None:
            return tuple(call() for call in calls)
        futures = [self._executor.submit(call) for call in calls]
        return tuple(future.result() for future in futures)

    @staticmethod
    def _role_of(row: Optional[MembershipRecord]) -> Optional[Role]:
        if row is None:
            return None
        role = row.role
        if role is None:
            logger.warning(
                f"Ignoring membership {row.id} of user {row.user_id}: unknown role '{row.role_name}'"
            )
        return role

    def _cache_get(self, user_id: str, scope_id: str) -> Optional[CachedDecision]:
        try:
            return self.cache.get(user_id, scope_id)
        except CacheUnavailableError as e:
            logger.warning(f"Decision cache read failed, resolving from stores: {e}")
            return None

    def _cache_generation(self, user_id: str) -> Optional[int]:
        try:
            return self.cache.generation(user_id)
        except CacheUnavailableError as e:
            logger.warning(f"Decision cache generation read failed: {e}")
            return None

    def _cache_put(self, user_id: str, scope_id: str, decision: CachedDecision, generation: Optional[int]) -> None:
        # Without a generation the put could not be checked against evictions
        if generation is None:
            return
        try:
            if not self.cache.put(user_id, scope_id, decision, generation=generation):
                logger.debug(f"Dropped stale decision for user {user_id} on {scope_id}")
        except CacheUnavailableError as e:
            logger.warning(f"Decision cache write failed: {e}")

    def warm_up(self, role_names: Iterable[str]) -> None:
        warm = getattr(self.catalog, "warm_up", None)
        if warm is not None:
            warm(role_names)
