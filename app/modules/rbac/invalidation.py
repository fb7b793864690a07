import enum
import logging
from dataclasses import dataclass
from typing import Iterable

from app.modules.rbac.cache import DecisionCache, board_scope, workspace_scope
from app.modules.rbac.models import RoleScope

logger = logging.getLogger(__name__)


class MembershipAction(str, enum.Enum):
    CREATE = "create"
    ROLE_CHANGE = "role_change"
    DELETE = "delete"


@dataclass(frozen=True)
class MembershipChange:
    action: MembershipAction
    scope: RoleScope
    user_id: str
    scope_id: str


class InvalidationHook:
    """
    Called by membership services after a membership write has committed.

    Effective board roles depend on workspace rows, so every change drops all of
    the user's cached decisions rather than trying to enumerate the boards of a
    workspace. The hook never raises: the write already succeeded and the cache
    is not a system of record.
    """

    def __init__(self, cache: DecisionCache):
        self.cache = cache

    def membership_changed(self, change: MembershipChange) -> None:
        if change.scope == RoleScope.BOARD:
            scope_id = board_scope(change.scope_id)
        else:
            scope_id = workspace_scope(change.scope_id)
        try:
            self.cache.evict(change.user_id, scope_id)
            self.cache.evict_user(change.user_id)
            logger.info(
                f"Evicted cached decisions of user {change.user_id} after "
                f"{change.action.value} on {scope_id}"
            )
        except Exception as e:
            logger.critical(
                f"Failed to evict cached decisions of user {change.user_id} after "
                f"{change.action.value} on {scope_id}; stale authorization decisions may be served: {e}"
            )

    def board_deleted(self, board_id: str, member_ids: Iterable[str]) -> None:
        """member_ids: everyone who could reach the board, including members of its workspace"""
        for user_id in member_ids:
            self.membership_changed(MembershipChange(
                action=MembershipAction.DELETE,
                scope=RoleScope.BOARD,
                user_id=user_id,
                scope_id=board_id,
            ))
