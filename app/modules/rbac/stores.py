"""
Read interfaces the resolution engine depends on.
Implementations wrap their backend errors in StoreUnavailableError and report
missing rows as None (or an empty set for role permissions).
"""

from abc import ABC, abstractmethod
from typing import FrozenSet, Optional

from app.modules.rbac.models import BoardRecord, MembershipRecord, RoleRecord, WorkspaceRecord


class CatalogStore(ABC):
    @abstractmethod
    def get_permissions_for_role(self, role_name: str) -> FrozenSet[str]:
        """Permission names granted by a role. Unknown roles grant nothing."""
        pass

    @abstractmethod
    def get_role_by_name(self, name: str) -> Optional[RoleRecord]:
        pass


class MembershipStore(ABC):
    @abstractmethod
    def get_workspace_membership(self, user_id: str, workspace_id: str) -> Optional[MembershipRecord]:
        """The user's membership row in a workspace, with the role name joined."""
        pass

    @abstractmethod
    def get_board_membership(self, user_id: str, board_id: str) -> Optional[MembershipRecord]:
        """The user's membership row on a board, with the role name joined."""
        pass

    @abstractmethod
    def get_workspace_id_for_board(self, board_id: str) -> Optional[str]:
        pass


class ResourceStore(ABC):
    @abstractmethod
    def get_workspace(self, workspace_id: str) -> Optional[WorkspaceRecord]:
        pass

    @abstractmethod
    def get_board(self, board_id: str) -> Optional[BoardRecord]:
        pass

    @abstractmethod
    def get_board_id_for_list(self, list_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def get_board_id_for_card(self, card_id: str) -> Optional[str]:
        pass
