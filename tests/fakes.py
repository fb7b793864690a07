"""In-memory stand-ins for the store interfaces and the supabase client."""

from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple

from app.modules.rbac.exceptions import StoreUnavailableError
from app.modules.rbac.models import (
    BoardRecord, BoardVisibility, CommentPolicy, MemberManagePolicy, MembershipRecord,
    WorkspaceRecord, WorkspaceVisibility
)
from app.modules.rbac.stores import MembershipStore, ResourceStore


class FakeDirectory(MembershipStore, ResourceStore):
    """Workspaces, boards, lists, cards and memberships held in dicts"""

    def __init__(self):
        self.workspaces: Dict[str, WorkspaceRecord] = {}
        self.boards: Dict[str, BoardRecord] = {}
        self.lists: Dict[str, str] = {}
        self.cards: Dict[str, str] = {}
        self.workspace_members: Dict[Tuple[str, str], str] = {}
        self.board_members: Dict[Tuple[str, str], str] = {}
        self.available = True
        self.reads: List[str] = []

    # seeding

    def add_workspace(self, workspace_id, visibility=WorkspaceVisibility.PRIVATE, is_archived=False):
        self.workspaces[workspace_id] = WorkspaceRecord(
            id=workspace_id, visibility=visibility, is_archived=is_archived
        )

    def add_board(self, board_id, workspace_id, visibility=BoardVisibility.PRIVATE,
                  member_manage_policy=MemberManagePolicy.ADMINS_ONLY,
                  comment_policy=CommentPolicy.MEMBERS, is_closed=False):
        if workspace_id not in self.workspaces:
            self.add_workspace(workspace_id)
        self.boards[board_id] = BoardRecord(
            id=board_id,
            workspace_id=workspace_id,
            visibility=visibility,
            member_manage_policy=member_manage_policy,
            comment_policy=comment_policy,
            is_closed=is_closed,
        )

    def add_list(self, list_id, board_id):
        self.lists[list_id] = board_id

    def add_card(self, card_id, list_id):
        self.cards[card_id] = list_id

    def set_workspace_role(self, user_id, workspace_id, role_name):
        self.workspace_members[(user_id, workspace_id)] = role_name

    def set_board_role(self, user_id, board_id, role_name):
        self.board_members[(user_id, board_id)] = role_name

    def remove_workspace_member(self, user_id, workspace_id):
        self.workspace_members.pop((user_id, workspace_id), None)

    def remove_board_member(self, user_id, board_id):
        self.board_members.pop((user_id, board_id), None)

    def _read(self, what):
        if not self.available:
            raise StoreUnavailableError(f"store down while reading {what}")
        self.reads.append(what)

    # MembershipStore

    def get_workspace_membership(self, user_id, workspace_id) -> Optional[MembershipRecord]:
        self._read("workspace_membership")
        role = self.workspace_members.get((user_id, workspace_id))
        if role is None:
            return None
        return MembershipRecord(
            id=f"wm-{user_id}-{workspace_id}", user_id=user_id, scope_id=workspace_id,
            role_id=role, role_name=role,
        )

    def get_board_membership(self, user_id, board_id) -> Optional[MembershipRecord]:
        self._read("board_membership")
        role = self.board_members.get((user_id, board_id))
        if role is None:
            return None
        return MembershipRecord(
            id=f"bm-{user_id}-{board_id}", user_id=user_id, scope_id=board_id,
            role_id=role, role_name=role,
        )

    def get_workspace_id_for_board(self, board_id) -> Optional[str]:
        self._read("board_workspace")
        board = self.boards.get(board_id)
        return board.workspace_id if board else None

    # ResourceStore

    def get_workspace(self, workspace_id) -> Optional[WorkspaceRecord]:
        self._read("workspace")
        return self.workspaces.get(workspace_id)

    def get_board(self, board_id) -> Optional[BoardRecord]:
        self._read("board")
        return self.boards.get(board_id)

    def get_board_id_for_list(self, list_id) -> Optional[str]:
        self._read("list")
        return self.lists.get(list_id)

    def get_board_id_for_card(self, card_id) -> Optional[str]:
        self._read("card")
        list_id = self.cards.get(card_id)
        return self.lists.get(list_id) if list_id else None


class FakeTable:
    """Chainable query builder; each execute() pops the next queued result"""

    _BUILDERS = ("select", "insert", "update", "delete", "eq", "in_", "limit", "order", "offset")

    def __init__(self, name, events, results=None):
        self.name = name
        self.events = events
        self.results = list(results or [])
        self.calls = []

    def __getattr__(self, op):
        if op not in self._BUILDERS:
            raise AttributeError(op)

        def builder(*args, **kwargs):
            self.calls.append((op, args, kwargs))
            return self
        return builder

    def execute(self):
        self.events.append(f"{self.name}.execute")
        result = self.results.pop(0) if self.results else []
        if isinstance(result, Exception):
            raise result
        return SimpleNamespace(data=result)

    def payloads(self, op):
        return [args[0] for name, args, _ in self.calls if name == op]


class FakeSupabase:
    def __init__(self, **results):
        self.events: List[str] = []
        self.tables: Dict[str, FakeTable] = {
            name: FakeTable(name, self.events, queued) for name, queued in results.items()
        }

    def table(self, name):
        if name not in self.tables:
            self.tables[name] = FakeTable(name, self.events)
        return self.tables[name]
