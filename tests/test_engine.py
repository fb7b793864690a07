from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

from app.modules.rbac.cache import DecisionCache, board_scope
from app.modules.rbac.engine import ROLE_TIERS, ResolutionEngine, higher_role
from app.modules.rbac.exceptions import (
    CacheUnavailableError, ResourceNotFoundError, StoreUnavailableError
)
from app.modules.rbac.models import (
    BoardVisibility, DenialReason, Permission, Role, WorkspaceVisibility
)


@pytest.fixture
def board(directory):
    directory.add_workspace("w1")
    directory.add_board("b1", "w1")
    return "b1"


class TestRoleTiers:
    def test_every_role_has_a_tier(self):
        assert set(ROLE_TIERS) == set(Role)

    def test_top_tier_equivalence(self):
        assert ROLE_TIERS[Role.WORKSPACE_ADMIN] == ROLE_TIERS[Role.BOARD_OWNER] == ROLE_TIERS[Role.BOARD_ADMIN]
        assert ROLE_TIERS[Role.WORKSPACE_MEMBER] == ROLE_TIERS[Role.BOARD_MEMBER]

    @pytest.mark.parametrize("board_role,workspace_role,expected", [
        (Role.BOARD_OBSERVER, Role.WORKSPACE_MODERATOR, Role.WORKSPACE_MODERATOR),
        (Role.BOARD_ADMIN, Role.WORKSPACE_MEMBER, Role.BOARD_ADMIN),
        (Role.BOARD_MEMBER, Role.WORKSPACE_ADMIN, Role.WORKSPACE_ADMIN),
        (Role.BOARD_MEMBER, Role.WORKSPACE_MEMBER, Role.BOARD_MEMBER),
        (Role.BOARD_OWNER, Role.WORKSPACE_ADMIN, Role.BOARD_OWNER),
        (None, Role.WORKSPACE_OBSERVER, Role.WORKSPACE_OBSERVER),
        (Role.BOARD_OBSERVER, None, Role.BOARD_OBSERVER),
        (None, None, None),
    ])
    def test_higher_role(self, board_role, workspace_role, expected):
        assert higher_role(board_role, workspace_role) is expected


class TestEffectiveBoardRole:
    @pytest.mark.parametrize("role", [Role.BOARD_OWNER, Role.BOARD_ADMIN, Role.BOARD_MEMBER, Role.BOARD_OBSERVER])
    def test_board_row_only(self, engine, directory, board, role):
        directory.set_board_role("u1", board, role.value)
        assert engine.get_effective_board_role("u1", board) is role

    def test_workspace_row_only_is_inherited(self, engine, directory, board):
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_MEMBER.value)
        assert engine.get_effective_board_role("u1", board) is Role.WORKSPACE_MEMBER

    def test_both_rows_pick_the_higher(self, engine, directory, board):
        directory.set_board_role("u1", board, Role.BOARD_OBSERVER.value)
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_MODERATOR.value)
        assert engine.get_effective_board_role("u1", board) is Role.WORKSPACE_MODERATOR

    def test_plain_workspace_member_does_not_elevate_board_admin(self, engine, directory, board):
        directory.set_board_role("u1", board, Role.BOARD_ADMIN.value)
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_MEMBER.value)
        assert engine.get_effective_board_role("u1", board) is Role.BOARD_ADMIN

    def test_no_membership(self, engine, board):
        assert engine.get_effective_board_role("u1", board) is None

    def test_no_membership_grants_no_permission(self, engine, board):
        assert not any(engine.has_board_permission("u1", board, p) for p in Permission)

    def test_membership_in_another_workspace_is_ignored(self, engine, directory, board):
        directory.add_workspace("w2")
        directory.set_workspace_role("u1", "w2", Role.WORKSPACE_ADMIN.value)
        assert engine.get_effective_board_role("u1", board) is None

    def test_unknown_role_name_is_ignored(self, engine, directory, board, caplog):
        directory.set_board_role("u1", board, "board_superstar")
        assert engine.get_effective_board_role("u1", board) is None
        assert "unknown role 'board_superstar'" in caplog.text

    def test_missing_board_is_not_found(self, engine):
        with pytest.raises(ResourceNotFoundError) as exc_info:
            engine.get_effective_board_role("u1", "nope")
        assert exc_info.value.resource_type == "board"

    def test_store_failure_propagates(self, engine, directory, board):
        directory.available = False
        with pytest.raises(StoreUnavailableError):
            engine.has_board_permission("u1", board, Permission.BOARDS_READ)

    def test_concurrent_reads_through_executor(self, catalog, directory, cache, board):
        directory.set_board_role("u1", board, Role.BOARD_MEMBER.value)
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_ADMIN.value)
        with ThreadPoolExecutor(max_workers=2) as executor:
            engine = ResolutionEngine(catalog, directory, directory, cache=cache, executor=executor)
            assert engine.get_effective_board_role("u1", board) is Role.WORKSPACE_ADMIN

    def test_executor_surfaces_store_failure(self, catalog, directory, board):
        directory.available = False
        with ThreadPoolExecutor(max_workers=2) as executor:
            engine = ResolutionEngine(catalog, directory, directory, executor=executor)
            with pytest.raises(StoreUnavailableError):
                engine.get_board_access("u1", board)


class TestBoardPermissions:
    def test_workspace_admin_inherits_board_update(self, engine, directory, board):
        directory.set_workspace_role("admin", "w1", Role.WORKSPACE_ADMIN.value)
        assert engine.has_board_permission("admin", board, "boards:update") is True

    def test_board_observer_cannot_create_cards(self, engine, directory, board):
        directory.set_board_role("obs", board, Role.BOARD_OBSERVER.value)
        assert engine.has_board_permission("obs", board, "cards:create") is False
        assert engine.can_view_board("obs", board).allowed is True

    def test_workspace_member_sees_workspace_board_but_cannot_delete(self, engine, directory):
        directory.add_workspace("w1")
        directory.add_board("b2", "w1", visibility=BoardVisibility.WORKSPACE)
        directory.set_workspace_role("v", "w1", Role.WORKSPACE_MEMBER.value)
        assert engine.can_view_board("v", "b2").allowed is True
        assert engine.has_board_permission("v", "b2", "boards:delete") is False

    def test_access_never_weaker_than_board_row(self, engine, catalog, directory, board):
        directory.set_board_role("u1", board, Role.BOARD_ADMIN.value)
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_OBSERVER.value)
        access = engine.get_board_access("u1", board)
        assert catalog.get_permissions_for_role(Role.BOARD_ADMIN.value) <= access.permissions

    def test_accepts_permission_enum(self, engine, directory, board):
        directory.set_board_role("u1", board, Role.BOARD_MEMBER.value)
        assert engine.has_board_permission("u1", board, Permission.CARDS_CREATE) is True
        assert engine.has_board_permission("u1", board, Permission.BOARDS_DELETE) is False

    def test_public_visibility_never_grants_permissions(self, engine, directory):
        directory.add_board("pub", "w1", visibility=BoardVisibility.PUBLIC)
        assert engine.can_view_board("stranger", "pub").allowed is True
        assert engine.has_board_permission("stranger", "pub", Permission.BOARDS_READ) is False


class TestCaching:
    def test_repeated_resolution_agrees_and_hits_cache(self, engine, directory, cache, board):
        directory.set_board_role("u1", board, Role.BOARD_MEMBER.value)
        first = engine.get_effective_board_role("u1", board)
        reads = len(directory.reads)
        second = engine.get_effective_board_role("u1", board)
        assert first is second is Role.BOARD_MEMBER
        assert len(directory.reads) == reads
        assert cache.get("u1", board_scope(board)) is not None

    def test_cache_miss_and_hit_paths_agree(self, catalog, directory, board):
        directory.set_board_role("u1", board, Role.BOARD_ADMIN.value)
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_MEMBER.value)
        uncached = ResolutionEngine(catalog, directory, directory)
        assert uncached.get_board_access("u1", board) == uncached.get_board_access("u1", board)

    def test_stale_put_after_concurrent_eviction_is_dropped(self, engine, directory, cache, board):
        directory.set_board_role("u1", board, Role.BOARD_MEMBER.value)
        original = directory.get_board_membership

        def evicting_read(user_id, board_id):
            row = original(user_id, board_id)
            # A membership mutation lands while this resolution is in flight
            cache.evict_user(user_id)
            return row

        directory.get_board_membership = evicting_read
        engine.get_board_access("u1", board)
        assert cache.get("u1", board_scope(board)) is None

    def test_cache_failure_falls_back_to_stores(self, catalog, directory, board, caplog):
        broken = MagicMock(spec=DecisionCache)
        broken.get.side_effect = CacheUnavailableError("down")
        broken.generation.side_effect = CacheUnavailableError("down")
        directory.set_board_role("u1", board, Role.BOARD_MEMBER.value)
        engine = ResolutionEngine(catalog, directory, directory, cache=broken)

        assert engine.has_board_permission("u1", board, Permission.CARDS_CREATE) is True
        broken.put.assert_not_called()
        assert "Decision cache read failed" in caplog.text


class TestCanViewBoard:
    def test_public_board_visible_to_anonymous(self, engine, directory):
        directory.add_board("pub", "w1", visibility=BoardVisibility.PUBLIC)
        assert engine.can_view_board(None, "pub").allowed is True

    def test_private_board_requires_authentication(self, engine, board):
        result = engine.can_view_board(None, board)
        assert result.allowed is False
        assert result.reason is DenialReason.AUTHENTICATION_REQUIRED

    def test_private_board_hidden_from_plain_workspace_member(self, engine, directory, board):
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_MEMBER.value)
        result = engine.can_view_board("u1", board)
        assert result.allowed is False
        assert result.reason is DenialReason.ACCESS_DENIED

    def test_private_board_visible_to_workspace_admin(self, engine, directory, board):
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_ADMIN.value)
        assert engine.can_view_board("u1", board).allowed is True

    def test_private_board_visible_from_moderator_tier_up(self, engine, directory, board):
        directory.set_workspace_role("mod", "w1", Role.WORKSPACE_MODERATOR.value)
        directory.set_workspace_role("root", "w1", Role.ADMIN.value)
        assert engine.can_view_board("mod", board).allowed is True
        assert engine.can_view_board("root", board).allowed is True

    def test_workspace_board_visible_to_workspace_observer(self, engine, directory):
        directory.add_board("b2", "w1", visibility=BoardVisibility.WORKSPACE)
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_OBSERVER.value)
        assert engine.can_view_board("u1", "b2").allowed is True

    def test_stranger_denied(self, engine, board):
        assert engine.can_view_board("stranger", board).reason is DenialReason.ACCESS_DENIED

    def test_missing_board(self, engine):
        with pytest.raises(ResourceNotFoundError):
            engine.can_view_board("u1", "missing")


class TestWorkspaceScope:
    def test_direct_membership_permissions(self, engine, directory):
        directory.add_workspace("w1")
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_ADMIN.value)
        assert engine.has_workspace_permission("u1", "w1", Permission.WORKSPACES_MANAGE) is True
        assert engine.get_workspace_role("u1", "w1") is Role.WORKSPACE_ADMIN

    def test_board_membership_does_not_lift_to_workspace(self, engine, directory, board):
        directory.set_board_role("u1", board, Role.BOARD_OWNER.value)
        assert engine.has_workspace_permission("u1", "w1", Permission.WORKSPACES_READ) is False

    def test_missing_workspace(self, engine):
        with pytest.raises(ResourceNotFoundError):
            engine.has_workspace_permission("u1", "nope", Permission.WORKSPACES_READ)

    def test_can_view_public_workspace_anonymously(self, engine, directory):
        directory.add_workspace("w1", visibility=WorkspaceVisibility.PUBLIC)
        assert engine.can_view_workspace(None, "w1").allowed is True

    def test_can_view_private_workspace(self, engine, directory):
        directory.add_workspace("w1")
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_OBSERVER.value)
        assert engine.can_view_workspace("u1", "w1").allowed is True
        assert engine.can_view_workspace("u2", "w1").reason is DenialReason.ACCESS_DENIED
        assert engine.can_view_workspace(None, "w1").reason is DenialReason.AUTHENTICATION_REQUIRED


class TestResolveBoardId:
    def test_list_and_card(self, engine, directory, board):
        directory.add_list("l1", board)
        directory.add_card("c1", "l1")
        assert engine.resolve_board_id("list", "l1") == board
        assert engine.resolve_board_id("card", "c1") == board

    def test_missing_card(self, engine):
        with pytest.raises(ResourceNotFoundError) as exc_info:
            engine.resolve_board_id("card", "ghost")
        assert exc_info.value.resource_type == "card"

    def test_unsupported_type(self, engine):
        with pytest.raises(ValueError):
            engine.resolve_board_id("workspace", "w1")


class TestMembershipPassthroughs:
    def test_rows_come_straight_from_the_store(self, engine, directory, board):
        directory.set_board_role("u1", board, Role.BOARD_ADMIN.value)
        directory.set_workspace_role("u1", "w1", Role.WORKSPACE_MEMBER.value)
        assert engine.get_board_membership("u1", board).role is Role.BOARD_ADMIN
        assert engine.get_workspace_membership("u1", "w1").role is Role.WORKSPACE_MEMBER
        assert engine.get_board_membership("u2", board) is None

    def test_rows_bypass_the_decision_cache(self, engine, directory, board):
        directory.set_board_role("u1", board, Role.BOARD_MEMBER.value)
        engine.get_board_access("u1", board)
        directory.remove_board_member("u1", board)
        assert engine.get_board_membership("u1", board) is None
