import pytest

from app.config import permissions_config
from app.config.permissions_config import PERMISSION_MATRIX, get_permission_matrix
from app.modules.rbac.models import Permission, Role
from app.scripts.seed_permissions_roles import check_tier_monotonicity


def role_permissions(name):
    return next(set(r["permissions"]) for r in PERMISSION_MATRIX["roles"] if r["name"] == name)


class TestPermissionMatrix:
    def test_every_role_is_defined(self):
        assert {r["name"] for r in PERMISSION_MATRIX["roles"]} == {r.value for r in Role}

    def test_permission_names_match_the_enum(self):
        assert {p["name"] for p in PERMISSION_MATRIX["permissions"]} == {p.value for p in Permission}

    def test_workspace_member_cannot_delete_boards(self):
        assert "boards:delete" not in role_permissions("workspace_member")
        assert "boards:delete" in role_permissions("board_owner")

    def test_observers_are_read_only(self):
        for name in ("board_observer", "workspace_observer"):
            writes = {p for p in role_permissions(name) if not p.endswith(":read")}
            assert writes <= {"users:update"}

    def test_admin_holds_everything(self):
        assert role_permissions("admin") == {p.value for p in Permission}

    def test_tiers_are_monotonic(self):
        assert check_tier_monotonicity(PERMISSION_MATRIX) == []

    def test_monotonicity_violation_is_reported(self):
        matrix = get_permission_matrix()
        for role in matrix["roles"]:
            if role["name"] == "board_admin":
                role["permissions"].remove("members:read")
        violations = check_tier_monotonicity(matrix)
        assert sorted(violations) == [
            "board_admin lacks members:read held by board_member",
            "board_admin lacks members:read held by board_observer",
        ]

    def test_unknown_action_is_rejected(self, monkeypatch):
        monkeypatch.setitem(
            permissions_config.ROLE_TYPES, "board_member",
            {"grants": {"cards": ["fly"]}, "description": "broken"},
        )
        with pytest.raises(ValueError):
            get_permission_matrix()
