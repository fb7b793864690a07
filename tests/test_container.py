from unittest.mock import MagicMock

import pytest

from app.config import settings
from app.modules.rbac import container
from app.modules.rbac.cache import InMemoryDecisionCache, NullDecisionCache, RedisDecisionCache
from app.modules.rbac.catalog import CachedCatalogStore, ConfigCatalogStore
from app.modules.rbac.models import RoleRecord
from app.modules.rbac.stores import CatalogStore


class TestBuildDecisionCache:
    @pytest.mark.parametrize("backend, expected", [
        ("memory", InMemoryDecisionCache),
        ("none", NullDecisionCache),
        ("Memory", InMemoryDecisionCache),
    ])
    def test_backends(self, monkeypatch, backend, expected):
        monkeypatch.setattr(settings, "rbac_cache_backend", backend)
        assert isinstance(container.build_decision_cache(), expected)

    def test_redis_backend(self, monkeypatch):
        monkeypatch.setattr(settings, "rbac_cache_backend", "redis")
        monkeypatch.setattr(container, "get_redis", MagicMock())
        assert isinstance(container.build_decision_cache(), RedisDecisionCache)

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setattr(settings, "rbac_cache_backend", "memcached")
        with pytest.raises(ValueError):
            container.build_decision_cache()


class TestBuildCatalogStore:
    def test_config_source(self, monkeypatch):
        monkeypatch.setattr(settings, "rbac_catalog_source", "config")
        assert isinstance(container.build_catalog_store(), ConfigCatalogStore)

    def test_supabase_source_is_cached(self, monkeypatch):
        monkeypatch.setattr(settings, "rbac_catalog_source", "supabase")
        monkeypatch.setattr(container, "get_service_supabase", MagicMock())
        assert isinstance(container.build_catalog_store(), CachedCatalogStore)

    def test_unknown_source(self, monkeypatch):
        monkeypatch.setattr(settings, "rbac_catalog_source", "ldap")
        with pytest.raises(ValueError):
            container.build_catalog_store()


class TestCachedCatalogStore:
    def test_reads_through_once(self):
        inner = MagicMock(spec=CatalogStore)
        inner.get_permissions_for_role.return_value = frozenset({"boards:read"})
        inner.get_role_by_name.return_value = RoleRecord(id="r1", name="board_observer")
        store = CachedCatalogStore(inner)

        for _ in range(3):
            assert store.get_permissions_for_role("board_observer") == frozenset({"boards:read"})
            assert store.get_role_by_name("board_observer").id == "r1"

        inner.get_permissions_for_role.assert_called_once_with("board_observer")
        inner.get_role_by_name.assert_called_once_with("board_observer")

    def test_missing_role_is_remembered(self):
        inner = MagicMock(spec=CatalogStore)
        inner.get_role_by_name.return_value = None
        store = CachedCatalogStore(inner)
        assert store.get_role_by_name("ghost") is None
        assert store.get_role_by_name("ghost") is None
        inner.get_role_by_name.assert_called_once()

    def test_warm_up_loads_every_role(self):
        inner = MagicMock(spec=CatalogStore)
        inner.get_permissions_for_role.return_value = frozenset()
        store = CachedCatalogStore(inner)
        store.warm_up(["board_member", "board_admin"])
        assert inner.get_permissions_for_role.call_count == 2
