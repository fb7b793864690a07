"""
Catalog stores that do not hit the database on the hot path.

The role/permission catalog only changes through administrative seeding, so the
engine keeps it in an unbounded, never-invalidated in-process cache.
"""

import logging
import threading
from typing import Dict, FrozenSet, Optional

from app.config.permissions_config import PERMISSION_MATRIX
from app.modules.rbac.models import RoleRecord
from app.modules.rbac.stores import CatalogStore

logger = logging.getLogger(__name__)

_MISSING = object()


class ConfigCatalogStore(CatalogStore):
    """Catalog served straight from the permission matrix in app.config"""

    def __init__(self, matrix: Optional[dict] = None):
        matrix = matrix or PERMISSION_MATRIX
        self._roles: Dict[str, RoleRecord] = {}
        self._permissions: Dict[str, FrozenSet[str]] = {}
        for role in matrix["roles"]:
            # Config roles have no database id; the name doubles as id
            self._roles[role["name"]] = RoleRecord(
                id=role["name"], name=role["name"], description=role.get("description")
            )
            self._permissions[role["name"]] = frozenset(role["permissions"])

    def get_role_by_name(self, name: str) -> Optional[RoleRecord]:
        return self._roles.get(name)

    def get_permissions_for_role(self, role_name: str) -> FrozenSet[str]:
        return self._permissions.get(role_name, frozenset())


class CachedCatalogStore(CatalogStore):
    """Read-through cache in front of another catalog store. Entries never expire."""

    def __init__(self, inner: CatalogStore):
        self.inner = inner
        self._permissions: Dict[str, FrozenSet[str]] = {}
        self._roles: Dict[str, object] = {}
        self._lock = threading.Lock()

    def get_permissions_for_role(self, role_name: str) -> FrozenSet[str]:
        cached = self._permissions.get(role_name)
        if cached is not None:
            return cached
        permissions = self.inner.get_permissions_for_role(role_name)
        with self._lock:
            self._permissions.setdefault(role_name, permissions)
        return permissions

    def get_role_by_name(self, name: str) -> Optional[RoleRecord]:
        cached = self._roles.get(name, _MISSING)
        if cached is not _MISSING:
            return cached
        role = self.inner.get_role_by_name(name)
        with self._lock:
            self._roles.setdefault(name, role)
        return role

    def warm_up(self, role_names) -> None:
        """Load the given roles up front so request handling never reads the catalog tables"""
        for name in role_names:
            self.get_role_by_name(name)
            self.get_permissions_for_role(name)
        logger.info(f"RBAC catalog warmed up with {len(self._permissions)} roles")
