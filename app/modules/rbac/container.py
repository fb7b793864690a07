import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from app.config import settings
from app.database.redis_client import get_redis
from app.database.supabase_client import get_service_supabase
from app.modules.rbac.authorizer import Authorizer
from app.modules.rbac.cache import (
    DecisionCache, InMemoryDecisionCache, NullDecisionCache, RedisDecisionCache
)
from app.modules.rbac.catalog import CachedCatalogStore, ConfigCatalogStore
from app.modules.rbac.engine import ResolutionEngine
from app.modules.rbac.invalidation import InvalidationHook
from app.modules.rbac.models import Role
from app.modules.rbac.stores import CatalogStore
from app.modules.rbac.supabase_stores import (
    SupabaseCatalogStore, SupabaseMembershipStore, SupabaseResourceStore
)

logger = logging.getLogger(__name__)


def build_decision_cache() -> DecisionCache:
    backend = settings.rbac_cache_backend.lower()
    if backend == "redis":
        return RedisDecisionCache(
            get_redis(),
            ttl_seconds=settings.rbac_cache_ttl_seconds,
            prefix=settings.rbac_cache_prefix,
        )
    if backend == "memory":
        return InMemoryDecisionCache(ttl_seconds=settings.rbac_cache_ttl_seconds)
    if backend == "none":
        return NullDecisionCache()
    raise ValueError(f"Unknown RBAC_CACHE_BACKEND '{settings.rbac_cache_backend}'")


def build_catalog_store() -> CatalogStore:
    source = settings.rbac_catalog_source.lower()
    if source == "config":
        return ConfigCatalogStore()
    if source == "supabase":
        return CachedCatalogStore(SupabaseCatalogStore(get_service_supabase()))
    raise ValueError(f"Unknown RBAC_CATALOG_SOURCE '{settings.rbac_catalog_source}'")


class RBACContainer:
    """Process-wide engine, cache and hook, created on first use"""

    _engine: ResolutionEngine = None
    _authorizer: Authorizer = None
    _hook: InvalidationHook = None
    _executor: ThreadPoolExecutor = None
    _lock = threading.Lock()

    @classmethod
    def _build(cls):
        supabase = get_service_supabase()
        cache = build_decision_cache()
        cls._executor = ThreadPoolExecutor(
            max_workers=settings.rbac_lookup_workers, thread_name_prefix="rbac-lookup"
        )
        cls._engine = ResolutionEngine(
            catalog=build_catalog_store(),
            memberships=SupabaseMembershipStore(supabase),
            resources=SupabaseResourceStore(supabase),
            cache=cache,
            executor=cls._executor,
        )
        cls._authorizer = Authorizer(cls._engine)
        cls._hook = InvalidationHook(cache)
        logger.info(
            f"RBAC engine ready (catalog={settings.rbac_catalog_source}, "
            f"cache={settings.rbac_cache_backend}, ttl={settings.rbac_cache_ttl_seconds}s)"
        )

    @classmethod
    def _ensure(cls):
        if cls._engine is None:
            with cls._lock:
                if cls._engine is None:
                    cls._build()

    @classmethod
    def get_engine(cls) -> ResolutionEngine:
        cls._ensure()
        return cls._engine

    @classmethod
    def get_authorizer(cls) -> Authorizer:
        cls._ensure()
        return cls._authorizer

    @classmethod
    def get_hook(cls) -> InvalidationHook:
        cls._ensure()
        return cls._hook

    @classmethod
    def warm_up(cls):
        cls.get_engine().warm_up(r.value for r in Role)

    @classmethod
    def reset(cls):
        with cls._lock:
            if cls._executor is not None:
                cls._executor.shutdown(wait=False)
            cls._engine = None
            cls._authorizer = None
            cls._hook = None
            cls._executor = None


def get_engine() -> ResolutionEngine:
    return RBACContainer.get_engine()


def get_authorizer() -> Authorizer:
    return RBACContainer.get_authorizer()


def get_invalidation_hook() -> InvalidationHook:
    return RBACContainer.get_hook()
