# --- Resolution Exceptions ---
class RBACError(Exception):
    """Base class for authorization engine errors"""
    pass


class ResourceNotFoundError(RBACError):
    """A workspace, board, list or card id does not resolve"""

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type.capitalize()} '{resource_id}' not found")


# --- Infrastructure Exceptions ---
class StoreUnavailableError(RBACError):
    """Membership, resource or catalog store read failed"""
    pass


class CacheUnavailableError(RBACError):
    """Decision cache backend could not be reached"""
    pass
