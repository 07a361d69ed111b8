"""
Engine Errors
Typed failures raised by the index, store, scoring and lifecycle layers.
"""


class RecsysError(Exception):
    """Base exception for all engine errors."""

    pass


class InvalidConfig(RecsysError):
    """Raised when an index is initialized with a bad dimension or capacity."""

    pass


class NotInitialized(RecsysError):
    """Raised when an index is used before init/load or after destroy."""

    pass


class DimensionMismatch(RecsysError):
    """Raised when a vector's length differs from the index dimension."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")


class NotNormalized(RecsysError):
    """Raised when a vector is not L2-normalized (or contains non-finite values)."""

    pass


class CapacityExceeded(RecsysError):
    """Raised when adding past the configured index capacity."""

    pass


class DuplicateItem(RecsysError):
    """Raised when adding a label that is already present in the index."""

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Item {item_id} is already indexed")


class CorruptIndex(RecsysError):
    """Raised when a persisted index cannot be read or does not match the deployment."""

    pass


class NotReady(RecsysError):
    """Raised when a request arrives while the engine is hydrating or shutting down."""

    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Service not ready (state={state})")


class PersistenceFailure(RecsysError):
    """Raised when saving the index or flushing the store fails."""

    pass


class HydrationError(RecsysError):
    """Raised when the index cannot be made consistent with the metadata store."""

    pass


class MetadataStoreError(RecsysError):
    """Raised when the metadata store cannot be read or written."""

    pass


class ItemNotFound(RecsysError):
    """Raised when an item id is unknown to the metadata store."""

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class UserNotFound(RecsysError):
    """Raised when a user id is unknown to the metadata store."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")
