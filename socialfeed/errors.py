"""
Domain error kinds raised by the stores, the cache-aside layer and the services.

Callers map these to transport responses; driver and Redis exceptions never
cross the store boundary.
"""


class StoreError(Exception):
    """Base class for every error the core surfaces to callers."""


class NotFoundError(StoreError):
    pass


class DirtyRecordError(StoreError):
    """The row changed since it was read (lost optimistic-concurrency race)."""


class AlreadyExistsError(StoreError):
    pass


class ConflictError(StoreError):
    pass


class DuplicateEmailError(StoreError):
    pass


class DuplicateUsernameError(StoreError):
    pass


class CouldNotCreateRecordError(StoreError):
    pass


class ForbiddenError(StoreError):
    pass


class ValidationError(StoreError):
    pass


class InternalError(StoreError):
    pass
