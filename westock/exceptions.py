
class ApplicationError(Exception):
    """Base class for application-specific errors."""
    pass

class ItemNotFoundError(ApplicationError):
    """Raised when an inventory item is not found."""
    pass

class BundleNotFoundError(ApplicationError):
    """Raised when a bundle is not found."""
    pass

class ShareRecordNotFoundError(ApplicationError):
    """Raised when a share token points at a record that does not exist."""
    pass

class InvalidShareTokenError(ApplicationError):
    """Raised when a share token does not have the WS-<id> form."""
    pass

class LocalStorageError(ApplicationError):
    """Raised when the local store cannot read or write its file."""
    def __init__(self, message="A local storage error occurred.", original_exception=None):
        super().__init__(message)
        self.original_exception = original_exception

class StorageQuotaExceededError(LocalStorageError):
    """Raised when a write would exceed the local storage quota."""
    pass

class DatabaseError(ApplicationError):
    """Raised for remote document store errors not specifically handled."""
    def __init__(self, message="A database error occurred.", original_exception=None):
        super().__init__(message)
        self.original_exception = original_exception

class SyncError(ApplicationError):
    """Base class for manual synchronization failures."""
    pass

class NoIdentityError(SyncError):
    """Raised when a sync operation needs a signed-in user and none is bound."""
    pass

class RemoteDocumentNotFoundError(SyncError):
    """Raised when pulling and the user has no remote document yet."""
    pass
