from .adapter import FindOptions, StorageAdapter, TransactionContext

__all__ = ["FindOptions", "StorageAdapter", "TransactionContext"]
