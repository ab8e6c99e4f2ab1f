class StockLedgerError(Exception):
    """Base exception for StockLedger."""
    pass

class DataValidationError(StockLedgerError):
    """Raised when a record or quantity fails validation."""
    pass

class ConfigError(StockLedgerError):
    """Raised when configuration is invalid."""
    pass

class StorageError(StockLedgerError):
    """Raised when reading from or writing to the document store fails."""

    def __init__(self, message: str, collection: str = None, step: str = None):
        super().__init__(message)
        self.collection = collection
        self.step = step

class DuplicateItemError(StockLedgerError):
    """Raised when an item name already exists (case-insensitive)."""
    pass

class ItemNotFoundError(StockLedgerError):
    """Raised when an explicitly requested item or transaction does not exist."""
    pass

class FileProcessingError(StockLedgerError):
    """Raised when import file processing fails."""
    pass
