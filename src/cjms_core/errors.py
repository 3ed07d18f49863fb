"""Error kinds shared by the store, warehouse reader, affiliate client and jobs."""


class CJMSError(Exception):
    """Base exception for all CJMS errors."""


class NotFoundError(CJMSError):
    """Raised when a requested row does not exist."""


class ConflictError(CJMSError):
    """Raised when a write violates a unique constraint."""


class WarehouseRowError(CJMSError):
    """Base exception for cell-level warehouse decoding errors."""


class InvalidColumnNameError(WarehouseRowError):
    """Raised when a column name is not in the result schema."""

    def __init__(self, col_name: str):
        self.col_name = col_name
        super().__init__(f"Invalid column name (col_name: {col_name})")


class InvalidColumnTypeError(WarehouseRowError):
    """Raised when a cell cannot be coerced to the requested type."""

    def __init__(self, col_name: str, col_type: str, type_requested: str):
        self.col_name = col_name
        self.col_type = col_type
        self.type_requested = type_requested
        super().__init__(
            f"Invalid column type (col_name: {col_name}, col_type: {col_type}, "
            f"type_requested: {type_requested})"
        )


class NoDataError(WarehouseRowError):
    """Raised when a required cell is null or the cursor is not on a row."""


class TransportError(CJMSError):
    """Raised for HTTP failures and non-2xx responses."""

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message)


class DeserializeError(CJMSError):
    """Raised when a remote response cannot be parsed."""


class ConfigMissingError(CJMSError):
    """Raised when configuration is missing or invalid."""


class FatalDependencyError(CJMSError):
    """Raised when a required dependency (store, access token) is unavailable."""
