# src/pgstat_collector/exceptions.py


class CollectorError(Exception):
    """Base class for all collector errors."""

    pass


class ConfigError(CollectorError):
    """Raised for missing or malformed configuration values."""

    pass


class ConnectError(CollectorError):
    """Raised when a database session cannot be established."""

    pass


class FetchError(CollectorError):
    """Raised when executing the snapshot query fails (including timeouts)."""

    pass


class RenderError(CollectorError):
    """Raised when a result column has a type the renderer does not support."""

    def __init__(self, column: str, type_tag: str):
        super().__init__(f"unsupported column type {type_tag!r} for column {column!r}")
        self.column = column
        self.type_tag = type_tag


class OutputError(CollectorError):
    """Raised when the compressed output file cannot be written or finalised."""

    pass
