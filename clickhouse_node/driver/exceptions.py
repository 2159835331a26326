"""
Exception classes for the ClickHouse node.  Names follow the DB API 2.0 convention used by most Python
database drivers; every message raised from this package has already had credentials scrubbed.
"""


class ClickHouseError(Exception):
    """Exception related to an operation with ClickHouse."""


class Error(ClickHouseError):
    """Base class of all other error exceptions."""


class InterfaceError(Error):
    """Raised for errors related to the node interface rather than the database itself."""


class DatabaseError(Error):
    """Raised for errors related to the database, including non-success HTTP responses from the server."""


class OperationalError(DatabaseError):
    """Raised for network level failures (connection refused, DNS failures, TLS errors, timeouts)."""


class DataError(DatabaseError):
    """Raised when the server returned a body that could not be decoded into the expected shape."""


class InternalError(DatabaseError):
    """Raised when the node encounters an internal inconsistency."""


class ProgrammingError(DatabaseError):
    """Raised for invalid configuration, such as an empty insert table name, before any request is sent."""
