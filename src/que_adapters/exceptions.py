"""
Adapter-specific exception classes.
"""
import psycopg.errors


class QueError(Exception):
    """Base class for all adapter errors.
    """


class ConfigurationError(QueError, ValueError):
    """Invalid or incomplete adapter configuration.
    """


class QueryError(QueError):
    """Error in command resolution or execution.
    """


class UnknownStatementError(QueryError, KeyError):
    """A named command has no entry in the template table.
    """

    def __str__(self) -> str:
        return Exception.__str__(self)


# Raised by the backend when a prepared statement name is not known to
# the session, e.g. after a pool transparently replaced the connection.
InvalidStatementName = psycopg.errors.InvalidSqlStatementName
