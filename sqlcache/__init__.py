"""
sqlcache: a thin statement executor around one database connection.
Prepares statements, binds typed parameters, optionally caches prepared
statements by query tag and exposes rows, counts and error descriptors.
"""
from .exceptions import CacheDisabledError, DatabaseError, DBConnectionError, QueryError, SettingsError
from .executor import StatementExecutor, query_tag
from .settings import ConnectionSettings
from .statement import ErrorInfo, ParamType

__all__ = [
    "CacheDisabledError",
    "ConnectionSettings",
    "DBConnectionError",
    "DatabaseError",
    "ErrorInfo",
    "ParamType",
    "QueryError",
    "SettingsError",
    "StatementExecutor",
    "query_tag",
]
