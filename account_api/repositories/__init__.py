"""
Persistence adapters.

Services depend on the repository (users, credentials and related records)
rather than on SQLAlchemy sessions directly.
"""

from .filters import FilterError, QueryFilter, parse_filter, parse_json_param
from .sql_repository import DuplicateEntryError, InvalidMobileError, SQLRepository

__all__ = [
    "DuplicateEntryError",
    "FilterError",
    "InvalidMobileError",
    "QueryFilter",
    "SQLRepository",
    "parse_filter",
    "parse_json_param",
]
