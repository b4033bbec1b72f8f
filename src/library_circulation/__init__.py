"""
Library Circulation Package.

Books, members, checkouts and reservations kept in one relational store,
with a circulation engine that keeps every book's availability, borrower
and reservation queue consistent under concurrent use.

Key Components:
- models: Pydantic models returned by every operation
- database: SQLAlchemy schema, session management and repositories
- config: Configuration management with pydantic-settings
- resources: MCP resources (read-only views)
- tools: MCP tools (operations with side effects)
- cli: Command-line front end
"""

__version__ = "0.1.0"

from . import database

__all__ = [
    "__version__",
    "database",
]
