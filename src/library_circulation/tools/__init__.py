"""MCP tools for the library circulation service.

Tools are the operations with side effects: lending, returning and reserving
books, maintaining the catalog and member accounts, reading, and bulk import.
Each module exposes tool definitions as dicts with ``name``, ``description``,
``inputSchema`` and ``handler``; the server registers every entry of
``all_tools``.
"""

from .bulk_import import bulk_import_books
from .catalog import catalog_tools
from .circulation import circulation_tools
from .reading import read_book
from .search import search_catalog

all_tools = [search_catalog, *catalog_tools, *circulation_tools, read_book, bulk_import_books]

__all__ = [
    "all_tools",
    "bulk_import_books",
    "catalog_tools",
    "circulation_tools",
    "read_book",
    "search_catalog",
]
