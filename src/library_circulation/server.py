"""Library Circulation MCP Server

Exposes the circulation service over the Model Context Protocol:

- Tools change state: checkout, return, reserve, cancel, read, catalog and
  member maintenance, bulk import
- Resources read state: the catalog, reservation queues, members

The server is a thin shell. Every tool call opens its own session and runs
one circulation operation; no state lives in the server process.
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .config import get_config
from .database.session import get_db_manager, reset_db_manager
from .observability import initialize_observability
from .resources import all_resources
from .tools import all_tools

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    # stdout carries the stdio transport
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

config = get_config()

mcp = FastMCP(
    name=config.server_name,
    version=config.server_version,
    instructions=(
        "Library circulation service. Members check out, return and reserve books; "
        "a checked-out book can be reserved, and reservations are served first come, "
        "first served when the book is returned. Use resources to browse the catalog "
        "and queues, and tools to change state. Circulation tools need the member's "
        "password."
    ),
)


for tool in all_tools:
    mcp.tool(name=tool["name"], description=tool["description"])(tool["handler"])

logger.info("Registered %d tools", len(all_tools))

for resource in all_resources:
    mcp.resource(
        resource["uri"],
        name=resource["name"],
        description=resource["description"],
        mime_type=resource["mime_type"],
    )(resource["handler"])

logger.info("Registered %d resources", len(all_resources))


def prepare_database() -> None:
    """Create tables and the search index; fail fast if the store is unreachable."""
    db = get_db_manager()
    if not db.verify_connection():
        raise RuntimeError(f"Cannot connect to database at {db.database_url}")
    fts_available = db.init_database()
    if not fts_available:
        logger.warning("Full-text search unavailable; catalog search uses substring matching")


def run_stdio_server() -> None:
    """Run the MCP server using stdio transport."""
    logger.info("Starting %s v%s on stdio transport", config.server_name, config.server_version)

    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")
    else:
        logging.getLogger().setLevel(config.log_level)
        logging.getLogger("fastmcp").setLevel(logging.WARNING)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        reset_db_manager()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        logger.info("MCP Server ready and waiting for connections...")
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)
    finally:
        reset_db_manager()


def main() -> None:
    """Entry point: `library-circulation-mcp`."""
    try:
        logger.info("Library Circulation MCP Server %s", config.server_version)
        logger.info("Transport: %s, debug: %s", config.transport, config.debug)

        initialize_observability()
        prepare_database()

        if config.transport == "stdio":
            run_stdio_server()
        else:
            logger.error("Unsupported transport: %s", config.transport)
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
