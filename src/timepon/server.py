"""MCP server exposing the metadata index.

Exposes 5 tools via stdio transport:
  - get_all_files: every tracked file with its metadata
  - get_files_by_tag: files carrying a tag
  - get_recent_files: files created within the last N hours
  - search_files: substring match on file name or summary
  - refresh_metadata: re-read every tracked file and save

Tool failures (bad arguments included) come back as a text payload; they never
stop the server. Diagnostics go to the logging stream, never to stdout.
"""

import json
import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import TimeponConfig
from .context import TimeponContext
from .store import InvalidArgumentError

logger = logging.getLogger(__name__)

SERVER_NAME = "timepon-mcp-server"


def _error(tool_name: str, error: Exception) -> str:
    return (
        f"Error in {tool_name}: {error}\n\n"
        "Please check the server output panel for details."
    )


def create_server(context: TimeponContext) -> FastMCP:
    """Create the MCP server with its tools bound to ``context``."""
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool()
    async def get_all_files() -> str:
        """Get all tracked files with their metadata (creation time, summary, tags). Returns a list of all files being tracked in the workspace."""
        try:
            files = context.index.list_all()
            return json.dumps({"count": len(files), "files": files}, indent=2)
        except Exception as e:
            logger.exception("get_all_files error")
            return _error("get_all_files", e)

    @mcp.tool()
    async def get_files_by_tag(tag: str) -> str:
        """Get files filtered by a specific tag (e.g., "md", "docs", "code", "config", "api", "data"). Common tags: md, js, ts, py, docs, code, config, api, tasks, data, architecture."""
        try:
            files = context.index.list_by_tag(tag)
            return json.dumps({"tag": tag, "count": len(files), "files": files}, indent=2)
        except InvalidArgumentError as e:
            logger.warning("get_files_by_tag: %s", e)
            return _error("get_files_by_tag", e)
        except Exception as e:
            logger.exception("get_files_by_tag error")
            return _error("get_files_by_tag", e)

    @mcp.tool()
    async def get_recent_files(hours: float = 24) -> str:
        """Get files created within a specified time period (default: last 24 hours)."""
        try:
            files = context.index.list_recent(hours)
            return json.dumps({"hours": hours, "count": len(files), "files": files}, indent=2)
        except InvalidArgumentError as e:
            logger.warning("get_recent_files: %s", e)
            return _error("get_recent_files", e)
        except Exception as e:
            logger.exception("get_recent_files error")
            return _error("get_recent_files", e)

    @mcp.tool()
    async def search_files(query: str) -> str:
        """Search files by filename or summary content using case-insensitive text matching."""
        try:
            files = context.index.search(query)
            return json.dumps({"query": query, "count": len(files), "files": files}, indent=2)
        except InvalidArgumentError as e:
            logger.warning("search_files: %s", e)
            return _error("search_files", e)
        except Exception as e:
            logger.exception("search_files error")
            return _error("search_files", e)

    @mcp.tool()
    async def refresh_metadata() -> str:
        """Force a refresh of the metadata by re-reading every tracked file."""
        try:
            stats = await context.refresh_metadata()
            return stats.message()
        except Exception as e:
            logger.exception("refresh_metadata error")
            return _error("refresh_metadata", e)

    return mcp


async def run_server(config: Optional[TimeponConfig] = None) -> int:
    """Run the MCP server on stdio transport until the client disconnects."""
    if config is None:
        config = TimeponConfig.from_env()

    try:
        async with TimeponContext(config) as context:
            mcp = create_server(context)
            logger.info("Timepon MCP server running")
            await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        return 1

    return 0
