# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Shared FastMCP application instance and tool registration.

All sync tool handlers are wrapped in async def + run_in_executor so
concurrent MCP calls don't block each other (classification can take
seconds). The raw sync function is kept in _TOOL_REGISTRY so the CLI can
call the same handlers directly.
"""

import asyncio
import functools
import logging
import sys
from concurrent.futures import ThreadPoolExecutor

from core.paths import get_paths

# Central logging config — all reverie.* loggers route here
_log_path = get_paths().daemon_log
try:
    _log_path.parent.mkdir(parents=True, exist_ok=True)
    _handler = logging.FileHandler(str(_log_path))
except OSError:
    # Read-only data dir; stderr keeps stdout clean for MCP stdio
    _handler = logging.StreamHandler(sys.stderr)
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[_handler],
)

from mcp.server.fastmcp import FastMCP

mcp = FastMCP("reverie")

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="reverie-tool")

logger = logging.getLogger("reverie.app")

# Keys are the function name (e.g. "reverie_themes"), values are the RAW
# SYNC function, even when an async wrapper is registered with MCP.
_TOOL_REGISTRY: dict = {}


def tool():
    """Decorator replacing @mcp.tool().

    - Stores the raw sync function in _TOOL_REGISTRY.
    - Wraps sync functions in async def + run_in_executor for MCP registration.
    """
    def decorator(fn):
        name = fn.__name__
        _TOOL_REGISTRY[name] = fn

        if not asyncio.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(**kwargs):
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(
                    _executor, lambda: fn(**kwargs)
                )
            register_fn = async_wrapper
        else:
            register_fn = fn
        return mcp.tool()(register_fn)

    return decorator


def get_tool(name: str):
    """Raw sync handler by name, or None."""
    return _TOOL_REGISTRY.get(name)


def shutdown_executor() -> None:
    """Graceful shutdown of the tool executor pool."""
    _executor.shutdown(wait=False)
    logger.info("Tool executor pool shut down")
