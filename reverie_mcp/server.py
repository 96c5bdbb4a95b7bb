#!/usr/bin/env python3
# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie MCP Server

Tools live in reverie_mcp/tools/. Importing a module registers its tools
via the @tool() decorator.

5 tools:
- patterns: reverie_analyze_dream, reverie_nightmares, reverie_cycles,
            reverie_themes, reverie_settings
"""

import atexit
import logging

from reverie_mcp._app import mcp, shutdown_executor

logger = logging.getLogger("reverie.server")

import reverie_mcp.tools.patterns  # noqa: F401  registers tools


def _shutdown():
    """Graceful shutdown of the tool executor and the analysis pool."""
    from patterns.workers import shutdown_pool
    shutdown_pool()
    shutdown_executor()
    logger.info("Reverie server shutdown complete")


atexit.register(_shutdown)


if __name__ == "__main__":
    mcp.run()
