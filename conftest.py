# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Root conftest — puts the repo root on sys.path so core/, patterns/ and reverie_mcp/ import uninstalled."""
