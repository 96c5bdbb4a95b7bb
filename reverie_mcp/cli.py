# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie CLI — run the MCP server or poke at a user's pattern history.

Usage:
    reverie serve                              Start MCP server (stdio)
    reverie analyze "text" --user U --dream D  Classify + record one dream
    reverie analyze --file dream.txt ...       Read dream text from a file
    reverie nightmares --user U --tier vip     Nightmare summary
    reverie cycles --user U --tier premium     Recurring cycles
    reverie themes --user U [-n 10]            Most frequent themes
    reverie settings --user U                  Show opt-ins
    reverie settings --user U --nightmares on  Change opt-ins
    reverie --data-dir PATH                    Override data directory
"""

import argparse
import os
import sys
import uuid
from pathlib import Path

from core.tiers import TIER_ORDER


def _serve(data_dir: Path) -> None:
    """Start the MCP server over stdio."""
    from core.paths import configure
    configure(data_dir)

    from reverie_mcp.server import mcp
    mcp.run()


def _run_tool(data_dir: Path, name: str, **kwargs) -> None:
    """Call a tool's raw sync handler and print its report."""
    from core.paths import configure
    configure(data_dir).ensure_dirs()

    import reverie_mcp.tools.patterns  # noqa: F401  registers tools
    from reverie_mcp._app import get_tool
    print(get_tool(name)(**kwargs))


def _on_off(value: str) -> bool:
    if value.lower() in ("on", "yes", "true", "1"):
        return True
    if value.lower() in ("off", "no", "false", "0"):
        return False
    raise argparse.ArgumentTypeError(f"expected on/off, got {value!r}")


def _add_user(p: argparse.ArgumentParser, tier: bool = True) -> None:
    p.add_argument("--user", required=True, dest="user_id", help="User id")
    if tier:
        p.add_argument("--tier", choices=TIER_ORDER, default="free",
                       help="Subscription tier (default: free)")
    p.add_argument("--data-dir", type=Path, default=None, dest="sub_data_dir",
                   help="Override data directory")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="reverie",
        description="Reverie — dream pattern and recurring-cycle detection",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        dest="top_data_dir",
        help="Override data directory (default: $REVERIE_DATA_DIR or ~/.reverie/)",
    )
    parser.add_argument(
        "--version", action="store_true",
        help="Show version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    # serve
    serve_parser = sub.add_parser("serve", help="Start MCP server (stdio)")
    serve_parser.add_argument("--data-dir", type=Path, default=None, dest="sub_data_dir",
                              help="Override data directory (default: $REVERIE_DATA_DIR or ~/.reverie/)")

    # analyze
    analyze_parser = sub.add_parser("analyze", help="Classify and record one dream")
    analyze_parser.add_argument("text", nargs="?", default=None, help="Dream text")
    analyze_parser.add_argument("--file", type=Path, default=None,
                                help="Read dream text from a file")
    analyze_parser.add_argument("--dream", default=None, dest="dream_id",
                                help="Dream id (default: random)")
    _add_user(analyze_parser)

    # nightmares
    _add_user(sub.add_parser("nightmares", help="Nightmare pattern summary"))

    # cycles
    _add_user(sub.add_parser("cycles", help="Recurring dream cycles"))

    # themes
    themes_parser = sub.add_parser("themes", help="Most frequent themes")
    themes_parser.add_argument("-n", type=int, default=10, help="How many (default: 10)")
    _add_user(themes_parser, tier=False)

    # settings
    settings_parser = sub.add_parser("settings", help="Show or change tracking opt-ins")
    settings_parser.add_argument("--nightmares", type=_on_off, default=None,
                                 help="Nightmare tracking on/off")
    settings_parser.add_argument("--recurring", type=_on_off, default=None,
                                 help="Recurring dream tracking on/off")
    _add_user(settings_parser, tier=False)

    args = parser.parse_args()

    # --version
    if getattr(args, "version", False):
        try:
            from importlib.metadata import version
            print(f"reverie-patterns {version('reverie-patterns')}")
        except Exception:
            print("reverie-patterns (version unknown — not installed via pip)")
        sys.exit(0)

    # Resolve data dir: subcommand flag → top-level flag → env → default
    raw = getattr(args, "sub_data_dir", None) or getattr(args, "top_data_dir", None)
    if raw:
        data_dir = raw.expanduser().resolve()
    else:
        env = os.environ.get("REVERIE_DATA_DIR")
        if env:
            data_dir = Path(env).expanduser().resolve()
        else:
            data_dir = Path.home() / ".reverie"

    if args.command == "serve":
        _serve(data_dir)
    elif args.command == "analyze":
        if args.file:
            text = args.file.read_text()
        elif args.text is not None:
            text = args.text
        else:
            text = sys.stdin.read()
        _run_tool(data_dir, "reverie_analyze_dream",
                  dream_text=text,
                  dream_id=args.dream_id or uuid.uuid4().hex[:12],
                  user_id=args.user_id, tier=args.tier)
    elif args.command == "nightmares":
        _run_tool(data_dir, "reverie_nightmares", user_id=args.user_id, tier=args.tier)
    elif args.command == "cycles":
        _run_tool(data_dir, "reverie_cycles", user_id=args.user_id, tier=args.tier)
    elif args.command == "themes":
        _run_tool(data_dir, "reverie_themes", user_id=args.user_id, n=args.n)
    elif args.command == "settings":
        if args.nightmares is None and args.recurring is None:
            _run_tool(data_dir, "reverie_settings", user_id=args.user_id)
        else:
            _run_tool(data_dir, "reverie_settings", user_id=args.user_id, action="set",
                      nightmare_tracking=args.nightmares, recurring_dreams=args.recurring)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
