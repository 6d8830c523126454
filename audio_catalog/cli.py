from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

import yaml

from .app import AudioCatalogApp
from .commands import importing as cmd_import
from .commands import listing as cmd_list
from .commands import modify as cmd_modify
from .commands import stats as cmd_stats
from .commands import update as cmd_update
from .config import load_settings
from .models import AudioCatalogError

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

ANSI_RESET = "\033[0m"
ANSI_YELLOW = "\033[33m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[2m",
    logging.WARNING: ANSI_YELLOW,
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}


class ColorFormatter(logging.Formatter):
    """Wraps each formatted line in the colour for its level; INFO stays plain."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{text}{ANSI_RESET}" if color else text


class WarningBufferHandler(logging.Handler):
    """Keeps warnings raised during a command so they can be repeated at exit."""

    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.lines: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.lines.append(self.format(record))

    def print_summary(self) -> None:
        if not self.lines:
            return
        print(f"\n{ANSI_YELLOW}{len(self.lines)} warning(s) during this run:{ANSI_RESET}")
        for line in self.lines:
            print(f"  - {line}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Music library importer and query tool")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    import_parser = subparsers.add_parser(
        "import", help="Scan paths, match albums against MusicBrainz and add them to the library"
    )
    import_parser.add_argument("paths", nargs="+", type=Path)

    ls_parser = subparsers.add_parser("ls", help="List tracks matching a query")
    ls_parser.add_argument("query", nargs="*", help="Query terms, e.g. artist:beatles year-")
    ls_parser.add_argument("--album", action="store_true", help="List albums instead of tracks")
    ls_parser.add_argument(
        "--explain", action="store_true", help="Print the compiled clauses before the results"
    )

    subparsers.add_parser("stats", help="Show library statistics")

    modify_parser = subparsers.add_parser("modify", help="Set fields on tracks matching a query")
    modify_parser.add_argument("query", nargs="+")
    modify_parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        required=True,
        metavar="FIELD=VALUE",
        help="Field assignment, may be repeated",
    )

    update_parser = subparsers.add_parser("update", help="Re-read tags from disk for tracks matching a query")
    update_parser.add_argument("query", nargs="*", help="Query terms; all tracks when omitted")

    remove_parser = subparsers.add_parser("remove", help="Remove tracks matching a query from the library")
    remove_parser.add_argument("query", nargs="+")
    return parser


def configure_logging(level_name: str) -> WarningBufferHandler:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    console = logging.StreamHandler()
    console.setFormatter(ColorFormatter(LOG_FORMAT))
    warning_buffer = WarningBufferHandler()
    warning_buffer.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[console, warning_buffer], force=True)

    # musicbrainzngs logs every request at INFO.
    logging.getLogger("musicbrainzngs").setLevel(logging.WARNING)
    return warning_buffer


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    warn_buffer = configure_logging(args.log_level)
    app: Optional[AudioCatalogApp] = None
    try:
        app = AudioCatalogApp.create(load_settings(args.config))
        match args.command:
            case "import":
                cmd_import.run(app, args.paths)
            case "ls":
                cmd_list.run(
                    app.library,
                    " ".join(args.query),
                    album=args.album,
                    explain=args.explain,
                )
            case "stats":
                cmd_stats.run(app.library)
            case "modify":
                cmd_modify.run_modify(app.library, " ".join(args.query), args.assignments)
            case "update":
                cmd_update.run(app.library, " ".join(args.query))
            case "remove":
                cmd_modify.run_remove(app.library, " ".join(args.query))
            case _:
                parser.error("Unknown command")
    except (AudioCatalogError, OSError, ValueError, yaml.YAMLError) as exc:
        raise SystemExit(f"Error: {exc}") from exc
    finally:
        if app is not None:
            app.close()
        warn_buffer.print_summary()


if __name__ == "__main__":  # pragma: no cover
    main()
