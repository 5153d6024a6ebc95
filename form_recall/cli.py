from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from .app import FormRecallApp
from .commands import classify as cmd_classify
from .commands import clear as cmd_clear
from .commands import doctor as cmd_doctor
from .commands import lookup as cmd_lookup
from .commands import stats as cmd_stats
from .commands import sweep as cmd_sweep
from .config import Settings, find_config

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

C_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[37m",  # Light gray
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}


class ColorFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{C_RESET}"


class WarningBufferHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:  # pragma: no cover
            msg = record.getMessage()
        self.records.append(msg)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Remember and replay form field values")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    stats_parser = subparsers.add_parser("stats", help="Show cache bucket sizes and metadata")
    stats_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON to stdout")
    sweep_parser = subparsers.add_parser("sweep", help="Remove entries unused for longer than the TTL")
    sweep_parser.add_argument(
        "--force",
        action="store_true",
        help="Sweep even if the last cleanup is within the cleanup interval",
    )
    clear_parser = subparsers.add_parser("clear", help="Delete every cached value")
    clear_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    classify_parser = subparsers.add_parser(
        "classify", help="Show instance type, scope and key for fields in a JSON file"
    )
    classify_parser.add_argument("fields", type=Path, help="JSON file with field records")
    classify_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON to stdout")
    lookup_parser = subparsers.add_parser(
        "lookup", help="Show cached values that would be replayed for fields in a JSON file"
    )
    lookup_parser.add_argument("fields", type=Path, help="JSON file with field records")
    lookup_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON to stdout")
    subparsers.add_parser("doctor", help="Run basic config/cache/pipeline checks")
    return parser


def _load_settings(config: Optional[Path]) -> Settings:
    try:
        return Settings.load(find_config(config))
    except FileNotFoundError:
        if config is not None:
            raise
        logging.getLogger(__name__).info("No config.yaml found; using defaults")
        return Settings()


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    color_handler = logging.StreamHandler()
    color_handler.setFormatter(ColorFormatter(LOG_FORMAT))
    root_logger.addHandler(color_handler)

    warn_buffer = WarningBufferHandler()
    warn_buffer.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(warn_buffer)

    settings = _load_settings(args.config)

    app: FormRecallApp | None = None
    if args.command != "doctor":
        app = FormRecallApp.create(settings)

    try:
        match args.command:
            case "stats":
                asyncio.run(cmd_stats.run(app, json_output=args.json))
            case "sweep":
                asyncio.run(cmd_sweep.run(app, force=args.force))
            case "clear":
                if not asyncio.run(cmd_clear.run(app, assume_yes=args.yes)):
                    raise SystemExit(1)
            case "classify":
                asyncio.run(cmd_classify.run(app, args.fields, json_output=args.json))
            case "lookup":
                asyncio.run(cmd_lookup.run(app, args.fields, json_output=args.json))
            case "doctor":
                report = asyncio.run(cmd_doctor.run(settings))
                for line in report.checks:
                    print(line)
                if not report.ok:
                    raise SystemExit(1)
            case _:
                parser.error("Unknown command")
    finally:
        if app:
            app.close()
        if warn_buffer.records:
            print("\n\033[33mWarnings/Errors summary:\033[0m")
            for line in warn_buffer.records:
                print(f" - {line}")


if __name__ == "__main__":
    main()
