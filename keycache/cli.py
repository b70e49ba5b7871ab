#!/usr/bin/env python3
"""
keycache CLI

Command-line interface for exercising and inspecting keycache.

Usage:
    keycache [--format json|yaml|text] [--config FILE] <command> [options]

Commands:
    demo        Run the refresh demonstration: one cached entry, a thread
                refreshing its key periodically and reader threads reading it
    config      Configuration management (show, get, set, validate, schema)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import itertools
import json
import platform
import sys
import threading
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from keycache import __version__
from keycache.observability import Component, get_logger, timed_operation

logger = get_logger("cli", Component.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


# ════════════════════════════════════════════════════════════════════════════
# REFRESH DEMO
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class DemoReport:
    """Outcome of a demo run."""
    reads: int = 0
    loads: int = 0
    refreshes: int = 0
    errors: int = 0
    values_seen: List[int] = field(default_factory=list)
    final_value: Optional[int] = None
    elapsed_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["elapsed_seconds"] = round(self.elapsed_seconds, 3)
        return d


class RefreshDemo:
    """
    One entry whose loader is slow and returns an incrementing counter,
    a scheduler thread refreshing the entry's key at a fixed delay, and
    reader threads reading the entry at a fixed rate.

    Readers keep getting the previous counter value while a reload is in
    flight, then move on to the new one.
    """

    KEY = "keycache.demo"

    def __init__(
        self,
        readers: int,
        read_interval: float,
        refresh_interval: float,
        loader_delay: float,
    ):
        from keycache.registry import ObserverRegistry

        self.readers = readers
        self.read_interval = read_interval
        self.refresh_interval = refresh_interval
        self.loader_delay = loader_delay

        self.registry = ObserverRegistry(name="demo")
        self._counter = itertools.count()
        self._stop = threading.Event()
        self._report_lock = threading.Lock()
        self._report = DemoReport()
        self.entry = self.registry.entry(self.KEY, self._load_counter, name="demo-counter")

    def _load_counter(self) -> int:
        logger.info("Loader sleeping", delay_seconds=self.loader_delay)
        time.sleep(self.loader_delay)
        value = next(self._counter)
        logger.info("Loader woke up", value=value)
        return value

    def _refresh_loop(self) -> None:
        while not self._stop.is_set():
            self.registry.refresh(self.KEY)
            with self._report_lock:
                self._report.refreshes += 1
            self._stop.wait(self.refresh_interval)

    def _read_loop(self) -> None:
        while not self._stop.is_set():
            try:
                value = self.entry.get()
            except Exception as e:
                logger.error("Read failed", error_code="READ_FAILED", error=str(e))
                with self._report_lock:
                    self._report.errors += 1
            else:
                logger.info("Read value", value=value)
                with self._report_lock:
                    self._report.reads += 1
                    if value not in self._report.values_seen:
                        self._report.values_seen.append(value)
            self._stop.wait(self.read_interval)

    @timed_operation(logger, "demo")
    def run(self, duration: float) -> DemoReport:
        """Run for duration seconds and return the report."""
        start = time.monotonic()
        threads = [threading.Thread(target=self._refresh_loop, name="keycache-refresh", daemon=True)]
        threads.extend(
            threading.Thread(target=self._read_loop, name=f"keycache-reader-{i}", daemon=True)
            for i in range(self.readers)
        )
        for t in threads:
            t.start()

        self._stop.wait(duration)
        self._stop.set()
        # A reader may be inside a slow load; give it time to finish.
        for t in threads:
            t.join(timeout=self.loader_delay + self.read_interval + 2.0)

        report = self._report
        report.loads = self.entry.metrics.loads
        report.final_value = self.entry.peek()
        report.elapsed_seconds = time.monotonic() - start
        self.registry.remove_key(self.KEY)
        return report


# ════════════════════════════════════════════════════════════════════════════
# CLI APPLICATION
# ════════════════════════════════════════════════════════════════════════════


class KeyCacheCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="keycache",
            description="keycache refreshable lazy values",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"keycache {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            dest="config_file",
            help="YAML configuration file to load",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_demo_commands()
        self._register_config_commands()
        self.subparsers.add_parser("version", help="Show version information")

    def _register_demo_commands(self) -> None:
        demo = self.subparsers.add_parser("demo", help="Run the refresh demonstration")
        demo.add_argument("--readers", "-r", type=int, help="Reader threads")
        demo.add_argument("--read-interval", type=float, help="Seconds between reads")
        demo.add_argument("--refresh-interval", type=float, help="Seconds between refreshes")
        demo.add_argument("--loader-delay", type=float, help="Simulated loader latency in seconds")
        demo.add_argument("--duration", "-d", type=float, help="Run time in seconds")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., demo.readers)")

        set_cmd = config_sub.add_parser("set", help="Set configuration value for this invocation")
        set_cmd.add_argument("path", help="Config path")
        set_cmd.add_argument("value", help="Value to set")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            self._setup(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _setup(self, args: argparse.Namespace) -> None:
        from keycache.config import ConfigError, get_config_manager
        from keycache.observability import configure_logging_from_config

        mgr = get_config_manager()
        try:
            if args.config_file:
                mgr.load_from_file(args.config_file)
            else:
                mgr.load_defaults()
        except ConfigError as e:
            raise CLIError(str(e), exit_code=2) from e

        configure_logging_from_config()

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".strip())

        return handler(args)

    def _handle_version(self, args: argparse.Namespace) -> Any:
        return {"keycache": __version__, "python": platform.python_version()}

    # Demo handler
    def _handle_demo(self, args: argparse.Namespace) -> Any:
        from keycache.config import ValidationError, get_config_manager

        mgr = get_config_manager()
        overrides = {
            "demo.readers": args.readers,
            "demo.read_interval_seconds": args.read_interval,
            "demo.refresh_interval_seconds": args.refresh_interval,
            "demo.loader_delay_seconds": args.loader_delay,
            "demo.duration_seconds": args.duration,
        }
        for path, value in overrides.items():
            if value is None:
                continue
            try:
                mgr.set(path, value)
            except ValidationError as e:
                raise CLIError(f"{path}: {e}", exit_code=2) from e

        demo_config = mgr.config.demo
        demo = RefreshDemo(
            readers=demo_config.readers.get(),
            read_interval=demo_config.read_interval_seconds.get(),
            refresh_interval=demo_config.refresh_interval_seconds.get(),
            loader_delay=demo_config.loader_delay_seconds.get(),
        )
        report = demo.run(demo_config.duration_seconds.get())
        return report.to_dict()

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from keycache.config import ConfigError, get_config_manager
        mgr = get_config_manager()
        try:
            return {"path": args.path, "value": mgr.get(args.path)}
        except ConfigError as e:
            raise CLIError(str(e), exit_code=2) from e

    def _handle_config_set(self, args: argparse.Namespace) -> Any:
        from keycache.config import ConfigError, get_config_manager
        mgr = get_config_manager()
        try:
            mgr.set(args.path, args.value)
        except ConfigError as e:
            raise CLIError(str(e), exit_code=2) from e
        return {"path": args.path, "value": mgr.get(args.path), "status": "updated"}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from keycache.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from keycache.config import get_config_manager
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from keycache.config import get_config_manager
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = KeyCacheCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
