#!/usr/bin/env python3
"""
Codex CLI

Command-line interface for fingerprinting source texts and curating the
artifact ledger.

Usage:
    codex <command> [subcommand] [options]

Commands:
    hash        Canonicalize a text file and print its fingerprint
    ledger      Archive, update and query ledger entries
    curator     Show and transfer the curator role
    config      Configuration management

Mutating commands load the snapshot named by --state (or
`ledger.state_path`), apply one operation, and write the snapshot back only
when the operation succeeded.

Exit codes:
    0   success
    1   operation or validation error
    2   usage error (argparse)
    3   input file not found

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from codex import __version__
from codex.config import get_config_manager
from codex.fingerprint import fingerprint_file, to_hex
from codex.hardening import (
    CodexError,
    SourceFileNotFound,
    Validators,
    ZERO_ADDRESS,
    ZERO_HASH,
)
from codex.ledger import Entry, Ledger
from codex.observability import (
    LogLayer,
    configure_logging,
    correlation_id_var,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from codex.store import load_ledger, save_ledger

logger = get_logger("cli", LogLayer.CLI)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_FILE_NOT_FOUND = 3

NORMALIZED_BEGIN = "=== NORMALIZED CONTENT ==="
NORMALIZED_END = "=== END NORMALIZED CONTENT ==="


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = EXIT_FAILURE):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False).rstrip("\n")
    return _format_text(data)


def _format_table(rows_data: List[Dict[str, Any]]) -> str:
    """Format a list of flat dicts as an ASCII table."""
    headers = list(rows_data[0].keys())
    rows = [[str(row.get(h, ""))[:40] for h in headers] for row in rows_data]
    widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

    lines = []
    lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
    lines.append("-+-".join("-" * w for w in widths))
    for row in rows:
        lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
    return "\n".join(lines)


def _format_text(data: Any) -> str:
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return _format_table(data)
    if isinstance(data, dict):
        lines = []
        for k, v in data.items():
            if isinstance(v, list) and v and isinstance(v[0], dict):
                lines.append(f"{k}:")
                lines.append(_format_table(v))
            elif isinstance(v, dict):
                lines.append(f"{k}:")
                lines.extend(f"  {line}" for line in _format_text(v).splitlines())
            else:
                lines.append(f"{k}: {'' if v is None else v}")
        return "\n".join(lines)
    return str(data)


def _entry_view(index: int, entry: Entry) -> Dict[str, Any]:
    view: Dict[str, Any] = {"index": index}
    view.update(entry.to_dict())
    return view


class CodexCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="codex",
            description="Canonical text fingerprints and the curated artifact ledger",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"codex {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=[f.value for f in OutputFormat],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error messages and warnings",
        )
        self.parser.add_argument(
            "--state",
            metavar="PATH",
            help="Ledger snapshot path (default: ledger.state_path)",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_hash_command()
        self._register_ledger_commands()
        self._register_curator_commands()
        self._register_config_commands()

    def _register_hash_command(self) -> None:
        hash_cmd = self.subparsers.add_parser("hash", help="Fingerprint a text file")
        hash_cmd.add_argument("file", help="UTF-8 text file")
        hash_cmd.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Print the normalized content before the hash",
        )

    @staticmethod
    def _add_entry_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--as", dest="caller", required=True, help="Caller address")
        parser.add_argument("--title", required=True, help="Artifact title")
        parser.add_argument("--source", default="", help="Source reference")
        parser.add_argument("--timestamp1", default="", help="First timestamp (free-form)")
        parser.add_argument("--timestamp2", default="", help="Second timestamp (free-form)")
        parser.add_argument("--note", dest="curator_note", default="", help="Curator note")
        parser.add_argument("--permaweb", dest="permaweb_link", default="", help="Permanent web link")
        parser.add_argument("--license", default="", help="License")
        parser.add_argument("--nft-address", default=ZERO_ADDRESS, help="External token contract address")
        parser.add_argument("--nft-id", type=int, default=0, help="External token id")
        content = parser.add_mutually_exclusive_group()
        content.add_argument("--file", help="Source text to canonicalize and fingerprint")
        content.add_argument("--content-hash", help="Precomputed 0x-prefixed SHA-256 digest")

    def _register_ledger_commands(self) -> None:
        """Register ledger subcommands."""
        ledger = self.subparsers.add_parser("ledger", help="Ledger operations")
        ledger_sub = ledger.add_subparsers(dest="subcommand")

        # ledger init
        init = ledger_sub.add_parser("init", help="Create an empty ledger snapshot")
        init.add_argument("--curator", required=True, help="Initial curator address")
        init.add_argument("--force", action="store_true", help="Overwrite an existing snapshot")

        # ledger archive
        archive = ledger_sub.add_parser("archive", help="Archive a new entry (version 1)")
        self._add_entry_arguments(archive)

        # ledger update
        update = ledger_sub.add_parser("update", help="Archive a new version of an entry")
        self._add_entry_arguments(update)
        update.add_argument("--deprecate-index", type=int, required=True, help="Index of the entry being superseded")

        # ledger get
        get = ledger_sub.add_parser("get", help="Show one entry")
        get.add_argument("index", type=int, help="Entry index")

        # ledger total
        ledger_sub.add_parser("total", help="Number of entries")

        # ledger latest
        latest = ledger_sub.add_parser("latest", help="Most recent entries first")
        latest.add_argument("--count", "-n", type=int, help="Number of entries (default: ledger.latest_default_count)")

        # ledger batch
        batch = ledger_sub.add_parser("batch", help="Entries in index order")
        batch.add_argument("start", type=int, help="First index")
        batch.add_argument("--count", "-n", type=int, help="Number of entries (default: ledger.max_batch_count)")

        # ledger find
        find = ledger_sub.add_parser("find", help="Entries carrying a content hash")
        target = find.add_mutually_exclusive_group(required=True)
        target.add_argument("--file", help="Source text to fingerprint")
        target.add_argument("--content-hash", help="0x-prefixed SHA-256 digest")

    def _register_curator_commands(self) -> None:
        """Register curator subcommands."""
        curator = self.subparsers.add_parser("curator", help="Curator governance")
        curator_sub = curator.add_subparsers(dest="subcommand")

        curator_sub.add_parser("show", help="Show curator and pending nominee")

        transfer = curator_sub.add_parser("transfer", help="Nominate a new curator")
        transfer.add_argument("--as", dest="caller", required=True, help="Current curator address")
        transfer.add_argument("--to", dest="new_curator", required=True, help="Nominee address")

        accept = curator_sub.add_parser("accept", help="Accept a pending nomination")
        accept.add_argument("--as", dest="caller", required=True, help="Nominee address")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        config_sub.add_parser("show", help="Show current configuration")

        get = config_sub.add_parser("get", help="Get a configuration value")
        get.add_argument("path", help="Config path (e.g., ledger.state_path)")

        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_OK

        token = set_correlation_id(generate_correlation_id())
        try:
            self._configure_logging(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return EXIT_OK

        except CLIError as e:
            self._report(parsed, e)
            return e.exit_code

        except SourceFileNotFound as e:
            self._report(parsed, e)
            return EXIT_FILE_NOT_FOUND

        except CodexError as e:
            self._report(parsed, e)
            return EXIT_FAILURE

        except Exception as e:
            logger.error("Unexpected failure", error_code=type(e).__name__, exc_info=True)
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return EXIT_FAILURE

        finally:
            correlation_id_var.reset(token)

    def _configure_logging(self, args: argparse.Namespace) -> None:
        mgr = get_config_manager()
        level = "error" if args.quiet else mgr.get("observability.log_level")
        configure_logging(level=level, fmt=mgr.get("observability.log_format"))

    def _report(self, args: argparse.Namespace, error: Exception) -> None:
        logger.warning(
            "Command failed",
            error_code=type(error).__name__,
            command=f"{args.command} {getattr(args, 'subcommand', None) or ''}".strip(),
        )
        if not args.quiet:
            print(f"Error: {error}", file=sys.stderr)

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".rstrip())

        return handler(args)

    # State helpers
    def _state_path(self, args: argparse.Namespace) -> pathlib.Path:
        return pathlib.Path(args.state or get_config_manager().get("ledger.state_path"))

    def _load(self, args: argparse.Namespace) -> Ledger:
        return load_ledger(self._state_path(args))

    def _save(self, args: argparse.Namespace, ledger: Ledger) -> str:
        return save_ledger(ledger, self._state_path(args))

    @staticmethod
    def _content_hash(args: argparse.Namespace) -> Any:
        if args.file:
            return fingerprint_file(args.file).digest
        if args.content_hash:
            return args.content_hash
        return ZERO_HASH

    @staticmethod
    def _entry_fields(args: argparse.Namespace) -> Dict[str, Any]:
        return dict(
            title=args.title,
            source=args.source,
            timestamp1=args.timestamp1,
            timestamp2=args.timestamp2,
            curator_note=args.curator_note,
            permaweb_link=args.permaweb_link,
            license=args.license,
            nft_address=args.nft_address,
            nft_id=args.nft_id,
        )

    def _clamp(self, count: int) -> int:
        return min(count, get_config_manager().get("ledger.max_batch_count"))

    # Hash handler
    def _handle_hash(self, args: argparse.Namespace) -> Any:
        result = fingerprint_file(args.file)
        if args.verbose:
            print(NORMALIZED_BEGIN)
            print(result.canonical)
            print(NORMALIZED_END)
            print()
        print(result.hex)
        return None

    # Ledger handlers
    def _handle_ledger_init(self, args: argparse.Namespace) -> Any:
        path = self._state_path(args)
        if path.exists() and not args.force:
            raise CLIError(f"Ledger snapshot already exists (use --force to overwrite): {path}")
        ledger = Ledger(args.curator)
        digest = self._save(args, ledger)
        return {"state": str(path), "curator": ledger.curator, "digest": digest}

    def _handle_ledger_archive(self, args: argparse.Namespace) -> Any:
        ledger = self._load(args)
        index = ledger.archive_entry(
            args.caller,
            content_hash=self._content_hash(args),
            **self._entry_fields(args),
        )
        digest = self._save(args, ledger)
        return {"entry": _entry_view(index, ledger.get_entry(index)), "digest": digest}

    def _handle_ledger_update(self, args: argparse.Namespace) -> Any:
        ledger = self._load(args)
        index = ledger.archive_updated_entry(
            args.caller,
            deprecate_index=args.deprecate_index,
            content_hash=self._content_hash(args),
            **self._entry_fields(args),
        )
        digest = self._save(args, ledger)
        return {
            "entry": _entry_view(index, ledger.get_entry(index)),
            "deprecated_index": args.deprecate_index,
            "digest": digest,
        }

    def _handle_ledger_get(self, args: argparse.Namespace) -> Any:
        ledger = self._load(args)
        return _entry_view(args.index, ledger.get_entry(args.index))

    def _handle_ledger_total(self, args: argparse.Namespace) -> Any:
        return {"total": self._load(args).get_total_entries()}

    def _handle_ledger_latest(self, args: argparse.Namespace) -> Any:
        ledger = self._load(args)
        count = args.count
        if count is None:
            count = get_config_manager().get("ledger.latest_default_count")
        total = ledger.get_total_entries()
        entries = ledger.get_latest_entries(self._clamp(count))
        return {
            "total": total,
            "entries": [_entry_view(total - 1 - i, e) for i, e in enumerate(entries)],
        }

    def _handle_ledger_batch(self, args: argparse.Namespace) -> Any:
        ledger = self._load(args)
        count = args.count
        if count is None:
            count = get_config_manager().get("ledger.max_batch_count")
        entries = ledger.get_entries_batch(args.start, self._clamp(count))
        return {
            "start": args.start,
            "entries": [_entry_view(args.start + i, e) for i, e in enumerate(entries)],
        }

    def _handle_ledger_find(self, args: argparse.Namespace) -> Any:
        ledger = self._load(args)
        if args.file:
            digest = fingerprint_file(args.file).digest
        else:
            digest = Validators.validate_digest(args.content_hash).unwrap()
        return {"content_hash": to_hex(digest), "indices": ledger.find_by_content_hash(digest)}

    # Curator handlers
    @staticmethod
    def _curator_view(ledger: Ledger) -> Dict[str, Any]:
        pending = ledger.pending_curator
        return {
            "curator": ledger.curator,
            "pending_curator": pending,
            "phase": "pending" if pending else "stable",
        }

    def _handle_curator_show(self, args: argparse.Namespace) -> Any:
        return self._curator_view(self._load(args))

    def _handle_curator_transfer(self, args: argparse.Namespace) -> Any:
        ledger = self._load(args)
        ledger.initiate_curator_transfer(args.caller, args.new_curator)
        self._save(args, ledger)
        return self._curator_view(ledger)

    def _handle_curator_accept(self, args: argparse.Namespace) -> Any:
        ledger = self._load(args)
        ledger.accept_curator_transfer(args.caller)
        self._save(args, ledger)
        return self._curator_view(ledger)

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    get_config_manager().load_defaults()
    cli = CodexCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
