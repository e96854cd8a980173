"""JSON snapshot persistence for a ledger and its curator state.

Snapshots are canonical JSON (sorted keys, compact separators, UTF-8) so that
the same ledger always serializes to the same bytes and the digest returned
by ``save_ledger`` can be compared across machines.

Format ``codex-ledger/v1``::

    {
      "format": "codex-ledger/v1",
      "curator": "0x…",
      "pending_curator": "0x…" | null,
      "entries": [
        {"title": …, …, "version_index": 1, "deprecated": false,
         "nft_address": "0x…", "nft_id": "0", "content_hash": "0x…"}
      ]
    }

``nft_id`` is written as a decimal string; token ids are unbounded integers
and JSON readers elsewhere may not keep them exact.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any, Dict, Optional, Union

from jsonschema import Draft202012Validator

from codex.core import canonical_json_bytes, load_json, sha256_bytes, write_canonical_json
from codex.events import EventBus
from codex.fingerprint import from_hex
from codex.hardening import CodexError, ValidationError
from codex.ledger import TEXT_FIELDS, Entry, Ledger
from codex.observability import LogLayer, get_logger

logger = get_logger("store", LogLayer.STORE)

SNAPSHOT_FORMAT = "codex-ledger/v1"

_ADDRESS = {"type": "string", "pattern": "^0x[0-9a-fA-F]{40}$"}

SNAPSHOT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Codex ledger snapshot",
    "type": "object",
    "additionalProperties": False,
    "required": ["format", "curator", "pending_curator", "entries"],
    "properties": {
        "format": {"const": SNAPSHOT_FORMAT},
        "curator": _ADDRESS,
        "pending_curator": {"anyOf": [_ADDRESS, {"type": "null"}]},
        "entries": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": list(TEXT_FIELDS) + [
                    "version_index",
                    "deprecated",
                    "nft_address",
                    "nft_id",
                    "content_hash",
                ],
                "properties": {
                    **{name: {"type": "string"} for name in TEXT_FIELDS},
                    "version_index": {"type": "integer", "minimum": 1},
                    "deprecated": {"type": "boolean"},
                    "nft_address": _ADDRESS,
                    "nft_id": {"type": "string", "pattern": "^(0|[1-9][0-9]*)$"},
                    "content_hash": {"type": "string", "pattern": "^0x[0-9a-fA-F]{64}$"},
                },
            },
        },
    },
}


class StoreError(CodexError):
    """Snapshot could not be read, validated or written."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{message}: {path}" if path else message)


def _entry_to_record(entry: Entry) -> Dict[str, Any]:
    record = entry.to_dict()
    record["nft_id"] = str(entry.nft_id)
    return record


def _record_to_entry(record: Dict[str, Any]) -> Entry:
    return Entry(
        **{name: record[name] for name in TEXT_FIELDS},
        version_index=record["version_index"],
        deprecated=record["deprecated"],
        nft_address=record["nft_address"].lower(),
        nft_id=int(record["nft_id"]),
        content_hash=from_hex(record["content_hash"]),
    )


def snapshot(ledger: Ledger) -> Dict[str, Any]:
    """Serializable view of the full ledger state."""
    return {
        "format": SNAPSHOT_FORMAT,
        "curator": ledger.curator,
        "pending_curator": ledger.pending_curator,
        "entries": [_entry_to_record(entry) for _, entry in ledger.iter_entries()],
    }


def validate_snapshot(data: Any) -> None:
    """Raise StoreError with the first schema violation, if any."""
    validator = Draft202012Validator(SNAPSHOT_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    if errors:
        first = errors[0]
        where = "/".join(str(p) for p in first.absolute_path) or "<root>"
        raise StoreError(f"Invalid snapshot at {where}: {first.message}")


def restore(data: Any, event_bus: Optional[EventBus] = None) -> Ledger:
    """Rebuild a ledger from ``snapshot`` output. Emits no events."""
    validate_snapshot(data)
    try:
        entries = [_record_to_entry(record) for record in data["entries"]]
        return Ledger.restore(
            data["curator"],
            entries,
            data["pending_curator"],
            event_bus=event_bus,
        )
    except ValidationError as e:
        raise StoreError(f"Invalid snapshot: {e}") from e


def snapshot_digest(ledger: Ledger) -> str:
    """SHA-256 (hex) of the canonical snapshot bytes."""
    return sha256_bytes(canonical_json_bytes(snapshot(ledger)))


def save_ledger(ledger: Ledger, path: Union[str, pathlib.Path]) -> str:
    """Atomically write the ledger snapshot; returns the SHA-256 of its canonical bytes."""
    target = pathlib.Path(path)
    try:
        digest = write_canonical_json(target, snapshot(ledger))
    except OSError as e:
        logger.error("Failed to write ledger snapshot", error_code="StoreError", path=str(target))
        raise StoreError(f"Could not write snapshot ({e.strerror or e})", str(target)) from e
    logger.info(
        "Saved ledger snapshot",
        operation="save_ledger",
        path=str(target),
        entries=ledger.get_total_entries(),
        digest=digest,
    )
    return digest


def load_ledger(path: Union[str, pathlib.Path], event_bus: Optional[EventBus] = None) -> Ledger:
    """Read and restore a snapshot written by ``save_ledger``."""
    source = pathlib.Path(path)
    if not source.exists():
        raise StoreError("Ledger snapshot not found", str(source))
    try:
        data = load_json(source)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Unreadable ledger snapshot", error_code="StoreError", path=str(source))
        raise StoreError(f"Could not read snapshot ({e})", str(source)) from e

    try:
        ledger = restore(data, event_bus=event_bus)
    except StoreError as e:
        logger.warning("Rejected ledger snapshot", error_code="StoreError", path=str(source))
        raise StoreError(str(e), str(source)) from e

    logger.debug(
        "Loaded ledger snapshot",
        operation="load_ledger",
        path=str(source),
        entries=ledger.get_total_entries(),
    )
    return ledger
