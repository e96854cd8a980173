"""
Codex Ledger

Append-only, versioned registry of curated artifact records.

Each ``Entry`` describes one version of an artifact (titles, sources,
timestamps, licensing, an optional external token reference) and may carry
the fingerprint of its canonical source text. Entries are addressed by their
position in insertion order; a position is never reused.

Version chains:

    archive_entry(...)                  -> index 0, version 1 (active)
    archive_updated_entry(..., 0)       -> index 1, version 2 (active)
                                           index 0 becomes deprecated
    archive_updated_entry(..., 1)       -> index 2, version 3 (active)

Every mutation is gated by the curator (``codex.governance``), validated in
full before anything changes, and announced on the event bus after it
commits.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

from codex.events import EntryArchived, EntryDeprecated, Event, EventBus
from codex.fingerprint import to_hex
from codex.governance import CuratorGovernance, CuratorState
from codex.hardening import (
    AlreadyDeprecated,
    CodexError,
    IndexOutOfRange,
    ValidationError,
    Validators,
    ZERO_ADDRESS,
    ZERO_HASH,
)
from codex.observability import LogLayer, get_logger

logger = get_logger("ledger", LogLayer.LEDGER)

TEXT_FIELDS = (
    "title",
    "source",
    "timestamp1",
    "timestamp2",
    "curator_note",
    "permaweb_link",
    "license",
)


# =============================================================================
# ENTRY
# =============================================================================

@dataclass(frozen=True)
class Entry:
    """One version of a curated artifact record."""
    title: str
    source: str
    timestamp1: str
    timestamp2: str
    curator_note: str
    permaweb_link: str
    license: str
    version_index: int = 1
    deprecated: bool = False
    nft_address: str = ZERO_ADDRESS
    nft_id: int = 0
    content_hash: bytes = ZERO_HASH

    @property
    def is_active(self) -> bool:
        return not self.deprecated

    @property
    def has_nft(self) -> bool:
        return self.nft_address != ZERO_ADDRESS

    @property
    def has_content_hash(self) -> bool:
        return self.content_hash != ZERO_HASH

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["content_hash"] = to_hex(self.content_hash)
        return d


def _validate_fields(
    fields: Dict[str, Any],
    nft_address: Any,
    nft_id: Any,
    content_hash: Any,
) -> Dict[str, Any]:
    """Validate and normalize entry fields, raising the first ValidationError."""
    clean: Dict[str, Any] = {}
    for name in TEXT_FIELDS:
        clean[name] = Validators.validate_text(fields.get(name), name).unwrap()
    clean["nft_address"] = Validators.validate_address(nft_address, "nft_address").unwrap()
    clean["nft_id"] = Validators.validate_index(nft_id, "nft_id").unwrap()
    clean["content_hash"] = Validators.validate_digest(content_hash, "content_hash").unwrap()
    return clean


def _check_count(count: Any) -> None:
    if isinstance(count, bool) or not isinstance(count, int):
        raise ValidationError("count", f"Expected integer, got {type(count).__name__}", count)


# =============================================================================
# LEDGER
# =============================================================================

class Ledger:
    """
    Ordered store of ``Entry`` records with curator-gated mutation.

    One re-entrant lock serializes every mutation, including the curator
    transfer operations delegated to ``CuratorGovernance``. Events are
    published before the lock is released, so subscribers see them in commit
    order; a handler that calls back into the ledger from the publishing
    thread re-enters the lock. Queries copy references under the lock;
    entries themselves are immutable.

    Example:
        ledger = Ledger("0x" + "ab" * 20)
        idx = ledger.archive_entry(
            "0x" + "ab" * 20,
            title="The Tale", source="", timestamp1="", timestamp2="",
            curator_note="", permaweb_link="", license="CC-BY-4.0",
        )
        ledger.get_entry(idx).version_index   # 1
    """

    def __init__(self, curator: str, *, event_bus: Optional[EventBus] = None):
        self._lock = threading.RLock()
        self._entries: List[Entry] = []
        self._event_bus = event_bus
        self._state = CuratorState(
            curator=Validators.validate_identity(curator, "curator").unwrap()
        )
        self.governance = CuratorGovernance(
            self._state, lock=self._lock, event_bus=event_bus
        )

    @classmethod
    def restore(
        cls,
        curator: str,
        entries: List[Entry],
        pending_curator: Optional[str] = None,
        *,
        event_bus: Optional[EventBus] = None,
    ) -> "Ledger":
        """Rebuild a ledger from persisted state without emitting events."""
        ledger = cls(curator, event_bus=event_bus)
        if pending_curator is not None:
            nominee = Validators.validate_identity(pending_curator, "pending_curator").unwrap()
            if nominee == ledger._state.curator:
                raise ValidationError("pending_curator", "Equals the current curator", pending_curator)
            ledger._state.pending_curator = nominee
        ledger._entries = list(entries)
        return ledger

    # -------------------------------------------------------------------------
    # Curator state
    # -------------------------------------------------------------------------

    @property
    def curator(self) -> str:
        return self.governance.snapshot()[0]

    @property
    def pending_curator(self) -> Optional[str]:
        return self.governance.snapshot()[1]

    def initiate_curator_transfer(self, caller: str, new_curator: str) -> None:
        self.governance.initiate_curator_transfer(caller, new_curator)

    def accept_curator_transfer(self, caller: str) -> None:
        self.governance.accept_curator_transfer(caller)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def archive_entry(
        self,
        caller: str,
        *,
        title: str,
        source: str,
        timestamp1: str,
        timestamp2: str,
        curator_note: str,
        permaweb_link: str,
        license: str,
        nft_address: str = ZERO_ADDRESS,
        nft_id: int = 0,
        content_hash: Any = ZERO_HASH,
    ) -> int:
        """Append a new chain head (version 1). Returns its index."""
        fields = dict(
            title=title,
            source=source,
            timestamp1=timestamp1,
            timestamp2=timestamp2,
            curator_note=curator_note,
            permaweb_link=permaweb_link,
            license=license,
        )
        with self._lock:
            try:
                self.governance.require_curator(caller, "archive entry")
                clean = _validate_fields(fields, nft_address, nft_id, content_hash)
            except ValidationError as e:
                self._log_rejection("archive_entry", e)
                raise

            entry = Entry(version_index=1, **clean)
            self._entries.append(entry)
            index = len(self._entries) - 1

            logger.info(
                "Archived entry",
                operation="archive_entry",
                index=index,
                version_index=1,
                content_hash=to_hex(entry.content_hash),
            )
            self._publish(EntryArchived(index=index, version_index=1))
        return index

    def archive_updated_entry(
        self,
        caller: str,
        *,
        title: str,
        source: str,
        timestamp1: str,
        timestamp2: str,
        curator_note: str,
        permaweb_link: str,
        license: str,
        deprecate_index: int,
        nft_address: str = ZERO_ADDRESS,
        nft_id: int = 0,
        content_hash: Any = ZERO_HASH,
    ) -> int:
        """Deprecate ``deprecate_index`` and append its successor. Returns the new index."""
        fields = dict(
            title=title,
            source=source,
            timestamp1=timestamp1,
            timestamp2=timestamp2,
            curator_note=curator_note,
            permaweb_link=permaweb_link,
            license=license,
        )
        with self._lock:
            try:
                self.governance.require_curator(caller, "archive updated entry")
                clean = _validate_fields(fields, nft_address, nft_id, content_hash)
                predecessor = self._get_locked(deprecate_index)
                if predecessor.deprecated:
                    raise AlreadyDeprecated(deprecate_index)
            except (ValidationError, IndexOutOfRange, AlreadyDeprecated) as e:
                self._log_rejection("archive_updated_entry", e)
                raise

            version_index = predecessor.version_index + 1
            entry = Entry(version_index=version_index, **clean)
            self._entries[deprecate_index] = replace(predecessor, deprecated=True)
            self._entries.append(entry)
            index = len(self._entries) - 1

            logger.info(
                "Archived updated entry",
                operation="archive_updated_entry",
                index=index,
                version_index=version_index,
                deprecated_index=deprecate_index,
                content_hash=to_hex(entry.content_hash),
            )
            self._publish(EntryDeprecated(index=deprecate_index))
            self._publish(EntryArchived(index=index, version_index=version_index))
        return index

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_entry(self, index: int) -> Entry:
        with self._lock:
            return self._get_locked(index)

    def get_total_entries(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.get_total_entries()

    def get_latest_entries(self, count: int) -> List[Entry]:
        """Up to ``count`` entries, most recent first."""
        _check_count(count)
        if count <= 0:
            return []
        with self._lock:
            tail = self._entries[-count:]
        return list(reversed(tail))

    def get_entries_batch(self, start: int, count: int) -> List[Entry]:
        """Up to ``count`` entries in index order starting at ``start``."""
        _check_count(count)
        with self._lock:
            self._check_index(start)
            if count <= 0:
                return []
            return self._entries[start:start + count]

    def iter_entries(self) -> Iterator[Tuple[int, Entry]]:
        """Yield ``(index, entry)`` pairs over a point-in-time snapshot."""
        with self._lock:
            entries = list(self._entries)
        return iter(enumerate(entries))

    def find_by_content_hash(self, digest: Any) -> List[int]:
        """Indices of entries whose content hash equals ``digest``."""
        wanted = Validators.validate_digest(digest, "content_hash").unwrap()
        return [i for i, entry in self.iter_entries() if entry.content_hash == wanted]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _check_index(self, index: Any) -> None:
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValidationError("index", f"Expected integer, got {type(index).__name__}", index)
        if index < 0 or index >= len(self._entries):
            raise IndexOutOfRange(index, len(self._entries))

    def _get_locked(self, index: Any) -> Entry:
        self._check_index(index)
        return self._entries[index]

    def _log_rejection(self, operation: str, error: CodexError) -> None:
        logger.warning(
            "Rejected ledger mutation",
            error_code=type(error).__name__,
            operation=operation,
            reason=str(error),
        )

    def _publish(self, event: Event) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)
