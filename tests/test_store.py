"""
Tests for ledger snapshot persistence.
"""

import hashlib
import json

import pytest


CURATOR = "0x" + "a1" * 20
NOMINEE = "0x" + "b2" * 20


def _fields(title):
    return dict(
        title=title,
        source="src",
        timestamp1="1900",
        timestamp2="1901",
        curator_note="note",
        permaweb_link="ar://x",
        license="PD",
    )


@pytest.fixture
def populated():
    from codex.fingerprint import fingerprint_text
    from codex.ledger import Ledger

    ledger = Ledger(CURATOR)
    ledger.archive_entry(CURATOR, content_hash=fingerprint_text("# A\n").digest, **_fields("a"))
    ledger.archive_entry(CURATOR, nft_address="0x" + "dd" * 20, nft_id=2 ** 80, **_fields("b"))
    ledger.archive_updated_entry(CURATOR, deprecate_index=0, **_fields("a2"))
    ledger.initiate_curator_transfer(CURATOR, NOMINEE)
    return ledger


class TestSnapshot:
    """In-memory snapshot and restore."""

    def test_snapshot_shape(self, populated):
        from codex.store import SNAPSHOT_FORMAT, snapshot

        data = snapshot(populated)
        assert data["format"] == SNAPSHOT_FORMAT == "codex-ledger/v1"
        assert data["curator"] == CURATOR
        assert data["pending_curator"] == NOMINEE
        assert len(data["entries"]) == 3
        assert data["entries"][1]["nft_id"] == str(2 ** 80)
        assert data["entries"][0]["content_hash"].startswith("0x")

    def test_restore_preserves_state(self, populated):
        from codex.store import restore, snapshot

        restored = restore(snapshot(populated))

        assert restored.curator == CURATOR
        assert restored.pending_curator == NOMINEE
        assert restored.get_total_entries() == 3
        for i in range(3):
            assert restored.get_entry(i) == populated.get_entry(i)
        assert restored.get_entry(0).deprecated is True
        assert restored.get_entry(2).version_index == 2
        assert restored.get_entry(1).nft_id == 2 ** 80

    def test_restored_ledger_keeps_working(self, populated):
        from codex.hardening import AlreadyDeprecated
        from codex.store import restore, snapshot

        restored = restore(snapshot(populated))
        with pytest.raises(AlreadyDeprecated):
            restored.archive_updated_entry(CURATOR, deprecate_index=0, **_fields("again"))
        restored.accept_curator_transfer(NOMINEE)
        assert restored.curator == NOMINEE

    def test_restore_emits_no_events(self, populated):
        from codex.events import EventBus
        from codex.store import restore, snapshot

        bus = EventBus()
        seen = []
        bus.subscribe()(seen.append)

        restored = restore(snapshot(populated), event_bus=bus)
        assert seen == []

        restored.archive_entry(CURATOR, **_fields("c"))
        assert [e.event_type for e in seen] == ["EntryArchived"]
        assert seen[0].index == 3

    @pytest.mark.parametrize("mutate", [
        lambda d: d.update(format="codex-ledger/v0"),
        lambda d: d.pop("entries"),
        lambda d: d.update(curator="0x1234"),
        lambda d: d.update(curator="0x" + "0" * 40),
        lambda d: d.update(pending_curator=CURATOR),
        lambda d: d["entries"][0].update(version_index=0),
        lambda d: d["entries"][0].update(content_hash="0x00"),
        lambda d: d["entries"][0].update(nft_id=5),
        lambda d: d["entries"][0].update(extra="field"),
    ])
    def test_invalid_snapshots_rejected(self, populated, mutate):
        from codex.store import StoreError, restore, snapshot

        data = snapshot(populated)
        mutate(data)
        with pytest.raises(StoreError):
            restore(data)

    def test_non_object_rejected(self):
        from codex.store import StoreError, restore

        with pytest.raises(StoreError):
            restore([])


class TestFiles:
    """Atomic save and load."""

    def test_save_returns_digest_of_canonical_bytes(self, populated, tmp_path):
        from codex.store import save_ledger, snapshot_digest

        path = tmp_path / "ledger.json"
        digest = save_ledger(populated, path)

        raw = path.read_bytes()
        assert raw.endswith(b"\n")
        assert hashlib.sha256(raw[:-1]).hexdigest() == digest
        assert snapshot_digest(populated) == digest
        assert json.loads(raw)["format"] == "codex-ledger/v1"

    def test_save_is_deterministic(self, populated, tmp_path):
        from codex.store import save_ledger

        first = save_ledger(populated, tmp_path / "a.json")
        second = save_ledger(populated, tmp_path / "b.json")
        assert first == second
        assert (tmp_path / "a.json").read_bytes() == (tmp_path / "b.json").read_bytes()

    def test_save_leaves_no_temp_files(self, populated, tmp_path):
        from codex.store import save_ledger

        save_ledger(populated, tmp_path / "ledger.json")
        save_ledger(populated, tmp_path / "ledger.json")
        assert [p.name for p in tmp_path.iterdir()] == ["ledger.json"]

    def test_save_creates_parent_directories(self, populated, tmp_path):
        from codex.store import save_ledger

        path = tmp_path / "nested" / "dir" / "ledger.json"
        save_ledger(populated, path)
        assert path.exists()

    def test_load_round_trip(self, populated, tmp_path):
        from codex.store import load_ledger, save_ledger, snapshot

        path = tmp_path / "ledger.json"
        save_ledger(populated, path)
        assert snapshot(load_ledger(path)) == snapshot(populated)

    def test_load_missing(self, tmp_path):
        from codex.store import StoreError, load_ledger

        with pytest.raises(StoreError) as exc_info:
            load_ledger(tmp_path / "absent.json")
        assert exc_info.value.path == str(tmp_path / "absent.json")

    def test_load_malformed_json(self, tmp_path):
        from codex.store import StoreError, load_ledger

        path = tmp_path / "ledger.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StoreError):
            load_ledger(path)

    def test_load_schema_violation(self, tmp_path):
        from codex.store import StoreError, load_ledger

        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({"format": "codex-ledger/v1"}), encoding="utf-8")
        with pytest.raises(StoreError) as exc_info:
            load_ledger(path)
        assert "Invalid snapshot" in str(exc_info.value)
