"""
Tests for the codex command-line interface.
"""

import hashlib
import json

import pytest


CURATOR = "0x" + "a1" * 20
NOMINEE = "0x" + "b2" * 20
OUTSIDER = "0x" + "c3" * 20


def _run(*args):
    from codex.cli import CodexCLI

    return CodexCLI().run(list(args))


def _json(capsys):
    return json.loads(capsys.readouterr().out)


@pytest.fixture
def state(tmp_path, capsys):
    """An initialized ledger snapshot path."""
    path = tmp_path / "ledger.json"
    assert _run("--state", str(path), "ledger", "init", "--curator", CURATOR) == 0
    capsys.readouterr()
    return str(path)


def _archive(state, title, *extra, caller=CURATOR):
    return _run("--state", state, "ledger", "archive", "--as", caller, "--title", title, *extra)


# ════════════════════════════════════════════════════════════════════════════
# HASH
# ════════════════════════════════════════════════════════════════════════════


class TestHashCommand:
    """codex hash FILE [--verbose]"""

    def test_prints_fingerprint(self, tmp_path, capsys):
        source = tmp_path / "story.md"
        source.write_text("#Title\n\n\n\nBody.  \n", encoding="utf-8")

        assert _run("hash", str(source)) == 0
        expected = "0x" + hashlib.sha256(b"# Title\n\nBody.\n").hexdigest()
        assert capsys.readouterr().out == expected + "\n"

    def test_verbose_prints_normalized_content(self, tmp_path, capsys):
        source = tmp_path / "story.md"
        source.write_text("#Title\n\n\n\nBody.  \n", encoding="utf-8")

        assert _run("hash", str(source), "--verbose") == 0
        expected = "0x" + hashlib.sha256(b"# Title\n\nBody.\n").hexdigest()
        assert capsys.readouterr().out == (
            "=== NORMALIZED CONTENT ===\n"
            "# Title\n\nBody.\n\n"
            "=== END NORMALIZED CONTENT ===\n"
            "\n"
            f"{expected}\n"
        )

    def test_missing_file_exit_code(self, tmp_path, capsys):
        from codex.cli import EXIT_FILE_NOT_FOUND

        missing = tmp_path / "absent.md"
        assert _run("hash", str(missing)) == EXIT_FILE_NOT_FOUND == 3
        captured = capsys.readouterr()
        assert captured.out == ""
        assert f"Error: File not found: {missing}" in captured.err

    def test_quiet_suppresses_error_message(self, tmp_path, capsys):
        assert _run("--quiet", "hash", str(tmp_path / "absent.md")) == 3
        assert "Error:" not in capsys.readouterr().err

    def test_undecodable_file_exit_code(self, tmp_path, capsys):
        source = tmp_path / "binary.bin"
        source.write_bytes(b"\xff\xfe\x00")

        assert _run("hash", str(source)) == 1
        assert "Error:" in capsys.readouterr().err


# ════════════════════════════════════════════════════════════════════════════
# LEDGER
# ════════════════════════════════════════════════════════════════════════════


class TestLedgerCommands:
    """codex ledger ..."""

    def test_init_writes_snapshot(self, tmp_path, capsys):
        path = tmp_path / "ledger.json"
        assert _run("--state", str(path), "ledger", "init", "--curator", CURATOR) == 0

        out = _json(capsys)
        assert out["curator"] == CURATOR
        assert len(out["digest"]) == 64
        assert json.loads(path.read_text(encoding="utf-8"))["entries"] == []

    def test_init_refuses_to_overwrite(self, state, capsys):
        assert _run("--state", state, "ledger", "init", "--curator", NOMINEE) == 1
        assert "already exists" in capsys.readouterr().err
        assert _run("--state", state, "ledger", "init", "--curator", NOMINEE, "--force") == 0

    def test_init_rejects_zero_curator(self, tmp_path):
        assert _run("--state", str(tmp_path / "l.json"), "ledger", "init", "--curator", "0x" + "0" * 40) == 1
        assert not (tmp_path / "l.json").exists()

    def test_state_path_from_environment(self, tmp_path, monkeypatch, capsys):
        path = tmp_path / "env-ledger.json"
        monkeypatch.setenv("CODEX_LEDGER_PATH", str(path))

        assert _run("ledger", "init", "--curator", CURATOR) == 0
        assert path.exists()

    def test_archive_and_get(self, state, capsys):
        assert _archive(state, "The Tale", "--license", "CC0", "--nft-address", "0x" + "dd" * 20, "--nft-id", "4") == 0
        out = _json(capsys)
        assert out["entry"]["index"] == 0
        assert out["entry"]["version_index"] == 1

        assert _run("--state", state, "ledger", "get", "0") == 0
        entry = _json(capsys)
        assert entry["title"] == "The Tale"
        assert entry["license"] == "CC0"
        assert entry["nft_id"] == 4
        assert entry["content_hash"] == "0x" + "00" * 32

    def test_archive_with_file_fingerprint(self, state, tmp_path, capsys):
        source = tmp_path / "story.md"
        source.write_text("#Title\n\n\n\nBody.  \n", encoding="utf-8")

        assert _archive(state, "Story", "--file", str(source)) == 0
        out = _json(capsys)
        assert out["entry"]["content_hash"] == "0x" + hashlib.sha256(b"# Title\n\nBody.\n").hexdigest()

    def test_archive_with_missing_file_leaves_ledger_untouched(self, state, tmp_path, capsys):
        assert _archive(state, "Story", "--file", str(tmp_path / "absent.md")) == 3
        capsys.readouterr()
        assert _run("--state", state, "ledger", "total") == 0
        assert _json(capsys) == {"total": 0}

    def test_archive_by_outsider_is_not_saved(self, state, capsys):
        before = open(state, "rb").read()
        assert _archive(state, "Nope", caller=OUTSIDER) == 1
        assert "not authorized" in capsys.readouterr().err
        assert open(state, "rb").read() == before

    def test_update_chain_and_double_deprecation(self, state, capsys):
        _archive(state, "v1")
        assert _run("--state", state, "ledger", "update", "--as", CURATOR, "--title", "v2", "--deprecate-index", "0") == 0
        out = _json(capsys)
        assert out["entry"]["index"] == 1
        assert out["entry"]["version_index"] == 2
        assert out["deprecated_index"] == 0

        assert _run("--state", state, "ledger", "update", "--as", CURATOR, "--title", "v2b", "--deprecate-index", "0") == 1
        assert "already deprecated" in capsys.readouterr().err

        assert _run("--state", state, "ledger", "total") == 0
        assert _json(capsys) == {"total": 2}

    def test_latest_and_batch(self, state, capsys):
        for title in ("a", "b", "c"):
            _archive(state, title)
        capsys.readouterr()

        assert _run("--state", state, "ledger", "latest", "--count", "100") == 0
        latest = _json(capsys)
        assert [(e["index"], e["title"]) for e in latest["entries"]] == [(2, "c"), (1, "b"), (0, "a")]

        assert _run("--state", state, "ledger", "batch", "1") == 0
        batch = _json(capsys)
        assert [(e["index"], e["title"]) for e in batch["entries"]] == [(1, "b"), (2, "c")]

    def test_latest_uses_configured_default(self, state, monkeypatch, capsys):
        for title in ("a", "b", "c"):
            _archive(state, title)
        capsys.readouterr()
        monkeypatch.setenv("CODEX_LATEST_DEFAULT", "2")

        assert _run("--state", state, "ledger", "latest") == 0
        assert [e["title"] for e in _json(capsys)["entries"]] == ["c", "b"]

    def test_batch_count_clamped_to_max(self, state, monkeypatch, capsys):
        for title in ("a", "b", "c"):
            _archive(state, title)
        capsys.readouterr()
        monkeypatch.setenv("CODEX_MAX_BATCH", "1")

        assert _run("--state", state, "ledger", "batch", "0", "--count", "3") == 0
        assert len(_json(capsys)["entries"]) == 1

    def test_get_out_of_range(self, state, capsys):
        assert _run("--state", state, "ledger", "get", "5") == 1
        assert "out of range" in capsys.readouterr().err

    def test_batch_start_out_of_range(self, state, capsys):
        assert _run("--state", state, "ledger", "batch", "0") == 1

    def test_find_by_file_and_hash(self, state, tmp_path, capsys):
        source = tmp_path / "story.md"
        source.write_text("# Story\n", encoding="utf-8")
        _archive(state, "a", "--file", str(source))
        _archive(state, "b")
        capsys.readouterr()

        assert _run("--state", state, "ledger", "find", "--file", str(source)) == 0
        found = _json(capsys)
        assert found["indices"] == [0]

        assert _run("--state", state, "ledger", "find", "--content-hash", found["content_hash"]) == 0
        assert _json(capsys)["indices"] == [0]

    def test_find_rejects_bad_hash(self, state, capsys):
        assert _run("--state", state, "ledger", "find", "--content-hash", "0x12") == 1

    def test_missing_snapshot(self, tmp_path, capsys):
        assert _run("--state", str(tmp_path / "absent.json"), "ledger", "total") == 1
        assert "Ledger snapshot not found" in capsys.readouterr().err


# ════════════════════════════════════════════════════════════════════════════
# CURATOR
# ════════════════════════════════════════════════════════════════════════════


class TestCuratorCommands:
    """codex curator ..."""

    def test_transfer_flow(self, state, capsys):
        assert _run("--state", state, "curator", "show") == 0
        assert _json(capsys) == {"curator": CURATOR, "pending_curator": None, "phase": "stable"}

        assert _run("--state", state, "curator", "transfer", "--as", CURATOR, "--to", NOMINEE) == 0
        assert _json(capsys)["phase"] == "pending"

        assert _run("--state", state, "curator", "accept", "--as", OUTSIDER) == 1
        capsys.readouterr()

        assert _run("--state", state, "curator", "accept", "--as", NOMINEE) == 0
        assert _json(capsys) == {"curator": NOMINEE, "pending_curator": None, "phase": "stable"}

        assert _archive(state, "old curator", caller=CURATOR) == 1
        assert _archive(state, "new curator", caller=NOMINEE) == 0

    def test_transfer_to_zero_address(self, state, capsys):
        assert _run("--state", state, "curator", "transfer", "--as", CURATOR, "--to", "0x" + "0" * 40) == 1
        assert "invalid transfer target" in capsys.readouterr().err


# ════════════════════════════════════════════════════════════════════════════
# CONFIG, FORMATS, USAGE
# ════════════════════════════════════════════════════════════════════════════


class TestConfigCommands:
    """codex config ..."""

    def test_get(self, capsys):
        assert _run("config", "get", "ledger.max_batch_count") == 0
        assert _json(capsys) == {"path": "ledger.max_batch_count", "value": 1000}

    def test_get_bad_path(self, capsys):
        assert _run("config", "get", "ledger.nope") == 1

    def test_show_validate_schema(self, capsys):
        assert _run("config", "show") == 0
        assert _json(capsys)["ledger"]["state_path"] == "codex-ledger.json"

        assert _run("config", "validate") == 0
        assert _json(capsys) == {"valid": True, "errors": []}

        assert _run("config", "schema") == 0
        assert "properties" in _json(capsys)


class TestOutputAndUsage:
    """Output formats and argument handling."""

    def test_text_format(self, state, capsys):
        assert _run("--format", "text", "--state", state, "ledger", "total") == 0
        assert capsys.readouterr().out == "total: 0\n"

    def test_yaml_format(self, state, capsys):
        import yaml

        assert _run("--format", "yaml", "--state", state, "curator", "show") == 0
        assert yaml.safe_load(capsys.readouterr().out)["curator"] == CURATOR

    def test_text_format_renders_entry_table(self, state, capsys):
        _archive(state, "Alpha")
        capsys.readouterr()

        assert _run("--format", "text", "--state", state, "ledger", "latest") == 0
        out = capsys.readouterr().out
        assert out.startswith("total: 1\nentries:\n")
        assert "Alpha" in out

    def test_no_command_prints_help(self, capsys):
        assert _run() == 0
        assert "usage:" in capsys.readouterr().out

    def test_group_without_subcommand(self, capsys):
        assert _run("ledger") == 1
        assert "Unknown command: ledger" in capsys.readouterr().err

    def test_missing_required_argument_is_usage_error(self, state):
        with pytest.raises(SystemExit) as exc_info:
            _run("--state", state, "ledger", "archive", "--as", CURATOR)
        assert exc_info.value.code == 2

    def test_file_and_content_hash_are_exclusive(self, state):
        with pytest.raises(SystemExit) as exc_info:
            _archive(state, "x", "--file", "a.md", "--content-hash", "0x" + "11" * 32)
        assert exc_info.value.code == 2

    def test_version(self, capsys):
        from codex import __version__

        with pytest.raises(SystemExit) as exc_info:
            _run("--version")
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip() == f"codex {__version__}"

    def test_main_entry_point(self, tmp_path, monkeypatch, capsys):
        from codex.cli import main

        monkeypatch.chdir(tmp_path)
        source = tmp_path / "s.txt"
        source.write_text("x", encoding="utf-8")
        assert main(["hash", str(source)]) == 0
        assert capsys.readouterr().out == "0x" + hashlib.sha256(b"x\n").hexdigest() + "\n"
