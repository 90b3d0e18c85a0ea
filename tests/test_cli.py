"""Tests for the command-line interface."""

import json

import pytest
from click.testing import CliRunner

from tokenvault import load_mapping, token_for
from tokenvault.cli import main
from tokenvault.registry import DEFAULT_LIBRARY_PATH


@pytest.fixture
def runner():
    """Click test runner."""
    return CliRunner()


@pytest.fixture
def notes(tmp_path):
    """Text file with one email address."""
    path = tmp_path / "notes.txt"
    path.write_text("Contact: bob@example.com\n", encoding="utf-8")
    return path


class TestTokenizeCommand:
    """Tests for tokenize and rehydrate commands."""

    def test_tokenize_and_rehydrate(self, runner, notes, tmp_path):
        """Files round-trip through the mapping file."""
        mapping = tmp_path / "map.csv"
        result = runner.invoke(
            main, ["tokenize", str(notes), "-m", str(mapping), "-p", "EMAIL"]
        )
        assert result.exit_code == 0, result.output
        assert "Processed 1 files" in result.output

        tokenized = tmp_path / "notes.tokenized.txt"
        token = token_for("EMAIL", "bob@example.com")
        assert tokenized.read_text(encoding="utf-8") == f"Contact: {token}\n"
        assert load_mapping(mapping, "csv") == {token: "bob@example.com"}

        result = runner.invoke(main, ["rehydrate", str(tokenized), "-m", str(mapping)])
        assert result.exit_code == 0, result.output
        restored = tmp_path / "notes.tokenized.rehydrated.txt"
        assert restored.read_bytes() == notes.read_bytes()

    def test_requires_mapping(self, runner, notes):
        """Without a mapping path the command fails."""
        result = runner.invoke(main, ["tokenize", str(notes)])
        assert result.exit_code == 2

    def test_partial_failure(self, runner, notes, tmp_path):
        """A missing input fails that file and exits with 1."""
        result = runner.invoke(
            main,
            ["tokenize", str(tmp_path / "missing.txt"), str(notes), "-m", str(tmp_path / "m.json")],
        )
        assert result.exit_code == 1
        assert (tmp_path / "notes.tokenized.txt").exists()

    def test_collision_exit_code(self, runner, notes, tmp_path):
        """Collisions stop the run with exit code 2."""
        mapping = tmp_path / "map.json"
        mapping.write_text(
            json.dumps({token_for("EMAIL", "bob@example.com"): "someone@else.com"}),
            encoding="utf-8",
        )
        result = runner.invoke(main, ["tokenize", str(notes), "-m", str(mapping)])
        assert result.exit_code == 2

    def test_unknown_prefix_is_fatal(self, runner, notes, tmp_path):
        """A bad prefix stops the run before any file is written."""
        result = runner.invoke(
            main, ["tokenize", str(notes), "-m", str(tmp_path / "m.json"), "-p", "NOPE"]
        )
        assert result.exit_code == 2
        assert not (tmp_path / "notes.tokenized.txt").exists()

    def test_rehydrate_missing_mapping(self, runner, notes, tmp_path):
        """Rehydration needs an existing mapping."""
        result = runner.invoke(
            main, ["rehydrate", str(notes), "-m", str(tmp_path / "none.json")]
        )
        assert result.exit_code == 2

    def test_binary_skipped(self, runner, tmp_path):
        """Binary inputs are reported as skipped."""
        blob = tmp_path / "blob.bin"
        blob.write_bytes(b"\x00" * 64)
        result = runner.invoke(main, ["tokenize", str(blob), "-m", str(tmp_path / "m.json")])

        assert result.exit_code == 0
        assert "skipped" in result.output
        assert not (tmp_path / "blob.tokenized.bin").exists()


class TestPreviewCommand:
    """Tests for preview command."""

    def test_preview_text(self, runner):
        """Text output lists each distinct value with its token."""
        result = runner.invoke(
            main, ["preview", "--text", "a@b.io and a@b.io", "-p", "EMAIL"]
        )
        assert result.exit_code == 0
        assert "Found 2 matches, 1 distinct values" in result.output
        assert token_for("EMAIL", "a@b.io") in result.output

    def test_preview_json(self, runner, notes):
        """JSON output pairs matches with tokens."""
        result = runner.invoke(main, ["preview", "--file", str(notes), "-o", "json"])
        assert result.exit_code == 0
        assert '"match_count": 1' in result.output
        assert token_for("EMAIL", "bob@example.com") in result.output

    def test_preview_requires_input(self, runner):
        """Preview needs --text or --file."""
        result = runner.invoke(main, ["preview"])
        assert result.exit_code == 1

    def test_preview_binary_file(self, runner, tmp_path):
        """Binary files are skipped instead of decoded."""
        blob = tmp_path / "blob.bin"
        blob.write_bytes(b"\x00\xff\xfe" * 50)
        result = runner.invoke(main, ["preview", "--file", str(blob)])

        assert result.exit_code == 0
        assert "skipped" in result.output
        assert "binary" in result.output

    def test_preview_unknown_prefix(self, runner):
        """Unknown prefixes are rejected."""
        result = runner.invoke(main, ["preview", "--text", "x", "-p", "NOPE"])
        assert result.exit_code == 2


class TestClassifyCommand:
    """Tests for classify command."""

    def test_classify(self, runner, notes, tmp_path):
        """Each file is reported with its class."""
        blob = tmp_path / "blob.bin"
        blob.write_bytes(b"\x00" * 64)
        result = runner.invoke(main, ["classify", str(notes), str(blob)])

        assert result.exit_code == 0
        assert "text" in result.output
        assert "binary" in result.output

    def test_classify_missing(self, runner, tmp_path):
        """Missing files exit with 1."""
        result = runner.invoke(main, ["classify", str(tmp_path / "missing.txt")])
        assert result.exit_code == 1


class TestPatternCommands:
    """Tests for list-patterns and add-pattern commands."""

    def test_list_patterns(self, runner):
        """Packaged patterns are listed."""
        result = runner.invoke(main, ["list-patterns"])
        assert result.exit_code == 0
        assert "EMAIL" in result.output

    def test_add_pattern(self, runner, tmp_path):
        """A new library file is created and then extended."""
        path = tmp_path / "lib.json"
        for prefix, pattern in (("ID", r"ID-\d+"), ("ZIP", r"\b\d{5}\b")):
            result = runner.invoke(
                main, ["add-pattern", "--prefix", prefix, "--pattern", pattern, "-l", str(path)]
            )
            assert result.exit_code == 0, result.output

        records = json.loads(path.read_text(encoding="utf-8"))
        assert [r["Prefix"] for r in records] == ["ID", "ZIP"]

        result = runner.invoke(main, ["list-patterns", "-l", str(path)])
        assert "ZIP" in result.output

    def test_add_invalid_pattern(self, runner, tmp_path):
        """Invalid definitions leave the file alone."""
        path = tmp_path / "lib.json"
        result = runner.invoke(
            main, ["add-pattern", "--prefix", "BAD-1", "--pattern", "x", "-l", str(path)]
        )
        assert result.exit_code == 2
        assert not path.exists()

    def test_default_library_protected(self, runner):
        """The packaged library is read-only."""
        result = runner.invoke(
            main,
            ["add-pattern", "--prefix", "ZIP", "--pattern", r"\d{5}", "-l", str(DEFAULT_LIBRARY_PATH)],
        )
        assert result.exit_code == 2


class TestConfigOption:
    """Tests for the --config option."""

    def test_config_supplies_mapping(self, runner, notes, tmp_path):
        """Mapping path and format come from the YAML file."""
        mapping = tmp_path / "from-config.csv"
        config = tmp_path / "tokenvault.yaml"
        config.write_text(
            f"tokenvault:\n  mapping:\n    path: {mapping}\n    format: csv\n",
            encoding="utf-8",
        )
        result = runner.invoke(main, ["-c", str(config), "tokenize", str(notes)])

        assert result.exit_code == 0, result.output
        assert mapping.read_text(encoding="utf-8").startswith("Token,Original")

    def test_invalid_config(self, runner, tmp_path):
        """Bad values in the config file are rejected."""
        config = tmp_path / "tokenvault.yaml"
        config.write_text("tokens:\n  hash_algorithm: nope\n", encoding="utf-8")
        result = runner.invoke(main, ["-c", str(config), "list-patterns"])
        assert result.exit_code == 2
