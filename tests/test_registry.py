"""Tests for the regex library."""

import json

import pytest

from tokenvault import RegexLibrary, load_library
from tokenvault.errors import LibraryLoadError, PersistenceError, ValidationError
from tokenvault.models import RegexDefinition
from tokenvault.registry import validate_definition


def write_library(path, records):
    path.write_text(json.dumps(records), encoding="utf-8")
    return path


class TestLibraryLoading:
    """Tests for library loading."""

    def test_default_library_loads(self, default_library):
        """Packaged library loads and validates."""
        assert len(default_library) > 0
        for prefix in ("EMAIL", "SSN", "PHONE", "IPV4"):
            assert prefix in default_library

    def test_default_patterns_match_examples(self, default_library):
        """Packaged patterns find what they describe."""
        cases = {
            "EMAIL": "john.doe+tag@company.co.uk",
            "SSN": "123-45-6789",
            "PHONE": "(555) 123-4567",
            "IPV4": "192.168.1.100",
            "CARD": "4111-1111-1111-1111",
            "KRRRN": "900101-1234567",
        }
        for prefix, sample in cases.items():
            compiled = default_library.get(prefix).compiled
            assert compiled.search(f"value: {sample} end"), prefix

    def test_load_list_form(self, tmp_path):
        """Library file may be a plain list of records."""
        path = write_library(
            tmp_path / "lib.json",
            [{"Prefix": "ID", "Pattern": r"ID-\d+", "Description": "Ticket"}],
        )
        library = load_library(path)

        assert library.prefixes == ["ID"]
        assert library.get("ID").definition.description == "Ticket"

    def test_load_object_form(self, tmp_path):
        """Library file may wrap records in a patterns key."""
        path = write_library(
            tmp_path / "lib.json", {"patterns": [{"Prefix": "ID", "Pattern": r"ID-\d+"}]}
        )
        assert load_library(path).prefixes == ["ID"]

    def test_library_order_preserved(self, tmp_path):
        """Prefixes keep file order."""
        path = write_library(
            tmp_path / "lib.json",
            [
                {"Prefix": "B", "Pattern": "b+"},
                {"Prefix": "A", "Pattern": "a+"},
            ],
        )
        assert load_library(path).prefixes == ["B", "A"]

    def test_missing_file(self, tmp_path):
        """Unreadable library is a load error."""
        with pytest.raises(LibraryLoadError, match="Cannot read"):
            load_library(tmp_path / "missing.json")

    def test_malformed_json(self, tmp_path):
        """Broken JSON is a load error."""
        path = tmp_path / "lib.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(LibraryLoadError, match="Malformed"):
            load_library(path)

    def test_schema_violation(self, tmp_path):
        """Records without a pattern fail schema validation."""
        path = write_library(tmp_path / "lib.json", [{"Prefix": "ID"}])
        with pytest.raises(LibraryLoadError, match="schema"):
            load_library(path)

    def test_invalid_definition_names_prefix(self, tmp_path):
        """A bad pattern in the file names the prefix."""
        path = write_library(tmp_path / "lib.json", [{"Prefix": "BAD", "Pattern": "("}])
        with pytest.raises(LibraryLoadError, match="BAD"):
            load_library(path)

    def test_duplicate_prefix_in_file(self, tmp_path):
        """Prefixes must be unique."""
        path = write_library(
            tmp_path / "lib.json",
            [{"Prefix": "ID", "Pattern": "a"}, {"Prefix": "ID", "Pattern": "b"}],
        )
        with pytest.raises(LibraryLoadError, match="already exists"):
            load_library(path)


class TestValidation:
    """Tests for definition validation."""

    @pytest.mark.parametrize("prefix", ["", "E-MAIL", "EMAIL_1", "E MAIL", "ÉMAIL"])
    def test_bad_prefix(self, prefix):
        """Prefix must be non-empty ASCII alphanumeric."""
        with pytest.raises(ValidationError):
            validate_definition(RegexDefinition(prefix, "x"))

    def test_duplicate_prefix(self):
        """Existing prefixes are rejected."""
        with pytest.raises(ValidationError, match="already exists"):
            validate_definition(RegexDefinition("ID", "x"), existing=["ID"])

    def test_bad_pattern(self):
        """Patterns must compile."""
        with pytest.raises(ValidationError, match="compile") as excinfo:
            validate_definition(RegexDefinition("ID", "[unclosed"))
        assert excinfo.value.prefix == "ID"

    def test_empty_match_pattern(self):
        """Patterns that match nothing at all are rejected."""
        with pytest.raises(ValidationError, match="empty string"):
            validate_definition(RegexDefinition("ID", r"\d*"))

    def test_compiled_case_insensitive(self):
        """Compiled pattern ignores case."""
        compiled = validate_definition(RegexDefinition("ID", "abc")).compiled
        assert compiled.fullmatch("ABC")


class TestLibraryChanges:
    """Tests for adding, replacing and removing definitions."""

    def test_add_persists(self, tmp_path):
        """Added definition is written and reloads."""
        path = write_library(tmp_path / "lib.json", [{"Prefix": "ID", "Pattern": r"ID-\d+"}])
        library = load_library(path)
        library.add(RegexDefinition("ZIP", r"\b\d{5}\b", "Zip code"), path=path)

        reloaded = load_library(path)
        assert reloaded.prefixes == ["ID", "ZIP"]
        assert json.loads(path.read_text(encoding="utf-8"))[1] == {
            "Prefix": "ZIP",
            "Pattern": r"\b\d{5}\b",
            "Description": "Zip code",
        }

    def test_add_invalid_leaves_file(self, tmp_path):
        """Failed validation does not touch the file."""
        path = write_library(tmp_path / "lib.json", [{"Prefix": "ID", "Pattern": "x"}])
        before = path.read_text(encoding="utf-8")
        library = load_library(path)

        with pytest.raises(ValidationError):
            library.add(RegexDefinition("ID", "y"), path=path)
        assert path.read_text(encoding="utf-8") == before
        assert len(library) == 1

    def test_add_write_failure(self, tmp_path):
        """Write errors surface as PersistenceError and leave memory unchanged."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        library = RegexLibrary([RegexDefinition("ID", "x")])

        with pytest.raises(PersistenceError):
            library.add(RegexDefinition("ZIP", r"\d{5}"), path=blocker / "lib.json")
        assert library.prefixes == ["ID"]

    def test_no_temp_files_left(self, tmp_path):
        """Atomic rewrite cleans up after itself."""
        path = tmp_path / "lib.json"
        RegexLibrary().add(RegexDefinition("ID", "x"), path=path)
        assert [p.name for p in tmp_path.iterdir()] == ["lib.json"]

    def test_save_round_trip(self, tmp_path, library):
        """A saved library reloads with the same definitions."""
        path = tmp_path / "lib.json"
        library.save(path)
        assert load_library(path).definitions == library.definitions

    def test_replace(self):
        """Replacing swaps the definition, keeping position."""
        library = RegexLibrary([RegexDefinition("A", "a"), RegexDefinition("B", "b")])
        version = library.version
        library.replace(RegexDefinition("A", "aa", "new"))

        assert library.prefixes == ["A", "B"]
        assert library.get("A").definition.pattern == "aa"
        assert library.version == version + 1

    def test_replace_unknown(self):
        """Only existing prefixes can be replaced."""
        with pytest.raises(ValidationError, match="Unknown prefix"):
            RegexLibrary().replace(RegexDefinition("A", "a"))

    def test_remove(self, tmp_path):
        """Removed definition disappears from file and memory."""
        path = tmp_path / "lib.json"
        library = RegexLibrary([RegexDefinition("A", "a"), RegexDefinition("B", "b")])
        library.remove("A", path=path)

        assert library.prefixes == ["B"]
        assert load_library(path).prefixes == ["B"]


class TestSelect:
    """Tests for prefix selection."""

    def test_select_order(self, library):
        """Selection follows the requested order."""
        assert [c.prefix for c in library.select(["NUM", "EMAIL"])] == ["NUM", "EMAIL"]

    def test_select_all(self, library):
        """None selects the whole library."""
        assert [c.prefix for c in library.select()] == library.prefixes

    def test_select_duplicates_collapsed(self, library):
        """Repeated prefixes keep their first position."""
        assert [c.prefix for c in library.select(["SSN", "EMAIL", "SSN"])] == ["SSN", "EMAIL"]

    def test_select_unknown(self, library):
        """Unknown prefixes raise."""
        with pytest.raises(ValidationError):
            library.select(["MISSING"])
