"""Tests for .env discovery."""

from ..env import DotenvFileLookup, MappingEnvLookup


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestDotenvFileLookup:
    """Tests for DotenvFileLookup."""

    def test_first_file_wins(self, tmp_path):
        first = _write(tmp_path / "a" / ".env", "MEMOS_API_KEY=first\n")
        second = _write(tmp_path / "b" / ".env", "MEMOS_API_KEY=second\nMEMOS_USER_ID=bob\n")
        lookup = DotenvFileLookup([("a", first), ("b", second)], environ={})

        assert lookup.get("MEMOS_API_KEY") == "first"
        assert lookup.get("MEMOS_USER_ID") == "bob"

    def test_quotes_are_stripped(self, tmp_path):
        env_file = _write(tmp_path / ".env", 'MEMOS_API_KEY="mpg-quoted"\n# comment\n')
        lookup = DotenvFileLookup([("only", env_file)], environ={})

        assert lookup.get("MEMOS_API_KEY") == "mpg-quoted"

    def test_falls_back_to_environ_without_files(self, tmp_path):
        lookup = DotenvFileLookup(
            [("missing", tmp_path / "nope" / ".env")],
            environ={"MEMOS_API_KEY": "from-process"},
        )

        assert lookup.get("MEMOS_API_KEY") == "from-process"

    def test_environ_ignored_when_a_file_exists(self, tmp_path):
        env_file = _write(tmp_path / ".env", "MEMOS_USER_ID=alice\n")
        lookup = DotenvFileLookup([("only", env_file)], environ={"MEMOS_API_KEY": "from-process"})

        assert lookup.get("MEMOS_API_KEY") is None

    def test_status(self, tmp_path):
        present = _write(tmp_path / "a" / ".env", "X=1\n")
        missing = tmp_path / "b" / ".env"
        lookup = DotenvFileLookup([("a", present), ("b", missing)], environ={})
        status = lookup.status()

        assert status.found is True
        assert status.sources == ["a"]
        assert status.paths == [str(present)]
        assert status.search_paths == [str(present), str(missing)]

    def test_status_not_found(self, tmp_path):
        lookup = DotenvFileLookup([("a", tmp_path / ".env")], environ={})
        assert lookup.status().found is False


def test_mapping_lookup():
    lookup = MappingEnvLookup({"MEMOS_API_KEY": "k"})
    assert lookup.get("MEMOS_API_KEY") == "k"
    assert lookup.get("MEMOS_USER_ID") is None
    assert lookup.status().found is True
