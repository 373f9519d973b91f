"""
Tests for the FolderScanner utility.
"""

from pathlib import Path

import pytest

from tabingest.ingest.folder_scanner import FolderScanner, local_source_id


def _create_sample_tree(root: Path):
    """Create a directory tree with mixed file types."""
    (root / ".tabingestignore").write_text(
        "\n".join(["# Ignore comments", "archive", "~$"]),
        encoding="utf-8",
    )

    (root / "people.csv").write_text("a\n1\n", encoding="utf-8")
    (root / "notes.txt").write_text("notes", encoding="utf-8")

    finance = root / "finance"
    finance.mkdir()
    (finance / "budget.xlsx").write_bytes(b"fake-xlsx")
    (finance / "~$budget.xlsx").write_bytes(b"lock file")

    archive = root / "archive"
    archive.mkdir()
    (archive / "old.csv").write_text("a\n", encoding="utf-8")


def test_scan_folder_respects_ignore_patterns(tmp_path):
    _create_sample_tree(tmp_path)

    files = FolderScanner().scan_folder(str(tmp_path))

    assert [f.name for f in files] == ["people.csv", "budget.xlsx"]
    assert [f.containing_path for f in files] == ["root", "root/finance"]
    assert files[0].locator == str((tmp_path / "people.csv").resolve())


def test_ids_are_stable(tmp_path):
    _create_sample_tree(tmp_path)
    first = [f.id for f in FolderScanner().scan_folder(str(tmp_path))]
    second = [f.id for f in FolderScanner().scan_folder(str(tmp_path))]
    assert first == second
    assert first[0] == local_source_id((tmp_path / "people.csv").resolve())


def test_missing_folder(tmp_path):
    with pytest.raises(ValueError):
        FolderScanner().scan_folder(str(tmp_path / "nope"))


def test_not_a_directory(tmp_path):
    path = tmp_path / "file.csv"
    path.write_text("a\n", encoding="utf-8")
    with pytest.raises(ValueError):
        FolderScanner().scan_folder(str(path))
