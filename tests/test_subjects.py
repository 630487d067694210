from __future__ import annotations

import logging
from pathlib import Path

import pytest

from recon_parallel.subjects import (
    discover_subjects,
    filter_completed,
    load_or_create_subject_list,
    read_subject_list,
    validate_directory,
    write_subject_list,
)


def test_validate_directory_missing(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        validate_directory(tmp_path / "nope", "raw_dir")


def test_validate_directory_not_a_dir(tmp_path: Path) -> None:
    f = tmp_path / "file.txt"
    f.write_text("x", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        validate_directory(f, "raw_dir")


def test_discover_subjects_lists_sorted_non_file_entries(raw_tree: Path) -> None:
    assert discover_subjects(raw_tree) == ["sub-01", "sub-02", "sub-10"]


def test_discover_subjects_follows_dir_symlinks(raw_tree: Path, tmp_path: Path) -> None:
    target = tmp_path / "elsewhere" / "sub-99"
    target.mkdir(parents=True)
    (raw_tree / "sub-99").symlink_to(target, target_is_directory=True)
    (raw_tree / "broken").symlink_to(tmp_path / "missing")
    assert discover_subjects(raw_tree) == ["sub-01", "sub-02", "sub-10", "sub-99"]


def test_read_subject_list_skips_blanks_comments_and_duplicates(tmp_path: Path) -> None:
    p = tmp_path / "subjects.txt"
    p.write_text("# cohort A\nsub-01\n\n  sub-02  \nsub-01\n", encoding="utf-8")
    assert read_subject_list(p) == ["sub-01", "sub-02"]


def test_load_or_create_writes_list_when_absent(raw_tree: Path, tmp_path: Path) -> None:
    list_path = tmp_path / "lists" / "subjects.txt"
    subjects, created = load_or_create_subject_list(list_path, raw_tree)
    assert created is True
    assert subjects == ["sub-01", "sub-02", "sub-10"]
    assert list_path.read_text(encoding="utf-8") == "sub-01\nsub-02\nsub-10\n"


def test_load_or_create_prefers_existing_list(raw_tree: Path, tmp_path: Path) -> None:
    list_path = write_subject_list(tmp_path / "subjects.txt", ["sub-10"])
    subjects, created = load_or_create_subject_list(list_path, raw_tree)
    assert created is False
    assert subjects == ["sub-10"]


def test_load_or_create_empty_raises(tmp_path: Path) -> None:
    empty = tmp_path / "empty"
    empty.mkdir()
    list_path = tmp_path / "subjects.txt"
    with pytest.raises(RuntimeError, match="No subjects found"):
        load_or_create_subject_list(list_path, empty)
    assert not list_path.exists()


def test_filter_completed_uses_group_suffix(subjects_dir: Path) -> None:
    done = subjects_dir / "sub-01_tp1" / "scripts"
    done.mkdir(parents=True)
    (done / "recon-all.done").write_text("", encoding="utf-8")
    (subjects_dir / "sub-02" / "scripts").mkdir(parents=True)
    (subjects_dir / "sub-02" / "scripts" / "recon-all.done").write_text("", encoding="utf-8")

    pending, completed = filter_completed(["sub-01", "sub-02"], subjects_dir, "_tp1")
    assert pending == ["sub-02"]
    assert completed == ["sub-01"]


def test_discover_subjects_skips_names_that_do_not_round_trip(raw_tree: Path, tmp_path: Path) -> None:
    (raw_tree / "#scratch").mkdir()
    (raw_tree / " sub-03").mkdir()
    subjects = discover_subjects(raw_tree)
    assert subjects == ["sub-01", "sub-02", "sub-10"]
    list_path = write_subject_list(tmp_path / "subjects.txt", subjects)
    assert read_subject_list(list_path) == subjects


def test_write_subject_list_leaves_no_temp_file(tmp_path: Path) -> None:
    p = tmp_path / "subjects.txt"
    p.write_text("old\n", encoding="utf-8")
    write_subject_list(p, ["sub-01", "sub-02"])
    assert p.read_text(encoding="utf-8") == "sub-01\nsub-02\n"
    assert sorted(x.name for x in tmp_path.iterdir()) == ["subjects.txt"]


def test_read_subject_list_warns_on_duplicates(tmp_path: Path, caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch) -> None:
    # configure_logging detaches the package logger from the root one.
    monkeypatch.setattr(logging.getLogger("recon_parallel"), "propagate", True)
    caplog.set_level(logging.WARNING, logger="recon_parallel.subjects")
    p = tmp_path / "subjects.txt"
    p.write_text("sub-01\nsub-02\nsub-01\n", encoding="utf-8")
    assert read_subject_list(p) == ["sub-01", "sub-02"]
    assert any("Duplicate subject 'sub-01'" in r.getMessage() and "line 3" in r.getMessage() for r in caplog.records)
