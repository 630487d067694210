"""Subject discovery and subject-list files.

A subject is any non-file entry directly under the raw-data root (normally one
directory per subject). The list file is plain text, one id per line, so it can
be edited by hand before a run.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Tuple

logger = logging.getLogger(__name__)

DONE_MARKER = Path("scripts") / "recon-all.done"


def validate_directory(path: Path, label: str) -> Path:
    p = Path(path).expanduser()
    if not p.exists():
        raise FileNotFoundError(f"{label} does not exist: {p}")
    if not p.is_dir():
        raise NotADirectoryError(f"{label} is not a directory: {p}")
    return p.resolve()


def discover_subjects(raw_dir: Path) -> List[str]:
    """Return sorted names of the non-file, non-hidden entries of ``raw_dir``."""
    subjects = []
    for entry in raw_dir.iterdir():
        if entry.name.startswith("."):
            continue
        if entry.is_file():
            continue
        if entry.name.startswith("#") or entry.name != entry.name.strip() or "\n" in entry.name:
            # Would not read back from the list file unchanged.
            logger.warning("Ignoring entry with a name unusable in a subject list: %r", entry.name)
            continue
        # Dangling symlinks are neither files nor directories.
        if not entry.exists():
            logger.warning("Ignoring dangling entry in raw dir: %s", entry)
            continue
        subjects.append(entry.name)
    return sorted(subjects)


def read_subject_list(path: Path) -> List[str]:
    subjects: List[str] = []
    seen = set()
    for lineno, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line in seen:
            logger.warning("Duplicate subject %r in %s (line %d); keeping first", line, path, lineno)
            continue
        seen.add(line)
        subjects.append(line)
    return subjects


def write_subject_list(path: Path, subjects: Iterable[str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = "".join(f"{s}\n" for s in subjects)
    # Atomic write
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(path)
    return path


def load_or_create_subject_list(list_path: Path, raw_dir: Path) -> Tuple[List[str], bool]:
    """Read ``list_path``; if absent, build it from ``raw_dir`` first.

    Returns ``(subjects, created)``.
    """
    created = False
    if list_path.exists():
        subjects = read_subject_list(list_path)
        logger.info("Read %d subject(s) from %s", len(subjects), list_path)
    else:
        subjects = discover_subjects(raw_dir)
        if subjects:
            write_subject_list(list_path, subjects)
            created = True
        logger.info("Discovered %d subject(s) under %s -> %s", len(subjects), raw_dir, list_path)

    if not subjects:
        raise RuntimeError(f"No subjects found (list={list_path}, raw_dir={raw_dir})")
    return subjects, created


def output_id(subject: str, group: str = "") -> str:
    return f"{subject}{group}"


def filter_completed(subjects: Iterable[str], subjects_dir: Path, group: str = "") -> Tuple[List[str], List[str]]:
    """Split subjects into ``(pending, completed)`` using recon-all's done marker."""
    pending: List[str] = []
    completed: List[str] = []
    for s in subjects:
        if (subjects_dir / output_id(s, group) / DONE_MARKER).exists():
            completed.append(s)
        else:
            pending.append(s)
    return pending, completed
