from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def raw_tree(tmp_path: Path) -> Path:
    """Raw-data root with three subject dirs, a stray file and a hidden dir."""
    raw = tmp_path / "raw"
    for sub in ("sub-02", "sub-01", "sub-10"):
        anat = raw / sub / "anat"
        anat.mkdir(parents=True)
        (anat / f"{sub}_T1w.nii.gz").write_bytes(b"")
    (raw / "participants.tsv").write_text("participant_id\n", encoding="utf-8")
    (raw / ".git").mkdir()
    return raw


@pytest.fixture
def subjects_dir(tmp_path: Path) -> Path:
    out = tmp_path / "freesurfer"
    out.mkdir()
    return out
