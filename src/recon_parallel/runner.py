"""GNU parallel invocation and joblog summary.

Scheduling is left to GNU parallel: we hand it a file with one shell command
per line (``parallel :::: FILE``) and read back its ``--joblog`` afterwards.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .templating import SubjectCommand

logger = logging.getLogger(__name__)

JOBLOG_COLUMNS = ["Seq", "Host", "Starttime", "JobRuntime", "Send", "Receive", "Exitval", "Signal", "Command"]


@dataclass
class ExecResult:
    rc: int
    argv: List[str]
    stdout: str = ""


@dataclass
class JobSummary:
    n_jobs: int = 0
    n_ok: int = 0
    n_failed: int = 0
    n_not_run: int = 0
    failed_subjects: List[str] = field(default_factory=list)
    not_run_subjects: List[str] = field(default_factory=list)
    runtime_mean_s: float = float("nan")
    runtime_median_s: float = float("nan")
    runtime_max_s: float = float("nan")


def ensure_parallel_available(exe: str) -> str:
    resolved = shutil.which(exe)
    if resolved is None:
        raise RuntimeError(
            f"GNU parallel is required but not found in PATH (bin={exe}). "
            "Install it or pass --parallel_bin / set RECON_PARALLEL_BIN."
        )
    p = subprocess.run(
        [resolved, "--version"],
        check=False,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )
    if p.returncode != 0:
        raise RuntimeError(f"Command failed (exit={p.returncode}): {resolved} --version\n{p.stdout}")
    lines = (p.stdout or "").strip().splitlines()
    return lines[0] if lines else resolved


def write_command_file(path: Path, commands: Sequence[SubjectCommand]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"{c.command}\n" for c in commands), encoding="utf-8")
    return path


def build_parallel_argv(
    exe: str,
    *,
    jobs: int,
    command_file: Path,
    joblog: Path,
    resume: bool = False,
) -> List[str]:
    argv = [exe, "--jobs", str(int(jobs)), "--joblog", str(joblog)]
    if resume:
        argv.append("--resume-failed")
    argv += ["::::", str(command_file)]
    return argv


def run_parallel(argv: Sequence[str], *, env: Optional[Dict[str, str]] = None, log_path: Optional[Path] = None) -> ExecResult:
    """Run the runner to completion; a non-zero exit is returned, not raised.

    GNU parallel exits with the number of failed jobs (capped at 101), so the
    caller decides what a failure means from the joblog.
    """
    logger.info("Running: %s", " ".join(argv))
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as lf:
            lf.write(f"[{datetime.now(timezone.utc).isoformat()}] CMD: {' '.join(argv)}\n")
            lf.flush()
            proc = subprocess.run(
                list(argv),
                env=env,
                stdout=lf,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
            )
        return ExecResult(rc=int(proc.returncode), argv=list(argv))

    proc = subprocess.run(
        list(argv),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        check=False,
    )
    return ExecResult(rc=int(proc.returncode), argv=list(argv), stdout=proc.stdout or "")


def read_joblog(path: Path) -> pd.DataFrame:
    p = Path(path)
    if not p.exists() or p.stat().st_size == 0:
        return pd.DataFrame(columns=JOBLOG_COLUMNS)
    try:
        df = pd.read_csv(p, sep="\t")
    except pd.errors.EmptyDataError:
        return pd.DataFrame(columns=JOBLOG_COLUMNS)
    missing = [c for c in ("Seq", "JobRuntime", "Exitval", "Signal") if c not in df.columns]
    if missing:
        raise ValueError(f"Unrecognised joblog {p}: missing column(s) {missing}")
    return df


def summarize_joblog(df: pd.DataFrame, commands: Sequence[SubjectCommand]) -> JobSummary:
    """Map joblog rows back to subjects via ``Seq`` (1-based input line)."""
    summary = JobSummary(n_jobs=len(commands))
    if df.empty:
        summary.n_not_run = len(commands)
        summary.not_run_subjects = [c.subject for c in commands]
        return summary

    # With --resume-failed a Seq can appear more than once; the last attempt wins.
    df = df.copy()
    df["Seq"] = pd.to_numeric(df["Seq"], errors="coerce")
    df = df.dropna(subset=["Seq"]).drop_duplicates(subset=["Seq"], keep="last")
    df["Seq"] = df["Seq"].astype(int)
    exitval = pd.to_numeric(df["Exitval"], errors="coerce").fillna(-1).astype(int)
    signal = pd.to_numeric(df["Signal"], errors="coerce").fillna(0).astype(int)
    ok_by_seq = dict(zip(df["Seq"].tolist(), ((exitval == 0) & (signal == 0)).tolist()))

    for seq, cmd in enumerate(commands, start=1):
        if seq not in ok_by_seq:
            summary.not_run_subjects.append(cmd.subject)
        elif ok_by_seq[seq]:
            summary.n_ok += 1
        else:
            summary.failed_subjects.append(cmd.subject)
    summary.n_failed = len(summary.failed_subjects)
    summary.n_not_run = len(summary.not_run_subjects)

    vals = pd.to_numeric(df["JobRuntime"], errors="coerce").to_numpy(dtype=float)
    vals = vals[np.isfinite(vals)]
    if vals.size:
        summary.runtime_mean_s = float(np.mean(vals))
        summary.runtime_median_s = float(np.median(vals))
        summary.runtime_max_s = float(np.max(vals))
    return summary
