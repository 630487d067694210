"""Timing and hardware report appended to a plain-text log after each run."""

from __future__ import annotations

import math
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from .env import SystemInfo
from .runner import JobSummary


class RunTimer:
    def __init__(self) -> None:
        self.start_iso: Optional[str] = None
        self.end_iso: Optional[str] = None
        self._t0: Optional[float] = None
        self._t1: Optional[float] = None

    def start(self) -> "RunTimer":
        self.start_iso = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self._t0 = time.perf_counter()
        return self

    def stop(self) -> "RunTimer":
        if self._t0 is None:
            raise RuntimeError("RunTimer.stop() called before start()")
        self.end_iso = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self._t1 = time.perf_counter()
        return self

    @property
    def elapsed_s(self) -> float:
        if self._t0 is None:
            return 0.0
        end = self._t1 if self._t1 is not None else time.perf_counter()
        return float(end - self._t0)


def format_duration(seconds: float) -> str:
    return str(timedelta(seconds=int(round(max(0.0, seconds)))))


def _fmt_runtime(v: float) -> str:
    return "n/a" if math.isnan(v) else f"{v:.1f}s"


def format_report(
    *,
    run_id: str,
    timer: RunTimer,
    system: SystemInfo,
    summary: Optional[JobSummary],
    n_subjects: int,
    jobs: int,
    threads: int,
    group: str = "",
    dry_run: bool = False,
    skipped: Optional[List[str]] = None,
) -> str:
    lines = [f"==== recon_parallel run {run_id}{' (dry run)' if dry_run else ''} ===="]
    lines.append(f"start:    {timer.start_iso}")
    lines.append(f"end:      {timer.end_iso}")
    lines.append(f"elapsed:  {timer.elapsed_s:.1f}s ({format_duration(timer.elapsed_s)})")
    lines.append(f"subjects: {n_subjects}  group: {group or '-'}  jobs: {jobs}  threads/job: {threads}")
    if skipped:
        lines.append(f"skipped:  {len(skipped)} ({', '.join(skipped)})")
    if summary is not None:
        lines.append(
            f"results:  ok={summary.n_ok} failed={summary.n_failed} not_run={summary.n_not_run}"
        )
        if summary.failed_subjects:
            lines.append(f"failed:   {', '.join(summary.failed_subjects)}")
        lines.append(
            "runtime:  mean=%s median=%s max=%s"
            % (
                _fmt_runtime(summary.runtime_mean_s),
                _fmt_runtime(summary.runtime_median_s),
                _fmt_runtime(summary.runtime_max_s),
            )
        )
    lines.append(f"host:     {system.hostname} ({system.platform}, python {system.python})")
    lines.append(f"cpu:      {system.cpu_model} [{system.physical_cores} physical / {system.logical_cores} logical]")
    lines.append(f"memory:   {system.memory_total_gb:.2f} GiB total, {system.memory_available_gb:.2f} GiB available")
    if system.load_avg is not None:
        lines.append("loadavg:  " + " ".join(f"{x:.2f}" for x in system.load_avg))
    return "\n".join(lines) + "\n"


def append_report(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(text)
        f.write("\n")
    return path
