"""Environment, CPU budget and host hardware description.

This module is the single source of truth for:
- how many recon-all jobs run concurrently and how many threads each may use
- the environment handed to the parallel runner
- the hardware summary written to manifests and reports
"""

from __future__ import annotations

import os
import platform
import socket
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import psutil

THREAD_ENV_KEYS = ("OMP_NUM_THREADS", "ITK_GLOBAL_DEFAULT_NUMBER_OF_THREADS")
_SNAPSHOT_KEYS = ("FREESURFER_HOME", "SUBJECTS_DIR", "FS_LICENSE") + THREAD_ENV_KEYS


@dataclass(frozen=True)
class SystemInfo:
    hostname: str
    platform: str
    python: str
    cpu_model: str
    physical_cores: Optional[int]
    logical_cores: Optional[int]
    memory_total_gb: float
    memory_available_gb: float
    load_avg: Optional[Tuple[float, float, float]]

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def auto_jobs() -> int:
    # recon-all is mostly single threaded; one job per physical core minus headroom.
    cores = psutil.cpu_count(logical=False) or os.cpu_count() or 2
    return max(1, int(cores) - 1)


def auto_threads_per_job(jobs: int) -> int:
    cores = os.cpu_count() or 1
    return max(1, cores // max(1, int(jobs)))


def resolve_budget(jobs: int, per_job_threads: int) -> Tuple[int, int]:
    """Resolve ``0 = auto`` values into a concrete ``(jobs, threads)`` pair."""
    j = int(jobs) if int(jobs) > 0 else auto_jobs()
    t = int(per_job_threads) if int(per_job_threads) > 0 else auto_threads_per_job(j)
    return j, t


def child_env(
    *,
    subjects_dir: Path,
    threads: int,
    base: Optional[Mapping[str, str]] = None,
    allow_override: bool = False,
) -> Dict[str, str]:
    """Environment for the parallel runner and every recon-all it spawns."""
    env = dict(os.environ if base is None else base)
    env["SUBJECTS_DIR"] = str(subjects_dir)
    for key in THREAD_ENV_KEYS:
        if allow_override and key in env:
            continue
        env[key] = str(int(threads))
    return env


def _cpu_model() -> str:
    cpuinfo = Path("/proc/cpuinfo")
    if cpuinfo.exists():
        try:
            for line in cpuinfo.read_text(encoding="utf-8", errors="replace").splitlines():
                if line.lower().startswith("model name"):
                    return line.split(":", 1)[1].strip()
        except OSError:
            pass
    return platform.processor() or platform.machine() or "unknown"


def detect_system_info() -> SystemInfo:
    mem = psutil.virtual_memory()
    try:
        load = tuple(round(float(x), 2) for x in os.getloadavg())
    except (AttributeError, OSError):
        load = None
    return SystemInfo(
        hostname=socket.gethostname(),
        platform=platform.platform(),
        python=platform.python_version(),
        cpu_model=_cpu_model(),
        physical_cores=psutil.cpu_count(logical=False),
        logical_cores=psutil.cpu_count(logical=True),
        memory_total_gb=round(mem.total / (1024**3), 2),
        memory_available_gb=round(mem.available / (1024**3), 2),
        load_avg=load,  # type: ignore[arg-type]
    )


def env_snapshot() -> Dict[str, Any]:
    return {
        "platform": platform.platform(),
        "python": platform.python_version(),
        **{k: os.environ.get(k) for k in _SNAPSHOT_KEYS},
    }
