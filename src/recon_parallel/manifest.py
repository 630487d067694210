"""Per-run JSON manifest: what was asked for, where it ran, which FreeSurfer."""

from __future__ import annotations

import json
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .env import detect_system_info, env_snapshot


def _tool_version(argv) -> Optional[str]:
    """First output line of ``argv``; None when the tool is absent or fails."""
    if shutil.which(argv[0]) is None:
        return None
    try:
        p = subprocess.run(argv, check=False, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, timeout=30)
    except (OSError, subprocess.TimeoutExpired):
        return None
    lines = (p.stdout or "").strip().splitlines()
    return lines[0] if p.returncode == 0 and lines else None


def write_manifest(
    *,
    out_dir: Path,
    run_id: str,
    entrypoint: str,
    args: Dict[str, Any],
    extra: Optional[Dict[str, Any]] = None,
) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / f"run_manifest_{entrypoint}_{run_id}.json"

    payload: Dict[str, Any] = {
        "run_id": run_id,
        "entrypoint": entrypoint,
        "args": args,
        "env": env_snapshot(),
        "system": detect_system_info().as_dict(),
        "tools": {
            "python": sys.version.split()[0],
            "python_executable": sys.executable,
            "recon_all": _tool_version(["recon-all", "-version"]),
            "git_commit": _tool_version(["git", "rev-parse", "HEAD"]),
        },
    }
    if extra:
        payload["extra"] = extra

    tmp = target.with_name(target.name + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str), encoding="utf-8")
    tmp.replace(target)
    return target
