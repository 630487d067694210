"""YAML configuration loader and run-settings resolution.

Precedence for every setting: CLI flag > YAML config > built-in default.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_COMMAND_TEMPLATE = "recon-all -subjid {subject}{group} -i {raw_path} -all -sd {subjects_dir}"
DEFAULT_RAW_PATTERN = "{raw_dir}/{subject}/anat/{subject}_T1w.nii.gz"
DEFAULT_SUBJECT_LIST_NAME = "subjects.txt"
DEFAULT_REPORT_NAME = "recon_parallel_report.log"
DEFAULT_PARALLEL_BIN = "parallel"
PARALLEL_BIN_ENV = "RECON_PARALLEL_BIN"


def load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping/dict. Got: {type(data)}")
    return data


def cfg_get(cfg: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """Fetch a nested key like 'runner.jobs' with a default."""
    cur: Any = cfg
    for part in key_path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


@dataclass(frozen=True)
class RunSettings:
    raw_dir: Path
    subjects_dir: Path
    subject_list: Path
    group: str
    command_template: str
    raw_pattern: str
    jobs: int
    per_job_threads: int
    parallel_bin: str
    report_log: Path
    log_dir: Path
    skip_existing: bool = False
    check_inputs: bool = False
    resume: bool = False
    dry_run: bool = False


def _pick(cli_value: Any, cfg: Dict[str, Any], key_path: str, default: Any) -> Any:
    if cli_value is not None:
        return cli_value
    # A YAML key set to null means "not set".
    value = cfg_get(cfg, key_path, None)
    return default if value is None else value


def _as_int(value: Any, name: str) -> int:
    try:
        out = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc
    if out < 0:
        raise ValueError(f"{name} must be >= 0 (0 = auto), got {out}")
    return out


def _as_path(value: Any) -> Optional[Path]:
    if value is None or value == "":
        return None
    return Path(value).expanduser()


def resolve_settings(args: argparse.Namespace, cfg: Optional[Dict[str, Any]] = None) -> RunSettings:
    cfg = cfg or {}

    raw_dir = _as_path(_pick(args.raw_dir, cfg, "paths.raw_dir", None))
    subjects_dir = _as_path(_pick(args.subjects_dir, cfg, "paths.subjects_dir", None))
    if raw_dir is None:
        raise ValueError("raw_dir is required (--raw_dir or paths.raw_dir in config)")
    if subjects_dir is None:
        raise ValueError("subjects_dir is required (--subjects_dir or paths.subjects_dir in config)")

    subject_list = _as_path(_pick(args.subject_list, cfg, "paths.subject_list", None))
    report_log = _as_path(_pick(args.report_log, cfg, "paths.report_log", None))
    log_dir = _as_path(_pick(None, cfg, "paths.log_dir", None))

    env_bin = os.environ.get(PARALLEL_BIN_ENV, "").strip() or None
    parallel_bin = _pick(args.parallel_bin or env_bin, cfg, "runner.parallel_bin", DEFAULT_PARALLEL_BIN)

    group = _pick(args.group, cfg, "recon.group", "")

    return RunSettings(
        raw_dir=raw_dir,
        subjects_dir=subjects_dir,
        subject_list=subject_list or subjects_dir / DEFAULT_SUBJECT_LIST_NAME,
        group=str(group or ""),
        command_template=str(_pick(args.command_template, cfg, "recon.command_template", DEFAULT_COMMAND_TEMPLATE)),
        raw_pattern=str(_pick(args.raw_pattern, cfg, "recon.raw_pattern", DEFAULT_RAW_PATTERN)),
        jobs=_as_int(_pick(args.jobs, cfg, "runner.jobs", 0), "jobs"),
        per_job_threads=_as_int(_pick(args.per_job_threads, cfg, "runner.per_job_threads", 0), "per_job_threads"),
        parallel_bin=str(parallel_bin),
        report_log=report_log or subjects_dir / DEFAULT_REPORT_NAME,
        log_dir=log_dir or subjects_dir / "logs",
        skip_existing=bool(_pick(args.skip_existing, cfg, "recon.skip_existing", False)),
        check_inputs=bool(_pick(args.check_inputs, cfg, "recon.check_inputs", False)),
        resume=bool(_pick(args.resume, cfg, "runner.resume", False)),
        dry_run=bool(args.dry_run),
    )
