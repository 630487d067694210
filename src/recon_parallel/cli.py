"""Command-line entry point: subject list -> per-subject recon-all -> GNU parallel.

Outputs (under --subjects_dir unless overridden):
- subjects.txt when no subject list exists yet
- logs/commands_<run_id>.txt, logs/joblog_<run_id>.tsv, logs/parallel_<run_id>.log
- logs/run_manifest_recon_parallel_<run_id>.json
- recon_parallel_report.log (appended timing/hardware report)
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import List, Optional, Sequence

from .config import load_yaml, resolve_settings
from .env import child_env, detect_system_info, resolve_budget
from .logging_utils import configure_logging
from .manifest import write_manifest
from .report import RunTimer, append_report, format_report
from .runner import (
    build_parallel_argv,
    ensure_parallel_available,
    read_joblog,
    run_parallel,
    summarize_joblog,
    write_command_file,
)
from .subjects import (
    filter_completed,
    load_or_create_subject_list,
    read_subject_list,
    validate_directory,
    write_subject_list,
)
from .templating import build_commands, split_missing_inputs

ENTRYPOINT = "recon_parallel"


def _add_switch(ap: argparse.ArgumentParser, name: str, help: str) -> None:
    """Add a --name / --no_name pair; None means "not given" so the YAML value applies."""
    ap.add_argument(f"--{name}", dest=name, action="store_true", help=help)
    ap.add_argument(f"--no_{name}", dest=name, action="store_false", help=f"Disable --{name} (overrides the config)")
    ap.set_defaults(**{name: None})


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="recon-parallel",
        description="Run FreeSurfer recon-all for every subject of a raw-data tree with GNU parallel.",
    )
    ap.add_argument("--raw_dir", type=Path, default=None, help="Raw-data root; one entry per subject")
    ap.add_argument("--subjects_dir", type=Path, default=None, help="FreeSurfer SUBJECTS_DIR (output root)")
    ap.add_argument(
        "--subject_list",
        type=Path,
        default=None,
        help="Newline-delimited subject ids (default: <subjects_dir>/subjects.txt; created from raw_dir if absent)",
    )
    ap.add_argument("--group", type=str, default=None, help="Suffix appended to each subject id in the output name")
    ap.add_argument(
        "--command_template",
        type=str,
        default=None,
        help="Per-subject command; fields: {subject} {group} {raw_dir} {raw_path} {subjects_dir} {threads}",
    )
    ap.add_argument(
        "--raw_pattern",
        type=str,
        default=None,
        help="Raw input path pattern; fields: {raw_dir} {subject} {group}",
    )
    ap.add_argument("--jobs", type=int, default=None, help="Concurrent jobs. 0=auto.")
    ap.add_argument("--per_job_threads", type=int, default=None, help="OMP/ITK threads per job. 0=auto.")
    ap.add_argument("--parallel_bin", type=str, default=None, help="GNU parallel executable")
    ap.add_argument("--config", type=Path, default=None, help="Optional YAML file with defaults")
    ap.add_argument("--report_log", type=Path, default=None, help="File the timing/hardware report is appended to")
    ap.add_argument("--run_id", type=str, default=None)
    _add_switch(ap, "skip_existing", "Skip subjects with scripts/recon-all.done")
    _add_switch(ap, "check_inputs", "Skip subjects whose raw input path is missing")
    _add_switch(ap, "resume", "Re-run only failed jobs of --run_id, replaying that run's recorded job list")
    ap.add_argument("--dry_run", action="store_true", help="Write the command file but do not execute it")
    return ap


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    run_id = args.run_id or time.strftime("%Y%m%d_%H%M%S")
    timer = RunTimer().start()

    cfg = load_yaml(args.config) if args.config is not None else {}
    settings = resolve_settings(args, cfg)

    raw_dir = validate_directory(settings.raw_dir, "raw_dir")
    subjects_dir = validate_directory(settings.subjects_dir, "subjects_dir")

    logger = configure_logging(log_dir=settings.log_dir, run_id=run_id, name=ENTRYPOINT)
    logger.info("raw_dir=%s subjects_dir=%s run_id=%s", raw_dir, subjects_dir, run_id)

    subjects, created = load_or_create_subject_list(settings.subject_list, raw_dir)
    if created:
        logger.info("Wrote subject list: %s", settings.subject_list)

    # --resume-failed matches jobs by joblog Seq, so a resumed run must replay
    # the exact job order of the run it resumes.
    jobs_file = settings.log_dir / f"jobs_{run_id}.txt"
    resuming = settings.resume and jobs_file.exists()
    if resuming:
        subjects = read_subject_list(jobs_file)
        logger.info("Resuming run %s with its %d recorded job(s); subject filters are not applied", run_id, len(subjects))
    elif settings.resume:
        logger.warning("Nothing to resume for run %s (%s missing); starting a fresh run", run_id, jobs_file)

    skipped: List[str] = []
    if settings.skip_existing and not resuming:
        subjects, completed = filter_completed(subjects, subjects_dir, settings.group)
        for s in completed:
            logger.info("SKIP sub=%s (recon-all.done present)", s)
        skipped += completed

    jobs, threads = resolve_budget(settings.jobs, settings.per_job_threads)
    logger.info("Parallel config: jobs=%d threads_per_job=%d", jobs, threads)

    commands = build_commands(
        subjects,
        template=settings.command_template,
        raw_dir=raw_dir,
        subjects_dir=subjects_dir,
        raw_pattern=settings.raw_pattern,
        group=settings.group,
        threads=threads,
    )
    if settings.check_inputs and not resuming:
        commands, missing = split_missing_inputs(commands)
        for c in missing:
            logger.warning("SKIP sub=%s (missing input %s)", c.subject, c.raw_path)
        skipped += [c.subject for c in missing]

    manifest_path = write_manifest(
        out_dir=settings.log_dir,
        run_id=run_id,
        entrypoint=ENTRYPOINT,
        args={k: str(v) for k, v in vars(args).items()},
        extra={
            "settings": {k: str(v) for k, v in vars(settings).items()},
            "jobs": jobs,
            "threads_per_job": threads,
            "n_subjects": len(commands),
            "skipped": skipped,
        },
    )
    logger.info("Wrote manifest: %s", manifest_path)

    summary = None
    if not commands:
        logger.info("No pending subjects; nothing to run")
    else:
        command_file = write_command_file(settings.log_dir / f"commands_{run_id}.txt", commands)
        if not resuming:
            write_subject_list(jobs_file, [c.subject for c in commands])
        joblog = settings.log_dir / f"joblog_{run_id}.tsv"
        argv_parallel = build_parallel_argv(
            settings.parallel_bin,
            jobs=jobs,
            command_file=command_file,
            joblog=joblog,
            resume=settings.resume,
        )
        logger.info("Command file (%d job(s)): %s", len(commands), command_file)
        for c in commands:
            logger.debug("CMD sub=%s: %s", c.subject, c.command)

        if settings.dry_run:
            logger.info("Dry run; would execute: %s", " ".join(argv_parallel))
        else:
            version = ensure_parallel_available(settings.parallel_bin)
            logger.info("Runner: %s", version)
            res = run_parallel(
                argv_parallel,
                env=child_env(subjects_dir=subjects_dir, threads=threads),
                log_path=settings.log_dir / f"parallel_{run_id}.log",
            )
            logger.info("Runner exited rc=%d", res.rc)
            summary = summarize_joblog(read_joblog(joblog), commands)
            for s in summary.failed_subjects:
                logger.error("FAILED sub=%s (see %s)", s, joblog)
            for s in summary.not_run_subjects:
                logger.error("NOT RUN sub=%s", s)

    timer.stop()
    report = format_report(
        run_id=run_id,
        timer=timer,
        system=detect_system_info(),
        summary=summary,
        n_subjects=len(commands),
        jobs=jobs,
        threads=threads,
        group=settings.group,
        dry_run=settings.dry_run,
        skipped=skipped,
    )
    append_report(settings.report_log, report)
    logger.info("Appended report: %s", settings.report_log)

    if summary is not None:
        logger.info(
            "Summary: total=%d ok=%d failed=%d not_run=%d skipped=%d",
            summary.n_jobs,
            summary.n_ok,
            summary.n_failed,
            summary.n_not_run,
            len(skipped),
        )
        if summary.n_failed or summary.n_not_run:
            raise RuntimeError(
                f"recon-all failed for {summary.n_failed + summary.n_not_run} subject(s). See logs in {settings.log_dir}"
            )


if __name__ == "__main__":
    main()
