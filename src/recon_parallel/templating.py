"""Per-subject command construction.

Templates use ``str.format`` fields. Values are shell-quoted before
substitution because GNU parallel hands each line to a shell; ``{group}`` is the
exception and is glued verbatim onto the subject id, so it must already be
shell-safe.
"""

from __future__ import annotations

import re
import shlex
import string
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional

TEMPLATE_FIELDS: FrozenSet[str] = frozenset({"subject", "group", "raw_dir", "raw_path", "subjects_dir", "threads"})
RAW_PATTERN_FIELDS: FrozenSet[str] = frozenset({"subject", "group", "raw_dir"})

_SAFE_GROUP = re.compile(r"^[A-Za-z0-9._+-]*$")


@dataclass(frozen=True)
class SubjectCommand:
    subject: str
    output_id: str
    raw_path: Path
    command: str


def template_fields(template: str) -> List[str]:
    try:
        parsed = list(string.Formatter().parse(template))
    except ValueError as exc:
        raise ValueError(f"Malformed template {template!r}: {exc}") from exc
    fields = []
    for _, name, spec, conversion in parsed:
        if name is None:
            continue
        if conversion or spec:
            # Substituted values are already shell-quoted strings.
            raise ValueError(f"Conversions and format specs are not supported in template {template!r}: {{{name}}}")
        fields.append(name)
    return fields


def validate_template(template: str, allowed: Iterable[str] = TEMPLATE_FIELDS) -> List[str]:
    allowed = set(allowed)
    fields = template_fields(template)
    for name in fields:
        if name == "" or name.isdigit():
            raise ValueError(f"Positional fields are not supported in template {template!r}")
        if name not in allowed:
            raise ValueError(
                f"Unknown field {{{name}}} in template {template!r}; allowed: {', '.join(sorted(allowed))}"
            )
    return fields


def validate_group(group: str) -> str:
    group = group or ""
    if not _SAFE_GROUP.match(group):
        raise ValueError(f"Group suffix must match {_SAFE_GROUP.pattern}, got {group!r}")
    return group


def render_raw_path(pattern: str, *, subject: str, raw_dir: Path, group: str = "") -> Path:
    validate_template(pattern, RAW_PATTERN_FIELDS)
    return Path(pattern.format_map({"subject": subject, "group": group, "raw_dir": str(raw_dir)}))


def build_command(
    template: str,
    *,
    subject: str,
    raw_dir: Path,
    subjects_dir: Path,
    raw_pattern: str,
    group: str = "",
    threads: Optional[int] = None,
) -> SubjectCommand:
    validate_template(template)
    group = validate_group(group)
    raw_path = render_raw_path(raw_pattern, subject=subject, raw_dir=raw_dir, group=group)
    values = {
        "subject": shlex.quote(subject),
        "group": group,
        "raw_dir": shlex.quote(str(raw_dir)),
        "raw_path": shlex.quote(str(raw_path)),
        "subjects_dir": shlex.quote(str(subjects_dir)),
        "threads": str(int(threads)) if threads else "1",
    }
    command = template.format_map(values)
    if "\n" in command:
        raise ValueError(f"Rendered command for {subject!r} spans multiple lines")
    return SubjectCommand(
        subject=subject,
        output_id=f"{subject}{group}",
        raw_path=raw_path,
        command=command,
    )


def build_commands(
    subjects: Iterable[str],
    *,
    template: str,
    raw_dir: Path,
    subjects_dir: Path,
    raw_pattern: str,
    group: str = "",
    threads: Optional[int] = None,
) -> List[SubjectCommand]:
    return [
        build_command(
            template,
            subject=s,
            raw_dir=raw_dir,
            subjects_dir=subjects_dir,
            raw_pattern=raw_pattern,
            group=group,
            threads=threads,
        )
        for s in subjects
    ]


def split_missing_inputs(commands: Iterable[SubjectCommand]):
    """Return ``(ready, missing)`` by whether each rendered raw path exists."""
    ready: List[SubjectCommand] = []
    missing: List[SubjectCommand] = []
    for c in commands:
        (ready if c.raw_path.exists() else missing).append(c)
    return ready, missing
