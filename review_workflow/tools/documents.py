"""Markdown codecs for the persisted workflow documents.

Each document has a fixed schema (headed sections, pipe tables, `**Key:**`
fields, fenced blocks) and downstream steps parse it by structure, never as
free-form prose:

- report.md    - findings, ordered and numbered
- plan.md      - verification command, classifications, won't-fix, batches
- progress.md  - counts and the Batch Status table
- batch-N-*.md - one resolution log per executed batch
"""

import re
from typing import Dict, List, Optional, Tuple

from ..errors import DocumentFormatError, InvariantViolation
from ..models import (
    BatchProgress,
    BatchResolutionLog,
    BatchStatus,
    Batch,
    Category,
    Classification,
    Complexity,
    Dependency,
    Finding,
    FindingChange,
    Location,
    Plan,
    Progress,
    Report,
    ScanContext,
    SEVERITY_ORDER,
    Severity,
    WontFixDecision,
)


NONE_MARKER = "None."
EMPTY_CELL = "-"

# Regex patterns
_heading2 = re.compile(r'^## (.+?)\s*$')
_meta_field = re.compile(r'^\*\*(.+?):\*\*\s?(.*)$')
_list_field = re.compile(r'^- \*\*(.+?):\*\*\s?(.*)$')
_finding_heading = re.compile(r'^### #(\d+) (.*)$')
_batch_heading = re.compile(r'^### Batch (\d+): (.*)$')
_log_title = re.compile(r'^# Batch (\d+): (.*)$')
_cell_split = re.compile(r'(?<!\\)\|')
_fence_open = re.compile(r'^(`{3,})(\w*)\s*$')
_finding_ref = re.compile(r'#(\d+)')


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _cell(value) -> str:
    text = str(value) if value not in (None, "") else EMPTY_CELL
    return text.replace("|", "\\|").replace("\r\n", "\n").replace("\n", "<br>")


def _uncell(value: str) -> str:
    text = value.strip().replace("\\|", "|").replace("<br>", "\n")
    return "" if text == EMPTY_CELL else text


def render_table(headers: List[str], rows: List[List]) -> List[str]:
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "---|" * len(headers),
    ]
    for row in rows:
        lines.append("| " + " | ".join(_cell(v) for v in row) + " |")
    return lines


def parse_table(lines: List[str]) -> List[Dict[str, str]]:
    """Parse the first pipe table in a block of lines into row dicts."""
    table = [line.strip() for line in lines if line.strip().startswith("|")]
    if len(table) < 2:
        return []
    headers = [_uncell(h) for h in _cell_split.split(table[0].strip("|"))]
    rows = []
    for line in table[2:]:
        inner = line[1:-1] if line.endswith("|") and not line.endswith("\\|") else line[1:]
        cells = [_uncell(c) for c in _cell_split.split(inner)]
        if len(cells) != len(headers):
            raise DocumentFormatError(f"Malformed table row: {line}")
        rows.append(dict(zip(headers, cells)))
    return rows


def format_ids(ids: List[int]) -> str:
    return ", ".join(f"#{i}" for i in ids)


def parse_ids(text: str) -> List[int]:
    return [int(m) for m in _finding_ref.findall(text or "")]


def render_fenced(content: str, info: str = "text") -> List[str]:
    """Fence content with more backticks than any run it contains."""
    longest = max((len(run) for run in re.findall(r'`+', content)), default=0)
    fence = "`" * max(3, longest + 1)
    body = content.rstrip("\n")
    return [fence + info] + (body.split("\n") if body else []) + [fence]


def parse_fenced(lines: List[str]) -> Optional[str]:
    """Return the content of the first fenced block, or None."""
    for start, line in enumerate(lines):
        match = _fence_open.match(line)
        if not match:
            continue
        fence = match.group(1)
        for end in range(start + 1, len(lines)):
            if lines[end].strip() == fence:
                return "\n".join(lines[start + 1:end])
        raise DocumentFormatError("Unterminated fenced block")
    return None


def _render_field(key: str, value: str, bullet: bool = True) -> List[str]:
    prefix = f"- **{key}:**" if bullet else f"**{key}:**"
    parts = (value or "").split("\n")
    first = f"{prefix} {parts[0]}".rstrip()
    return [first] + [f"  {p}" for p in parts[1:]]


def _parse_fields(lines: List[str], pattern=_list_field) -> Dict[str, str]:
    """Parse `**Key:** value` fields, with two-space continuation lines."""
    fields: Dict[str, List[str]] = {}
    current: Optional[str] = None
    for line in lines:
        match = pattern.match(line)
        if match:
            current = match.group(1)
            fields[current] = [match.group(2)]
        elif current is not None and line.startswith("  "):
            fields[current].append(line[2:])
        else:
            current = None
    return {k: "\n".join(v).strip() for k, v in fields.items()}


def split_sections(text: str) -> Tuple[List[str], Dict[str, List[str]]]:
    """Split a document into its preamble and `## Heading` sections."""
    preamble: List[str] = []
    sections: Dict[str, List[str]] = {}
    current: Optional[List[str]] = None
    in_fence: Optional[str] = None

    for line in text.split("\n"):
        fence = _fence_open.match(line)
        if in_fence is None and fence:
            in_fence = fence.group(1)
        elif in_fence is not None and line.strip() == in_fence:
            in_fence = None
        elif in_fence is None:
            heading = _heading2.match(line)
            if heading:
                current = sections.setdefault(heading.group(1), [])
                continue
        (preamble if current is None else current).append(line)

    return preamble, sections


def _split_blocks(lines: List[str], pattern) -> List[Tuple[re.Match, List[str]]]:
    blocks = []
    for line in lines:
        match = pattern.match(line)
        if match:
            blocks.append((match, []))
        elif blocks:
            blocks[-1][1].append(line)
    return blocks


def _require(sections: Dict[str, List[str]], name: str, document: str) -> List[str]:
    if name not in sections:
        raise DocumentFormatError(f"{document}: missing section '## {name}'")
    return sections[name]


def _require_field(fields: Dict[str, str], key: str, where: str) -> str:
    if key not in fields:
        raise DocumentFormatError(f"{where}: missing field '{key}'")
    return fields[key]


def _is_none(lines: List[str]) -> bool:
    return any(line.strip() == NONE_MARKER for line in lines)


def _enum(enum_cls, value: str, where: str):
    try:
        return enum_cls(value.strip())
    except ValueError:
        raise DocumentFormatError(f"{where}: invalid {enum_cls.__name__} '{value}'")


def _int(value: str, where: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise DocumentFormatError(f"{where}: expected a number, got '{value}'")


# ---------------------------------------------------------------------------
# report.md
# ---------------------------------------------------------------------------

def render_report(report: Report) -> str:
    context = report.context
    lines = [
        "# Codebase Review Report",
        "",
        f"**Date:** {report.date}",
        f"**Scope:** {report.scope}",
        "",
        "## Context",
        "",
    ]
    lines += _render_field("Purpose", context.purpose or "Not provided")
    lines += _render_field("Active areas", context.active_areas or "Not provided")
    lines += _render_field("Pain points", context.pain_points or "Not provided")

    counts = report.count_by_severity()
    lines += ["", "## Summary", ""]
    lines += render_table(
        ["Severity", "Count"],
        [[s.value, counts[s]] for s in SEVERITY_ORDER] + [["Total", len(report.findings)]],
    )

    lines += ["", "## Incomplete Categories", ""]
    if report.incomplete:
        for category, reason in report.incomplete:
            lines += _render_field(category.value, reason)
    else:
        lines.append(NONE_MARKER)

    lines += ["", "## Findings", ""]
    if not report.findings:
        lines.append(NONE_MARKER)
    for finding in report.findings:
        lines.append(f"### #{finding.id} {finding.description}")
        lines += _render_field("Severity", finding.severity.value)
        lines += _render_field("Category", finding.category.value)
        lines += _render_field("Categories", ", ".join(c.value for c in finding.all_categories))
        lines += _render_field("Location", str(finding.location))
        lines += _render_field("Details", finding.details)
        lines += _render_field("Suggestion", finding.suggestion)
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"


def parse_report(text: str) -> Report:
    preamble, sections = split_sections(text)
    meta = _parse_fields(preamble, _meta_field)
    context_fields = _parse_fields(_require(sections, "Context", "report.md"))

    def context_value(key: str) -> str:
        value = context_fields.get(key, "")
        return "" if value == "Not provided" else value

    incomplete = []
    incomplete_lines = sections.get("Incomplete Categories", [])
    if not _is_none(incomplete_lines):
        for key, reason in _parse_fields(incomplete_lines).items():
            incomplete.append((_enum(Category, key, "report.md incomplete"), reason))

    findings = []
    for match, body in _split_blocks(_require(sections, "Findings", "report.md"), _finding_heading):
        where = f"report.md finding #{match.group(1)}"
        fields = _parse_fields(body)
        category = _enum(Category, _require_field(fields, "Category", where), where)
        categories = tuple(
            _enum(Category, c, where)
            for c in fields.get("Categories", category.value).split(",") if c.strip()
        )
        findings.append(Finding(
            id=int(match.group(1)),
            description=match.group(2).strip(),
            severity=_enum(Severity, _require_field(fields, "Severity", where), where),
            category=category,
            location=Location.parse(_require_field(fields, "Location", where)),
            details=fields.get("Details", ""),
            suggestion=fields.get("Suggestion", ""),
            categories=categories,
        ))

    return Report(
        date=_require_field(meta, "Date", "report.md"),
        scope=_require_field(meta, "Scope", "report.md"),
        context=ScanContext(
            purpose=context_value("Purpose"),
            active_areas=context_value("Active areas"),
            pain_points=context_value("Pain points"),
        ),
        findings=findings,
        incomplete=incomplete,
    )


# ---------------------------------------------------------------------------
# plan.md
# ---------------------------------------------------------------------------

def render_plan(plan: Plan) -> str:
    lines = [
        "# Remediation Plan",
        "",
        f"**Created:** {plan.created}",
        "",
        "## Verification Command",
        "",
    ]
    lines += render_fenced(plan.verification_command, "sh")

    lines += ["", "## Classification", ""]
    lines += render_table(
        ["Finding", "Complexity", "Dependency", "Reason"],
        [
            [f"#{c.finding_id}", c.complexity.value, c.dependency.value, c.reason]
            for _, c in sorted(plan.classifications.items())
        ],
    )

    lines += ["", "## Won't Fix", ""]
    if plan.wont_fix:
        lines += render_table(
            ["Finding", "Rationale"],
            [[f"#{d.finding_id}", d.rationale] for d in plan.wont_fix],
        )
    else:
        lines.append(NONE_MARKER)

    lines += ["", "## Batches", ""]
    for batch in plan.batches:
        lines.append(f"### Batch {batch.number}: {batch.name}")
        lines += _render_field("Type", batch.kind.value)
        lines += _render_field("Findings", format_ids(batch.finding_ids))
        if batch.unblocks:
            lines += _render_field("Unblocks", format_ids(batch.unblocks))
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"


def parse_plan(text: str) -> Plan:
    preamble, sections = split_sections(text)
    meta = _parse_fields(preamble, _meta_field)

    command = parse_fenced(_require(sections, "Verification Command", "plan.md"))
    if not command or not command.strip():
        raise DocumentFormatError("plan.md: verification command is empty")

    classifications = {}
    for row in parse_table(sections.get("Classification", [])):
        where = "plan.md classification"
        ids = parse_ids(row.get("Finding", ""))
        if len(ids) != 1:
            raise DocumentFormatError(f"{where}: bad finding reference '{row.get('Finding')}'")
        classifications[ids[0]] = Classification(
            finding_id=ids[0],
            complexity=_enum(Complexity, row.get("Complexity", ""), where),
            dependency=_enum(Dependency, row.get("Dependency", ""), where),
            reason=row.get("Reason", ""),
        )

    wont_fix = []
    wont_fix_lines = _require(sections, "Won't Fix", "plan.md")
    if not _is_none(wont_fix_lines):
        for row in parse_table(wont_fix_lines):
            ids = parse_ids(row.get("Finding", ""))
            if len(ids) != 1:
                raise DocumentFormatError(f"plan.md won't fix: bad finding reference '{row.get('Finding')}'")
            wont_fix.append(WontFixDecision(finding_id=ids[0], rationale=row.get("Rationale", "")))

    batches = []
    for match, body in _split_blocks(_require(sections, "Batches", "plan.md"), _batch_heading):
        where = f"plan.md batch {match.group(1)}"
        fields = _parse_fields(body)
        batches.append(Batch(
            number=int(match.group(1)),
            name=match.group(2).strip(),
            kind=_enum(Complexity, _require_field(fields, "Type", where), where),
            finding_ids=parse_ids(_require_field(fields, "Findings", where)),
            unblocks=parse_ids(fields.get("Unblocks", "")),
        ))

    return Plan(
        verification_command=command.strip(),
        created=_require_field(meta, "Created", "plan.md"),
        batches=batches,
        wont_fix=wont_fix,
        classifications=classifications,
    )


# ---------------------------------------------------------------------------
# progress.md
# ---------------------------------------------------------------------------

_COUNT_ROWS = [
    ("Resolved", "resolved"),
    ("Won't fix", "wont_fix"),
    ("Remaining", "remaining"),
    ("Deferred", "deferred"),
    ("Total", "total"),
]


def render_progress(progress: Progress) -> str:
    counts = progress.counts
    lines = [
        "# Resolution Progress",
        "",
        f"**Updated:** {progress.updated}",
        f"**Completed:** {progress.completed or 'no'}",
        "",
        "## Counts",
        "",
    ]
    lines += render_table(
        ["Metric", "Count"],
        [[label, getattr(counts, attr)] for label, attr in _COUNT_ROWS],
    )
    lines += ["", "## Batch Status", ""]
    lines += render_table(
        ["Batch", "Name", "Findings", "Status", "Commit"],
        [
            [e.number, e.name, format_ids(e.finding_ids), e.status.value, e.commit]
            for e in progress.entries
        ],
    )
    return "\n".join(lines) + "\n"


def parse_progress(text: str) -> Progress:
    preamble, sections = split_sections(text)
    meta = _parse_fields(preamble, _meta_field)

    stored = {}
    for row in parse_table(_require(sections, "Counts", "progress.md")):
        stored[row.get("Metric", "")] = _int(row.get("Count", ""), "progress.md counts")

    entries = []
    for row in parse_table(_require(sections, "Batch Status", "progress.md")):
        where = f"progress.md batch {row.get('Batch')}"
        entries.append(BatchProgress(
            number=_int(row.get("Batch", ""), where),
            name=row.get("Name", ""),
            finding_ids=parse_ids(row.get("Findings", "")),
            status=_enum(BatchStatus, row.get("Status", ""), where),
            commit=row.get("Commit") or None,
        ))

    completed = meta.get("Completed", "no")
    progress = Progress(
        entries=entries,
        wont_fix=stored.get("Won't fix", 0),
        updated=meta.get("Updated", ""),
        completed=None if completed in ("", "no") else completed,
    )

    derived = progress.counts
    for label, attr in _COUNT_ROWS:
        if label in stored and stored[label] != getattr(derived, attr):
            raise InvariantViolation(
                f"progress.md: '{label}' is {stored[label]} but batch statuses give "
                f"{getattr(derived, attr)}"
            )
    return progress


# ---------------------------------------------------------------------------
# batch-N-<slug>.md
# ---------------------------------------------------------------------------

def render_batch_log(log: BatchResolutionLog) -> str:
    lines = [
        f"# Batch {log.number}: {log.name}",
        "",
        f"**Date:** {log.date}",
        f"**Type:** {log.kind.value}",
        f"**Commit:** {log.commit}",
        "",
        "## Changes",
        "",
    ]
    lines += render_table(
        ["Finding", "Change"],
        [[f"#{c.finding_id}", c.description] for c in log.changes],
    )
    lines += ["", "## Verification Output", ""]
    lines += render_fenced(log.verification_output)
    lines += ["", "## Notes", ""]
    if log.notes:
        lines += [f"- {' '.join(note.split())}" for note in log.notes]
    else:
        lines.append(NONE_MARKER)
    return "\n".join(lines) + "\n"


def parse_batch_log(text: str) -> BatchResolutionLog:
    preamble, sections = split_sections(text)
    title = next((_log_title.match(l) for l in preamble if _log_title.match(l)), None)
    if title is None:
        raise DocumentFormatError("batch log: missing '# Batch N: name' title")
    meta = _parse_fields(preamble, _meta_field)
    where = f"batch log {title.group(1)}"

    changes = []
    for row in parse_table(_require(sections, "Changes", where)):
        ids = parse_ids(row.get("Finding", ""))
        if len(ids) != 1:
            raise DocumentFormatError(f"{where}: bad finding reference '{row.get('Finding')}'")
        changes.append(FindingChange(finding_id=ids[0], description=row.get("Change", "")))

    notes_lines = sections.get("Notes", [])
    notes = [] if _is_none(notes_lines) else [
        line[2:].strip() for line in notes_lines if line.startswith("- ")
    ]

    return BatchResolutionLog(
        number=int(title.group(1)),
        name=title.group(2).strip(),
        date=_require_field(meta, "Date", where),
        kind=_enum(Complexity, _require_field(meta, "Type", where), where),
        commit=_require_field(meta, "Commit", where),
        changes=changes,
        verification_output=parse_fenced(_require(sections, "Verification Output", where)) or "",
        notes=notes,
    )
