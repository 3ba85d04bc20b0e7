"""Conventional-commit linting with a work-tracking ``Ref:`` footer."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from flightdeck.config.schema import CommitLintConfig

HEADER_RE = re.compile(r"^(\w+)(\(([^)]+)\))?(!)?: (.+)$")
_FOOTER_RE = re.compile(r"^(BREAKING CHANGE|BREAKING-CHANGE|[\w-]+)(?:: | #)(.*)$")
_IGNORED_PREFIXES = ("Merge ", 'Revert "', "fixup! ", "squash! ")


@dataclass
class CommitMessage:
    header: str
    type: Optional[str] = None
    scope: Optional[str] = None
    breaking: bool = False
    subject: Optional[str] = None
    body: str = ""
    footers: Dict[str, str] = field(default_factory=dict)


@dataclass
class LintResult:
    ok: bool
    errors: List[str] = field(default_factory=list)
    ignored: bool = False


def _clean_lines(raw: str) -> List[str]:
    """Drop git comment lines and everything below a scissors line."""
    lines: List[str] = []
    for line in raw.replace("\r\n", "\n").split("\n"):
        if line.startswith("# ------------------------ >8 ------------------------"):
            break
        if line.startswith("#"):
            continue
        lines.append(line.rstrip())
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def parse_commit(raw: str) -> CommitMessage:
    lines = _clean_lines(raw)
    header = lines[0].strip() if lines else ""
    msg = CommitMessage(header=header)
    m = HEADER_RE.match(header)
    if m:
        msg.type, msg.scope, msg.subject = m.group(1), m.group(3), m.group(5).strip()
        msg.breaking = m.group(4) == "!"

    rest = lines[1:]
    paragraphs: List[List[str]] = [[]]
    for line in rest:
        if line.strip():
            paragraphs[-1].append(line)
        elif paragraphs[-1]:
            paragraphs.append([])
    paragraphs = [p for p in paragraphs if p]

    if paragraphs and all(_FOOTER_RE.match(line) for line in paragraphs[-1]):
        for line in paragraphs.pop():
            fm = _FOOTER_RE.match(line)
            msg.footers[fm.group(1)] = fm.group(2).strip()
        if "BREAKING CHANGE" in msg.footers or "BREAKING-CHANGE" in msg.footers:
            msg.breaking = True
    msg.body = "\n\n".join("\n".join(p) for p in paragraphs)
    return msg


def lint_commit(raw: str, config: Optional[CommitLintConfig] = None) -> LintResult:
    cfg = config or CommitLintConfig()
    msg = parse_commit(raw)
    if not msg.header:
        return LintResult(ok=False, errors=["Commit message is empty"])
    if msg.header.startswith(_IGNORED_PREFIXES):
        return LintResult(ok=True, ignored=True)

    errors: List[str] = []
    if msg.type is None:
        errors.append(
            f"Header {msg.header!r} must look like 'type(scope): subject' "
            f"(types: {', '.join(cfg.allowed_types)})"
        )
    else:
        if msg.type not in cfg.allowed_types:
            errors.append(f"Type {msg.type!r} is not one of: {', '.join(cfg.allowed_types)}")
        if msg.subject and msg.subject.endswith("."):
            errors.append("Subject must not end with a period")
    if len(msg.header) > cfg.max_header_length:
        errors.append(f"Header is {len(msg.header)} characters; maximum is {cfg.max_header_length}")

    if msg.type not in cfg.exempt_types:
        body = "\n".join(_clean_lines(raw)[1:])
        if not re.search(cfg.ref_pattern, body, re.MULTILINE):
            exempt = ", ".join(cfg.exempt_types) or "none"
            errors.append(
                "Commit must include a work-tracking reference footer, e.g. 'Ref: proj-a1b2' "
                f"(exempt types: {exempt})"
            )
    return LintResult(ok=not errors, errors=errors)
