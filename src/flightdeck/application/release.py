"""Release version consistency.

Three files carry the version: ``pyproject.toml``, ``.claude-plugin/plugin.json``
and the shields.io badge in ``README.md``.  ``verify_release`` checks they
agree with each other and with the latest git tag; ``bump_version`` rewrites
all three.
"""

from __future__ import annotations

import json
import logging
import re
import tomllib
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from flightdeck.domain.errors import FlightdeckError, ReleaseError
from flightdeck.infrastructure.git import git_output

logger = logging.getLogger(__name__)

BADGE_RE = re.compile(r"version-(\d+\.\d+\.\d+(?:-[\w.]+)?)-orange")
_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(?:-[\w.]+)?$")
_PYPROJECT_VERSION_RE = re.compile(r'^(version\s*=\s*)"[^"]*"', re.MULTILINE)
_PROJECT_TABLE_RE = re.compile(r"^\[project\][ \t]*$", re.MULTILINE)
_TABLE_HEADER_RE = re.compile(r"^\[", re.MULTILINE)

PYPROJECT = "pyproject.toml"
PLUGIN_JSON = ".claude-plugin/plugin.json"
README = "README.md"

CommandRunner = Callable[[Sequence[str]], str]


@dataclass
class ReleaseCheck:
    ok: bool
    version: Optional[str]
    message: str
    warnings: List[str] = field(default_factory=list)


def _require(root: Path, rel: str) -> Path:
    p = root / rel
    if not p.is_file():
        raise ReleaseError(f"Missing required file: {rel} (looked in {root})")
    return p


def read_pyproject_version(root: Path) -> str:
    p = _require(root, PYPROJECT)
    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ReleaseError(f"{PYPROJECT} is not valid TOML: {exc}") from exc
    version = data.get("project", {}).get("version")
    if not version:
        raise ReleaseError(f"No [project].version field found in {PYPROJECT}")
    return str(version)


def read_plugin_version(root: Path) -> str:
    p = _require(root, PLUGIN_JSON)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ReleaseError(f"{PLUGIN_JSON} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or not data.get("version"):
        raise ReleaseError(f"No version field found in {PLUGIN_JSON}")
    return str(data["version"])


def read_badge_version(contents: str) -> Optional[str]:
    m = BADGE_RE.search(contents)
    return m.group(1) if m else None


def write_badge_version(contents: str, version: str) -> str:
    return BADGE_RE.sub(f"version-{version}-orange", contents, count=1)


def read_readme_version(root: Path) -> str:
    p = _require(root, README)
    version = read_badge_version(p.read_text(encoding="utf-8"))
    if version is None:
        raise ReleaseError(f"Version badge not found in {README}. Expected pattern: version-X.Y.Z-orange")
    return version


def collect_versions(root: Path) -> Dict[str, str]:
    root = Path(root)
    return {
        PYPROJECT: read_pyproject_version(root),
        PLUGIN_JSON: read_plugin_version(root),
        README: read_readme_version(root),
    }


def _default_runner(cwd: Optional[Path]) -> CommandRunner:
    def run(args: Sequence[str]) -> str:
        return git_output(list(args)[1:], cwd=cwd)
    return run


def read_git_tag(runner: Optional[CommandRunner] = None, cwd: Optional[Path] = None) -> str:
    """Latest tag from ``git describe --tags --abbrev=0`` without a leading ``v``."""
    run = runner or _default_runner(cwd)
    try:
        raw = run(["git", "describe", "--tags", "--abbrev=0"]).strip()
    except (FlightdeckError, OSError) as exc:
        raise ReleaseError(f'No git tag found; run "git tag v<version>" before releasing ({exc})') from exc
    if not raw:
        raise ReleaseError('No git tag found; run "git tag v<version>" before releasing')
    return raw[1:] if raw.startswith("v") else raw


def majority_version(versions: Dict[str, str]) -> str:
    counts = Counter(versions.values())
    best = max(counts.values())
    # ties go to the first version seen
    return next(v for v in versions.values() if counts[v] == best)


def format_mismatch_report(versions: Dict[str, str]) -> str:
    if len(set(versions.values())) <= 1:
        return ""
    expected = majority_version(versions)
    lines = ["Version mismatch detected:", ""]
    for name, version in versions.items():
        marker = "  [OK]      " if version == expected else "  [MISMATCH]"
        lines.append(f"{marker}  {name}: {version}")
    lines.append("")
    lines.append(f"Expected all files to report version: {expected}")
    return "\n".join(lines)


def verify_release(root: Path, runner: Optional[CommandRunner] = None) -> ReleaseCheck:
    root = Path(root)
    try:
        versions = collect_versions(root)
    except ReleaseError as exc:
        return ReleaseCheck(ok=False, version=None, message=f"release verify failed: {exc}")

    report = format_mismatch_report(versions)
    if report:
        return ReleaseCheck(ok=False, version=None, message=report)

    version = versions[PYPROJECT]
    try:
        tag = read_git_tag(runner, cwd=root)
    except ReleaseError as exc:
        logger.warning("%s", exc)
        return ReleaseCheck(
            ok=True,
            version=version,
            message=f"release verify passed: all files agree on version {version} (git tag unavailable)",
            warnings=[str(exc)],
        )
    if tag != version:
        return ReleaseCheck(
            ok=False,
            version=version,
            message=(
                "release verify failed: git tag mismatch\n"
                f"  [MISMATCH]  git tag: {tag}\n"
                f"  [OK]        {PYPROJECT}: {version}\n\n"
                f"Expected git tag v{version} to match {PYPROJECT}."
            ),
        )
    return ReleaseCheck(ok=True, version=version, message=f"release verify passed: all files agree on version {version}")


def _set_project_version(text: str, version: str) -> str:
    """Replace the ``version`` line of the ``[project]`` table only."""
    header = _PROJECT_TABLE_RE.search(text)
    if header is None:
        raise ReleaseError(f"No [project] table found in {PYPROJECT}")
    start = header.end()
    next_table = _TABLE_HEADER_RE.search(text, start)
    end = next_table.start() if next_table else len(text)
    section, n = _PYPROJECT_VERSION_RE.subn(lambda m: f'{m.group(1)}"{version}"', text[start:end], count=1)
    if n == 0:
        raise ReleaseError(f"Could not find a version line to update in the [project] table of {PYPROJECT}")
    return text[:start] + section + text[end:]


def bump_version(root: Path, version: str) -> List[str]:
    """Write ``version`` into every version source; returns the files changed.

    All three sources are read and validated before anything is written, so a
    bad source leaves the tree untouched.
    """
    if not _SEMVER_RE.match(version):
        raise ReleaseError(f"{version!r} is not a semantic version (X.Y.Z[-pre])")
    root = Path(root)
    collect_versions(root)

    updates: Dict[str, str] = {}
    pyproject_text = (root / PYPROJECT).read_text(encoding="utf-8")
    updates[PYPROJECT] = _set_project_version(pyproject_text, version)
    written = tomllib.loads(updates[PYPROJECT]).get("project", {}).get("version")
    if written != version:
        raise ReleaseError(f"Updating {PYPROJECT} would leave [project].version at {written}")

    data = json.loads((root / PLUGIN_JSON).read_text(encoding="utf-8"))
    if data["version"] != version:
        data["version"] = version
        updates[PLUGIN_JSON] = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    readme_text = (root / README).read_text(encoding="utf-8")
    updates[README] = write_badge_version(readme_text, version)

    changed: List[str] = []
    for rel, new_text in updates.items():
        p = root / rel
        if p.read_text(encoding="utf-8") != new_text:
            p.write_text(new_text, encoding="utf-8")
            changed.append(rel)

    logger.info("Bumped version to %s in %s", version, ", ".join(changed) or "nothing")
    return changed
