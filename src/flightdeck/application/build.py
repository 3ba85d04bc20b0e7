"""Template build: render ``src/<type>/**/*.j2`` into ``<root>/<type>/**/*.md``.

Only the body of each template is rendered; YAML frontmatter is carried over
untouched.  Non-template files (scripts, JSON, images) are copied as-is.
Rendering uses Jinja2 with ``StrictUndefined`` so a missing variable fails the
file instead of leaking an empty string into a prompt.

Per-file failures never abort the build: they are counted in ``BuildStats``
and the caller decides the exit code (non-zero when ``stats.errors > 0``).
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import jinja2

from flightdeck.application.frontmatter import split_frontmatter
from flightdeck.config.constants import WATCH_POLL_INTERVAL_S
from flightdeck.config.schema import PathsConfig
from flightdeck.domain.catalog import UNKNOWN, Catalog
from flightdeck.domain.errors import BuildError

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".j2"
OUTPUT_SUFFIX = ".md"


@dataclass
class BuildRecord:
    """One line of build output: ``ok``, ``copy`` or ``error``."""
    kind: str
    relative_path: str
    message: str = ""


@dataclass
class BuildStats:
    success: int = 0
    errors: int = 0
    error_messages: List[str] = field(default_factory=list)
    records: List[BuildRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.errors == 0


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_template_vars(
    source_type: str,
    filename: str,
    relative_path: str,
    catalog: Catalog,
) -> Dict[str, Any]:
    """Variables available to a template.

    ``relative_path`` is relative to the source directory and starts with the
    source type (``skills/worktree-manager/SKILL.j2``).  A skill nested under a
    parent skill directory gets ``PARENT_SKILL`` set to that directory name.
    """
    tvars: Dict[str, Any] = {
        "FILENAME": filename,
        "SOURCE_TYPE": source_type,
        "RELATIVE_PATH": relative_path,
        "BUILD_TIMESTAMP": _utc_timestamp(),
    }

    if source_type == "agents":
        agent_type = catalog.agent_type(filename)
        if agent_type == UNKNOWN:
            raise BuildError(
                f'Agent "{filename}" has no agent type classification. '
                "Add it to catalog.agent_types in the flightdeck config or rename the file."
            )
        tvars.update(
            AGENT_NAME=filename,
            AGENT_TYPE=agent_type,
            HAS_TDD=catalog.is_tdd(filename),
            HAS_GIT_PROHIBITIONS=catalog.is_coding(filename),
            IS_CODING_AGENT=catalog.is_coding(filename),
            IS_REVIEW_AGENT=catalog.is_review(filename),
            IS_PLANNING_AGENT=catalog.is_planning(filename),
            IS_OPERATIONS_AGENT=catalog.is_operations(filename),
            IS_DOCUMENTATION_AGENT=catalog.is_documentation(filename),
            IS_PERFORMANCE_AGENT=catalog.is_performance(filename),
            gate_capable=catalog.is_gate_capable(filename),
        )

    elif source_type == "skills":
        parts = Path(relative_path).parts
        tvars["SKILL_NAME"] = filename
        tvars["PARENT_SKILL"] = parts[1] if len(parts) > 2 else None

    elif source_type == "hooks":
        tvars["HOOK_NAME"] = filename

    return tvars


def _template_lineno(exc: BaseException) -> Optional[int]:
    """Body line of the innermost rendered-template frame in ``exc``'s traceback.

    Templates built with ``from_string`` run under the filename ``<template>``;
    frames Jinja has rewritten already carry template line numbers, compiled
    frames are mapped back through the template's debug info.  Frames from
    included partials are skipped.
    """
    lineno = None
    tb = exc.__traceback__
    while tb is not None:
        frame = tb.tb_frame
        if frame.f_code.co_filename == "<template>":
            template = frame.f_globals.get("__jinja_template__")
            lineno = template.get_corresponding_lineno(tb.tb_lineno) if template is not None else tb.tb_lineno
        tb = tb.tb_next
    return lineno


def _format_template_error(exc: Exception, line_offset: int) -> str:
    message = str(exc) or type(exc).__name__
    if isinstance(exc, jinja2.TemplateSyntaxError) and exc.lineno:
        return f"Line {exc.lineno + line_offset}: {exc.message}"
    lineno = _template_lineno(exc)
    if lineno is not None:
        return f"Line {lineno + line_offset}: {message}"
    return message


def find_files(directory: Path) -> List[Path]:
    """All regular files under ``directory``, sorted; empty if it does not exist."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*") if p.is_file())


class PromptBuilder:
    """Builds generated prompt directories from a template source tree."""

    def __init__(
        self,
        paths: PathsConfig,
        catalog: Catalog,
        base_dir: Optional[Path] = None,
        on_record: Optional[Callable[[BuildRecord], None]] = None,
    ):
        base = Path(base_dir) if base_dir is not None else Path.cwd()
        self._root = (base / paths.root_dir).resolve()
        self._src = self._root / paths.src_dir
        self._partials = self._src / paths.partials_dir
        self._directory_map = dict(paths.directory_map)
        self._catalog = catalog
        self._on_record = on_record
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader([str(self._src), str(self._partials)]),
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self.stats = BuildStats()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def src_dir(self) -> Path:
        return self._src

    @property
    def source_types(self) -> List[str]:
        return list(self._directory_map)

    def _record(self, kind: str, rel: str, message: str = "") -> None:
        rec = BuildRecord(kind=kind, relative_path=rel, message=message)
        self.stats.records.append(rec)
        if kind == "error":
            self.stats.errors += 1
            self.stats.error_messages.append(f"{rel}: {message}")
        else:
            self.stats.success += 1
        if self._on_record is not None:
            self._on_record(rec)

    def compile_template(self, body: str, tvars: Dict[str, Any]) -> str:
        """Render a template body; includes resolve against src/ and the partials dir."""
        return self._env.from_string(body).render(**tvars)

    def process_file(self, source: Path, output: Path, source_type: str, relative_path: str) -> bool:
        """Render one template; frontmatter is preserved verbatim."""
        filename = source.name[: -len(TEMPLATE_SUFFIX)] if source.name.endswith(TEMPLATE_SUFFIX) else source.stem
        logger.debug("Processing %s -> %s", source, output)
        line_offset = 0
        try:
            content = source.read_text(encoding="utf-8")
            frontmatter, body = split_frontmatter(content)
            if frontmatter:
                line_offset = frontmatter.count("\n")
            tvars = build_template_vars(source_type, filename, relative_path, self._catalog)
            rendered = self.compile_template(body, tvars)
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text((frontmatter or "") + rendered, encoding="utf-8")
        except Exception as exc:  # one bad template must not stop the build
            self._record("error", relative_path, _format_template_error(exc, line_offset))
            return False
        self._record("ok", relative_path)
        return True

    def copy_file(self, source: Path, output: Path, relative_path: str) -> bool:
        logger.debug("Copying %s -> %s", source, output)
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, output)
        except OSError as exc:
            self._record("error", relative_path, str(exc))
            return False
        self._record("copy", relative_path)
        return True

    def output_path_for(self, source_type: str, source: Path) -> Path:
        type_dir = self._src / source_type
        rel = source.relative_to(type_dir)
        out = self._root / self._directory_map[source_type] / rel
        if source.name.endswith(TEMPLATE_SUFFIX):
            out = out.with_name(source.name[: -len(TEMPLATE_SUFFIX)] + OUTPUT_SUFFIX)
        return out

    def build_file(self, source_type: str, source: Path) -> bool:
        output = self.output_path_for(source_type, source)
        rel = source.relative_to(self._src).as_posix()
        if source.name.endswith(TEMPLATE_SUFFIX):
            return self.process_file(source, output, source_type, rel)
        return self.copy_file(source, output, rel)

    def build_type(self, source_type: str) -> None:
        type_dir = self._src / source_type
        if not type_dir.is_dir():
            logger.debug("Skipping %s: %s does not exist", source_type, type_dir)
            return
        for source in find_files(type_dir):
            self.build_file(source_type, source)

    def build(self, only_type: Optional[str] = None) -> BuildStats:
        """Build every source type (or just ``only_type``) and return the stats.

        Raises BuildError for an unknown ``only_type``.  A missing source
        directory is not an error: there is simply nothing to build.
        """
        if only_type is not None and only_type not in self._directory_map:
            raise BuildError(
                f"Invalid type {only_type!r}. Valid types: {', '.join(self._directory_map)}"
            )
        self.stats = BuildStats()
        if not self._src.is_dir():
            logger.warning("Source directory %s does not exist; nothing to build", self._src)
            return self.stats
        for source_type in [only_type] if only_type else self._directory_map:
            self.build_type(source_type)
        return self.stats

    def classify_source(self, path: Path) -> Optional[str]:
        """Source type a file under src/ belongs to, or None (partials, stray files)."""
        try:
            rel = path.relative_to(self._src)
        except ValueError:
            return None
        if not rel.parts or rel.parts[0] not in self._directory_map:
            return None
        return rel.parts[0]


# ---------------------------------------------------------------------------
# Watch mode
# ---------------------------------------------------------------------------

Snapshot = Dict[Path, float]


def snapshot_sources(src_dir: Path) -> Snapshot:
    return {p: p.stat().st_mtime for p in find_files(src_dir)}


def diff_snapshots(before: Snapshot, after: Snapshot) -> Tuple[List[Path], List[Path]]:
    """Return ``(changed_or_added, deleted)`` paths, each sorted."""
    changed = sorted(p for p, mtime in after.items() if before.get(p) != mtime)
    deleted = sorted(p for p in before if p not in after)
    return changed, deleted


def watch(
    builder: PromptBuilder,
    only_type: Optional[str] = None,
    interval_s: float = WATCH_POLL_INTERVAL_S,
    should_stop: Callable[[], bool] = lambda: False,
    on_cycle: Optional[Callable[[BuildStats], None]] = None,
) -> None:
    """Poll the source tree and rebuild what changed until ``should_stop()``.

    A change to a shared partial rebuilds everything; a change to one template
    rebuilds only that file.  Deleted sources are reported but their outputs
    are left in place.
    """
    before = snapshot_sources(builder.src_dir)
    while not should_stop():
        time.sleep(interval_s)
        after = snapshot_sources(builder.src_dir)
        changed, deleted = diff_snapshots(before, after)
        before = after
        for path in deleted:
            logger.warning("Source deleted: %s (generated output left in place)", path)
        if not changed:
            continue
        builder.stats = BuildStats()
        types = [builder.classify_source(p) for p in changed]
        if any(t is None for t in types):
            builder.build(only_type)
        else:
            for path, source_type in zip(changed, types):
                if only_type is None or source_type == only_type:
                    builder.build_file(source_type, path)
        if on_cycle is not None:
            on_cycle(builder.stats)
