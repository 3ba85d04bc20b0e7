"""Configuration schema. Defaults reproduce the built-in agent catalog and gate table."""

from __future__ import annotations

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from flightdeck.config.constants import LLM_CHAT_DEFAULT_TIMEOUT_S, MIN_TIMEOUT_S
from flightdeck.domain.catalog import AGENT_TYPES, GATE_CAPABLE_AGENTS, TDD_AGENTS, Catalog


DEFAULT_DIRECTORY_MAP: Dict[str, str] = {
    "agents": "agents",
    "skills": "skills",
    "commands": "commands",
    "hooks": "hooks",
}

# Work type -> ordered stages; agents inside one stage run in parallel.
DEFAULT_GATE_PROFILES: Dict[str, List[List[str]]] = {
    "application_code": [["test-runner"], ["code-reviewer", "security-auditor"]],
    "test_code": [["test-runner"], ["code-reviewer"]],
    "database_migration": [["test-runner"], ["code-reviewer", "security-auditor"]],
    "infrastructure_config": [["security-auditor"], ["deployment-engineer"]],
    "api_specification": [["code-reviewer"]],
    "agent_prompt": [["ai-prompt-engineer"], ["code-reviewer"]],
    "documentation": [["code-reviewer"]],
    "configuration": [["code-reviewer", "security-auditor"]],
}

DEFAULT_RETRY_LIMITS: Dict[str, int] = {
    "test-runner": 3,
    "code-reviewer": 2,
    "security-auditor": 2,
}

CONVENTIONAL_TYPES: List[str] = [
    "feat", "fix", "docs", "style", "refactor", "perf",
    "test", "build", "ci", "chore", "revert",
]


class PathsConfig(BaseModel):
    """Where templates live and where generated prompt files are written."""

    root_dir: str = Field(".", description="Plugin root; generated directories are written here.")
    src_dir: str = Field("src", description="Template source directory, relative to root_dir.")
    partials_dir: str = Field(
        "partials", description="Shared template fragments, relative to src_dir. Never built on their own."
    )
    directory_map: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_DIRECTORY_MAP),
        description="Source type -> output directory name under root_dir.",
    )


class CatalogConfig(BaseModel):
    """Agent classification used by the build, contracts and gates."""

    agent_types: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in AGENT_TYPES.items()},
        description="Category (coding, review, planning, ...) -> agent names.",
    )
    tdd_agents: List[str] = Field(
        default_factory=lambda: list(TDD_AGENTS),
        description="Coding agents whose prompts must carry a TDD section.",
    )
    gate_capable_agents: List[str] = Field(
        default_factory=lambda: list(GATE_CAPABLE_AGENTS),
        description="Agents that can act as a quality gate and must document GATE_MODE.",
    )

    @model_validator(mode="after")
    def _check_classification(self) -> "CatalogConfig":
        seen: Dict[str, str] = {}
        for category, names in self.agent_types.items():
            for name in names:
                if name in seen:
                    raise ValueError(
                        f"Agent {name!r} is listed under both {seen[name]!r} and {category!r}."
                    )
                seen[name] = category
        coding = set(self.agent_types.get("coding", []))
        stray = [a for a in self.tdd_agents if a not in coding]
        if stray:
            raise ValueError(f"tdd_agents must be coding agents; not coding: {', '.join(stray)}")
        unknown = [a for a in self.gate_capable_agents if a not in seen]
        if unknown:
            raise ValueError(f"gate_capable_agents not classified in agent_types: {', '.join(unknown)}")
        return self

    def to_catalog(self) -> Catalog:
        return Catalog.from_mapping(self.agent_types, self.tdd_agents, self.gate_capable_agents)


class GatesConfig(BaseModel):
    """Quality gate sequencing, retry limits and authorization policy."""

    profiles: Dict[str, List[List[str]]] = Field(
        default_factory=lambda: {k: [list(s) for s in v] for k, v in DEFAULT_GATE_PROFILES.items()},
        description="Work type -> ordered list of stages; each stage is a list of gate agents run in parallel.",
    )
    default_profile: str = Field("application_code", description="Work type used when none is given.")
    retry_limits: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_RETRY_LIMITS),
        description="Per-gate maximum failed attempts before escalating to the user.",
    )
    default_retry_limit: int = Field(2, description="Retry limit for gates not listed in retry_limits.")
    coverage_threshold: float = Field(
        80.0, description="Minimum test coverage percentage for a test-runner PASS to stand."
    )
    require_user_authorization: bool = Field(
        True,
        description="Ask the user to approve before branch-manager commits (second half of dual authorization).",
    )

    @model_validator(mode="after")
    def _check_gates(self) -> "GatesConfig":
        if self.default_profile not in self.profiles:
            raise ValueError(f"default_profile {self.default_profile!r} is not defined in profiles.")
        for work_type, stages in self.profiles.items():
            if not stages or any(not stage for stage in stages):
                raise ValueError(f"Gate profile {work_type!r} has an empty stage.")
        bad = {k: v for k, v in self.retry_limits.items() if v < 1}
        if bad or self.default_retry_limit < 1:
            raise ValueError("Retry limits must be at least 1.")
        if not 0.0 <= self.coverage_threshold <= 100.0:
            raise ValueError("coverage_threshold must be between 0 and 100.")
        return self


class WorktreeConfig(BaseModel):
    """Git worktree isolation: ./trees/<task-id>-<description> on feature/<task-id>-<description>."""

    root: str = Field("trees", description="Directory (relative to the repo root) holding worktrees.")
    branch_prefix: str = Field("feature/", description="Prefix for worktree branches.")
    base_branches: List[str] = Field(
        default_factory=lambda: ["develop", "main", "master"],
        description="Candidate base branches, first existing one wins.",
    )
    protected_branches: List[str] = Field(
        default_factory=lambda: ["main", "master", "develop"],
        description="Branches cleanup never deletes.",
    )
    remove_timeout_s: int = Field(120, description="Timeout for `git worktree remove`.")
    network_timeout_s: int = Field(30, description="Timeout for remote operations (ls-remote, push --delete).")
    install_dependencies: bool = Field(True, description="Install project dependencies in new worktrees.")

    @model_validator(mode="after")
    def _check_timeouts(self) -> "WorktreeConfig":
        if self.remove_timeout_s < MIN_TIMEOUT_S or self.network_timeout_s < MIN_TIMEOUT_S:
            raise ValueError(f"Worktree timeouts must be at least {MIN_TIMEOUT_S} seconds.")
        return self


class CommitLintConfig(BaseModel):
    """Conventional commit rules plus the work-tracking Ref footer."""

    ref_pattern: str = Field(
        r"^Ref:\s+[A-Za-z][A-Za-z0-9]*-[A-Za-z0-9]+\s*$",
        description="Multiline regex a non-exempt commit body must match (e.g. 'Ref: proj-a1b2').",
    )
    exempt_types: List[str] = Field(
        default_factory=lambda: ["chore"], description="Commit types that need no Ref footer."
    )
    allowed_types: List[str] = Field(default_factory=lambda: list(CONVENTIONAL_TYPES))
    max_header_length: int = 100

    @model_validator(mode="after")
    def _check_pattern(self) -> "CommitLintConfig":
        try:
            re.compile(self.ref_pattern)
        except re.error as exc:
            raise ValueError(f"ref_pattern is not a valid regex: {exc}") from exc
        return self


class ModelConfig(BaseModel):
    """LLM endpoint and model name (OpenAI chat-completions API). Defaults: Ollama."""
    base_url: str = Field(..., description="e.g. http://localhost:11434/v1")
    model: str = Field(..., description="Model id served at base_url.")
    api_key: str = Field("", description="Bearer token; empty for local backends (no header sent).")
    temperature: float = 0.1
    top_p: float = 0.9
    max_tokens: int = 4096
    timeout_s: float = Field(LLM_CHAT_DEFAULT_TIMEOUT_S, description="HTTP read timeout for one chat request.")


class CommandContractConfig(BaseModel):
    """Extra structure a generated command file must carry."""
    sections: List[str] = Field(default_factory=list, description="Required level-2 headings (regex, case-insensitive).")
    required_text: List[str] = Field(
        default_factory=list, description="Literal strings that must appear (e.g. gauge states)."
    )


class ContractsConfig(BaseModel):
    commands: Dict[str, CommandContractConfig] = Field(
        default_factory=dict, description="Command name (file stem) -> contract."
    )
    agent_sections: Dict[str, List[str]] = Field(
        default_factory=dict,
        description=(
            "Extra required level-2 headings (regex) keyed by agent category or agent name, "
            "checked in addition to the built-in role sections."
        ),
    )
    require_all_agents: bool = Field(
        True, description="Every classified agent must have a generated file."
    )


class NotifyConfig(BaseModel):
    """Attention notifications (terminal bell plus optional Pushover push)."""
    enabled: bool = True
    pushover_url: str = "https://api.pushover.net/1/messages.json"
    sound: bool = Field(True, description="Ring the terminal bell.")
    title_prefix: str = "flightdeck"
    timeout_s: float = 10.0


class TelemetryConfig(BaseModel):
    """OpenTelemetry tracing. Disabled by default; install the otel extra to enable."""

    enabled: bool = Field(False, description="Enable OTEL tracing.")
    service_name: str = Field("flightdeck", description="OTEL service name.")
    exporter: str = Field("none", description="Exporter: 'none', 'console', or 'otlp'.")
    otlp_endpoint: str = Field("http://localhost:4317", description="OTLP gRPC endpoint.")

    @model_validator(mode="after")
    def _check_exporter(self) -> "TelemetryConfig":
        if self.exporter not in ("none", "console", "otlp"):
            raise ValueError(f"Unknown telemetry exporter {self.exporter!r}; use none, console or otlp.")
        return self


class FlightdeckConfig(BaseModel):
    paths: PathsConfig = Field(default_factory=PathsConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    gates: GatesConfig = Field(default_factory=GatesConfig)
    worktree: WorktreeConfig = Field(default_factory=WorktreeConfig)
    commits: CommitLintConfig = Field(default_factory=CommitLintConfig)
    contracts: ContractsConfig = Field(default_factory=ContractsConfig)
    models: Dict[str, ModelConfig] = Field(
        default_factory=lambda: {
            "default": ModelConfig(base_url="http://localhost:11434/v1", model="qwen2.5:7b"),
        }
    )
    agent_model_map: Dict[str, str] = Field(
        default_factory=dict,
        description="Frontmatter model alias (opus, sonnet, haiku) -> key in models. Unmapped aliases use 'default'.",
    )
    workspace_dir: str = Field(".flightdeck", description="Run logs and checkpoints are kept here.")
    notify: NotifyConfig = Field(default_factory=NotifyConfig)
    telemetry: Optional[TelemetryConfig] = Field(None, description="OTEL tracing; None disables it.")

    @model_validator(mode="after")
    def _check_profile_agents(self) -> "FlightdeckConfig":
        known = {a for names in self.catalog.agent_types.values() for a in names}
        for work_type, stages in self.gates.profiles.items():
            for stage in stages:
                missing = [a for a in stage if a not in known]
                if missing:
                    raise ValueError(
                        f"Gate profile {work_type!r} uses unclassified agents: {', '.join(missing)}"
                    )
        for alias, key in self.agent_model_map.items():
            if key not in self.models:
                raise ValueError(f"agent_model_map[{alias!r}] points at unknown model key {key!r}.")
        return self


DEFAULT_CONFIG = FlightdeckConfig()
