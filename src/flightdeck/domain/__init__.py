"""Domain layer: entities and value objects. No I/O."""

from .catalog import (
    AGENT_TYPES,
    DEFAULT_CATALOG,
    GATE_CAPABLE_AGENTS,
    TDD_AGENTS,
    Catalog,
    orchestration_instructions,
)
from .errors import (
    AuthorizationError,
    BuildError,
    ConfigError,
    FlightdeckError,
    FrontmatterError,
    GateError,
    GitError,
    ReleaseError,
    ReportError,
    WorktreeError,
)
from .models import (
    AgentDefinition,
    GateAction,
    GateDecision,
    GateResult,
    GateStatus,
    LLMResponse,
    PipelineResult,
    PipelineStatus,
    RunId,
    WorkUnit,
    build_work_unit,
)

__all__ = [
    "AGENT_TYPES",
    "DEFAULT_CATALOG",
    "GATE_CAPABLE_AGENTS",
    "TDD_AGENTS",
    "Catalog",
    "orchestration_instructions",
    "AuthorizationError",
    "BuildError",
    "ConfigError",
    "FlightdeckError",
    "FrontmatterError",
    "GateError",
    "GitError",
    "ReleaseError",
    "ReportError",
    "WorktreeError",
    "AgentDefinition",
    "GateAction",
    "GateDecision",
    "GateResult",
    "GateStatus",
    "LLMResponse",
    "PipelineResult",
    "PipelineStatus",
    "RunId",
    "WorkUnit",
    "build_work_unit",
]
