from .constants import (
    CARD_RULE_WIDTH,
    GAUGE_WIDTH,
    GIT_DEFAULT_TIMEOUT_S,
    INSTALL_TIMEOUT_S,
    LLM_CHAT_DEFAULT_TIMEOUT_S,
    MAX_AGENT_OUTPUT_IN_RUNLOG_CHARS,
    MAX_COMMAND_OUTPUT_CHARS,
    MIN_TIMEOUT_S,
    WATCH_POLL_INTERVAL_S,
)
from .loader import load_config, pushover_credentials, workspace_override
from .schema import (
    DEFAULT_CONFIG,
    DEFAULT_GATE_PROFILES,
    DEFAULT_RETRY_LIMITS,
    CatalogConfig,
    CommandContractConfig,
    CommitLintConfig,
    ContractsConfig,
    FlightdeckConfig,
    GatesConfig,
    ModelConfig,
    NotifyConfig,
    PathsConfig,
    TelemetryConfig,
    WorktreeConfig,
)

get_config = load_config

__all__ = [
    "CARD_RULE_WIDTH",
    "GAUGE_WIDTH",
    "GIT_DEFAULT_TIMEOUT_S",
    "INSTALL_TIMEOUT_S",
    "LLM_CHAT_DEFAULT_TIMEOUT_S",
    "MAX_AGENT_OUTPUT_IN_RUNLOG_CHARS",
    "MAX_COMMAND_OUTPUT_CHARS",
    "MIN_TIMEOUT_S",
    "WATCH_POLL_INTERVAL_S",
    "DEFAULT_CONFIG",
    "DEFAULT_GATE_PROFILES",
    "DEFAULT_RETRY_LIMITS",
    "CatalogConfig",
    "CommandContractConfig",
    "CommitLintConfig",
    "ContractsConfig",
    "FlightdeckConfig",
    "GatesConfig",
    "ModelConfig",
    "NotifyConfig",
    "PathsConfig",
    "TelemetryConfig",
    "WorktreeConfig",
    "get_config",
    "load_config",
    "pushover_credentials",
    "workspace_override",
]
