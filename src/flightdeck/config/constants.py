"""Named constants for values that appear in multiple places or need explanation.

Each constant carries a short note on what depends on it, so a change can be
checked without grepping for side-effects.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Output / runlog size limits
# ---------------------------------------------------------------------------

# Maximum characters kept from a single git or installer command's output.
# `git log` on a large repository or a noisy `npm install` must not end up
# verbatim in error messages or the runlog.
MAX_COMMAND_OUTPUT_CHARS: int = 20_000

# Maximum characters of raw agent output stored in a runlog entry.  The parsed
# report is always stored in full; only the free text is capped.
MAX_AGENT_OUTPUT_IN_RUNLOG_CHARS: int = 2_000

# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------

# Default wall-clock timeout for local git commands (status, log, branch).
GIT_DEFAULT_TIMEOUT_S: int = 60

# Lower bound for any configurable timeout.  Worktree removal on a large
# checkout and remote branch deletion over a slow link regularly take
# several seconds; anything below this produces spurious failures.
MIN_TIMEOUT_S: int = 10

# Default wall-clock timeout for dependency installation in a new worktree.
INSTALL_TIMEOUT_S: int = 600

# HTTP timeout for a single LLM chat-completions call when the model config
# does not override it.
LLM_CHAT_DEFAULT_TIMEOUT_S: float = 120.0

# ---------------------------------------------------------------------------
# Build / watch
# ---------------------------------------------------------------------------

# Polling interval for `flightdeck build --watch`.  Short enough to feel
# instant while editing, long enough not to spin a CPU core on large trees.
WATCH_POLL_INTERVAL_S: float = 0.5

# ---------------------------------------------------------------------------
# Visual
# ---------------------------------------------------------------------------

# Width of a gauge bar in blocks.  Every gauge string in visual.GAUGES has
# exactly this many characters.
GAUGE_WIDTH: int = 10

# Width of the heavy rule drawn above and below a status card.
CARD_RULE_WIDTH: int = 36
