"""Application-wide configuration loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Identity of the student whose interactions are being recorded
STUDENT_ID: str = os.getenv("STUDENT_ID", "student-001")

# ── Event Log ────────────────────────────────────────────────────────────

# Workspace the assistant runs in; the log lives in a hidden dir beneath it
WORKSPACE_DIR: Path = Path(os.getenv("WORKSPACE_DIR", os.getcwd()))
LOG_DIR_NAME: str = os.getenv("LOG_DIR_NAME", ".cline-logs")
LOG_FILE_NAME: str = os.getenv("LOG_FILE_NAME", "student_interactions.log")

# "file" (NDJSON under WORKSPACE_DIR) or "redis"
EVENT_STORE_BACKEND: str = os.getenv("EVENT_STORE_BACKEND", "file")

# Redis
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")

# ── Adoption Inference ───────────────────────────────────────────────────

ADOPTION_TIMEOUT_MS: int = int(os.getenv("ADOPTION_TIMEOUT_MS", "60000"))
ADOPTION_POLL_INTERVAL: float = float(os.getenv("ADOPTION_POLL_INTERVAL", "5"))  # seconds

# ── Edit Capture ─────────────────────────────────────────────────────────

EDIT_DEBOUNCE_MS: int = int(os.getenv("EDIT_DEBOUNCE_MS", "2000"))

# ── Profiler Configuration ───────────────────────────────────────────────

PROFILE_CACHE_TTL: int = int(os.getenv("PROFILE_CACHE_TTL", "1800"))  # 30 min
PROFILER_RECOMPUTE_INTERVAL: int = int(os.getenv("PROFILER_RECOMPUTE_INTERVAL", "1800"))

# ── Agent Deployment ─────────────────────────────────────────────────────

PROFILER_AGENT_SEED: str = os.getenv(
    "PROFILER_AGENT_SEED", "student-analytics-profiler-seed-v1"
)
PROFILER_AGENT_PORT: int = int(os.getenv("PROFILER_AGENT_PORT", "8006"))

# Set to "agentverse" to deploy on Agentverse (uses mailbox, no local endpoint).
# Set to "local" (default) for local dev with localhost endpoints.
AGENT_DEPLOY_MODE: str = os.getenv("AGENT_DEPLOY_MODE", "local")
AGENT_ENDPOINT_BASE: str = os.getenv("AGENT_ENDPOINT_BASE", "http://localhost")

# ── Server Configuration ─────────────────────────────────────────────────

SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
