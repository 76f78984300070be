import os

from cdp_logger import __version__

__all__ = [
    "CDP_CONNECT_TIMEOUT",
    "CDP_DEBUG",
    "CDP_LOG_FORMAT",
    "CDP_LOG_HUMAN_OUTPUT",
    "CDP_LOG_JSON_FILE",
    "CDP_METRICS_PORT",
    "CDP_PERF_THRESHOLD_MS",
    "CDP_PERF_TRACKING",
    "CDP_RECONNECT_DELAY",
    "CDP_VERSION",
    "CONNECTION_CLOSED_MSG",
    "DEFAULT_CODE_MASK",
    "DEFAULT_EVENT_LIMIT",
    "MIN_API_VERSION",
    "TIME_SYNC_INTERVAL",
    "TIME_SYNC_SAMPLES",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
CDP_VERSION: str = __version__


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


CDP_DEBUG = os.environ.get("CDP_DEBUG", "0").casefold() in YES_ANSWER

# Logging
CDP_LOG_FORMAT: str = os.environ.get("CDP_LOG_FORMAT", "human").casefold()
_json_file = os.environ.get("CDP_LOG_JSON_FILE")
CDP_LOG_JSON_FILE: str | None = _json_file if _json_file else None
CDP_LOG_HUMAN_OUTPUT: str = os.environ.get("CDP_LOG_HUMAN_OUTPUT", "stderr")

# Performance instrumentation
CDP_PERF_TRACKING: bool = os.environ.get("CDP_PERF_TRACKING", "0").casefold() in YES_ANSWER
CDP_PERF_THRESHOLD_MS: int = int(_env_float("CDP_PERF_THRESHOLD_MS", 50))

# Connection
CDP_CONNECT_TIMEOUT: float = _env_float("CDP_CONNECT_TIMEOUT", 10.0)
CDP_RECONNECT_DELAY: float = _env_float("CDP_RECONNECT_DELAY", 1.0)
CDP_METRICS_PORT: int = int(_env_float("CDP_METRICS_PORT", 9400))
CONNECTION_CLOSED_MSG = "Connection was closed"

# Protocol
MIN_API_VERSION: float = 3.0
TIME_SYNC_SAMPLES: int = 3
TIME_SYNC_INTERVAL: float = 10.0
DEFAULT_EVENT_LIMIT: int = 50
DEFAULT_CODE_MASK: int = 0xFFFFFFFF
