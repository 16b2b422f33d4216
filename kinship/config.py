"""Runtime configuration read from environment variables (KG_ prefix)."""

from __future__ import annotations

import os


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


class GraphConfig:
    """Limits and defaults for graph queries and the client engine."""

    def __init__(self) -> None:
        self.default_focus_depth: int = _env_int("KG_FOCUS_DEFAULT_DEPTH", 2)
        self.max_focus_depth: int = _env_int("KG_FOCUS_MAX_DEPTH", 6)
        self.search_limit: int = _env_int("KG_SEARCH_LIMIT", 10)
        self.max_search_limit: int = _env_int("KG_SEARCH_MAX_LIMIT", 50)
        self.render_ticks: int = _env_int("KG_RENDER_TICKS", 300)
        self.api_base_url: str = os.environ.get("KG_API_BASE_URL", "http://127.0.0.1:9820")
        self.log_level: str = os.environ.get("KG_LOG_LEVEL", "INFO").upper()

    def to_dict(self) -> dict:
        return {
            "default_focus_depth": self.default_focus_depth,
            "max_focus_depth": self.max_focus_depth,
            "search_limit": self.search_limit,
            "max_search_limit": self.max_search_limit,
            "render_ticks": self.render_ticks,
            "api_base_url": self.api_base_url,
        }


_config: GraphConfig | None = None


def get_config() -> GraphConfig:
    """Return the process-wide config, reading the environment on first use."""
    global _config
    if _config is None:
        _config = GraphConfig()
    return _config
