"""WebSearch configuration: config.yaml loading, environment overrides, CLI args."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

from errors import ConfigError


DEFAULT_MODEL = "gemini-2.0-flash-exp"
DEFAULT_GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models"


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------
@dataclass
class Config:
    """Runtime configuration for the search server process."""

    google_api_key: str = ""  # Gemini API key; required before serving.
    model: str = DEFAULT_MODEL  # Gemini model name.
    base_url: str = DEFAULT_GEMINI_URL  # generateContent base, model is appended.
    temperature: float = 0.9
    top_p: float = 1.0
    top_k: int = 1
    max_output_tokens: int = 2048
    bind_host: str = "127.0.0.1"  # Local interface for browser traffic.
    bind_port: int = 5000
    url_prefix: str = ""  # Route prefix, e.g. "/api" behind a proxy.
    timeout_s: float = 120.0  # Network timeout for provider requests.
    max_sessions: int = 1000  # LRU bound on live conversations.
    session_ttl_s: float = 0.0  # Idle expiry in seconds; 0 disables.
    allowed_origins: set = field(default_factory=lambda: {
        "http://127.0.0.1:5173", "http://localhost:5173",
        "http://127.0.0.1:5000", "http://localhost:5000",
    })


# ---------------------------------------------------------------------------
# config.yaml loader
# ---------------------------------------------------------------------------
_CONFIG_YAML_STATUS = ""  # human-readable load status for startup banner


def _load_config_yaml(project_root: Path | None = None) -> Dict[str, Any]:
    """Load config.yaml from the project directory.

    *project_root* defaults to the parent of the bin/ directory (i.e. the
    repo root).  A missing file is not an error; a malformed one is.
    """
    global _CONFIG_YAML_STATUS
    if project_root is None:
        project_root = Path(__file__).resolve().parent.parent
    cfg_path = project_root / "config.yaml"
    if not cfg_path.exists():
        _CONFIG_YAML_STATUS = f"not found at {cfg_path}"
        return {}
    try:
        with open(cfg_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"config.yaml parse error: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("config.yaml must be a YAML mapping")
    _CONFIG_YAML_STATUS = f"loaded ({len(data)} keys) from {cfg_path}"
    return data


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name, {})
    return value if isinstance(value, dict) else {}


def _env_or(name: str, fallback: Any) -> Any:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return fallback
    return raw.strip()


def load_config(project_root: Path | None = None) -> Config:
    """Build Config from environment variables, falling back to config.yaml."""
    data = _load_config_yaml(project_root)
    gemini = _section(data, "gemini")
    server = _section(data, "server")
    sessions = _section(data, "sessions")
    defaults = Config()

    allowed_origins_raw = os.environ.get("WEBSEARCH_ALLOWED_ORIGINS", "")
    allowed_origins = {v.strip() for v in allowed_origins_raw.split(",") if v.strip()}

    try:
        cfg = Config(
            google_api_key=str(_env_or("GOOGLE_API_KEY", gemini.get("api_key") or "")),
            model=str(_env_or("WEBSEARCH_MODEL", gemini.get("model") or DEFAULT_MODEL)),
            base_url=str(_env_or("WEBSEARCH_GEMINI_URL", gemini.get("url") or DEFAULT_GEMINI_URL)).rstrip("/"),
            temperature=float(gemini.get("temperature", defaults.temperature)),
            top_p=float(gemini.get("top_p", defaults.top_p)),
            top_k=int(gemini.get("top_k", defaults.top_k)),
            max_output_tokens=int(gemini.get("max_output_tokens", defaults.max_output_tokens)),
            bind_host=str(_env_or("WEBSEARCH_BIND_HOST", server.get("host") or defaults.bind_host)),
            bind_port=int(_env_or("WEBSEARCH_BIND_PORT", server.get("port") or defaults.bind_port)),
            url_prefix=str(_env_or("WEBSEARCH_URL_PREFIX", server.get("url_prefix") or "")).strip().rstrip("/"),
            timeout_s=float(_env_or("WEBSEARCH_TIMEOUT_S", defaults.timeout_s)),
            max_sessions=int(_env_or("WEBSEARCH_MAX_SESSIONS", sessions.get("max_sessions", defaults.max_sessions))),
            session_ttl_s=float(_env_or("WEBSEARCH_SESSION_TTL_S", sessions.get("ttl_s", defaults.session_ttl_s))),
            allowed_origins=allowed_origins or defaults.allowed_origins,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc

    if cfg.max_sessions < 1:
        raise ConfigError(f"max_sessions must be at least 1 (got {cfg.max_sessions})")
    if cfg.session_ttl_s < 0:
        raise ConfigError(f"session_ttl_s must not be negative (got {cfg.session_ttl_s:g})")
    return cfg


def require_api_key(cfg: Config) -> None:
    """Fail fast when no Gemini credentials are configured."""
    if not cfg.google_api_key:
        raise ConfigError(
            "GOOGLE_API_KEY is not set. Export it or add gemini.api_key to config.yaml."
        )


# ---------------------------------------------------------------------------
# Module-level mode flags (set by main() at startup)
# ---------------------------------------------------------------------------
DEBUG_MODE: bool = False


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------
def parse_args(argv: list | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the serve entrypoint."""
    parser = argparse.ArgumentParser(description="WebSearch assistant server")
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug logging")
    parser.add_argument("--host", default=None, help="Override bind host")
    parser.add_argument("--port", type=int, default=None, help="Override bind port")
    parser.add_argument("--url-prefix", default=None,
                        help="URL path prefix (e.g. /api) for reverse-proxy deployments")
    return parser.parse_args(argv)
