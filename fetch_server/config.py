from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "server.yaml"

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_METHOD = "GET"


@dataclass(frozen=True)
class Settings:
    name: str = "Fetch"
    version: str = "1.0.0"
    log_level: str = "INFO"
    transport: str = "stdio"
    host: str = "127.0.0.1"
    port: int = 9000
    default_timeout: float = DEFAULT_TIMEOUT_SECONDS
    default_method: str = DEFAULT_METHOD
    max_redirects: int = 10
    user_agent: Optional[str] = None
    block_private_hosts: bool = False


def read_config_file(path: Path) -> Dict[str, Any]:
    """YAML lesen; leere Datei = leere Config, Syntaxfehler mit Pfad melden."""
    if not path.is_file():
        raise FileNotFoundError(f"Fetch server config not found at {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root in {path} must be a mapping, got {type(data).__name__}")
    for section in ("server", "fetch"):
        if not isinstance(data.get(section) or {}, dict):
            raise ValueError(f"Config section '{section}' in {path} must be a mapping")
    return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Baut die Settings aus YAML-Datei + ENV.

    Reihenfolge: Defaults < YAML < ENV. Ein explizit gesetzter Pfad
    (Argument oder FETCH_SERVER_CONFIG) muss existieren, die Default-Datei nicht.
    """
    explicit = path or (Path(os.environ["FETCH_SERVER_CONFIG"]) if os.getenv("FETCH_SERVER_CONFIG") else None)
    if explicit is not None:
        data = read_config_file(explicit)
    elif DEFAULT_CONFIG_PATH.exists():
        data = read_config_file(DEFAULT_CONFIG_PATH)
    else:
        data = {}

    server_cfg = data.get("server", {}) or {}
    fetch_cfg = data.get("fetch", {}) or {}
    defaults = Settings()

    user_agent = fetch_cfg.get("user_agent")
    return Settings(
        name=str(server_cfg.get("name", defaults.name)),
        version=str(server_cfg.get("version", defaults.version)),
        log_level=os.getenv("FETCH_SERVER_LOG_LEVEL", str(server_cfg.get("log_level", defaults.log_level))).upper(),
        transport=os.getenv("FETCH_SERVER_TRANSPORT", str(server_cfg.get("transport", defaults.transport))),
        host=os.getenv("FETCH_SERVER_HOST", str(server_cfg.get("host", defaults.host))),
        port=int(os.getenv("FETCH_SERVER_PORT", str(server_cfg.get("port", defaults.port)))),
        default_timeout=float(fetch_cfg.get("default_timeout", defaults.default_timeout)),
        default_method=str(fetch_cfg.get("default_method", defaults.default_method)),
        max_redirects=int(fetch_cfg.get("max_redirects", defaults.max_redirects)),
        user_agent=str(user_agent) if user_agent else None,
        block_private_hosts=_as_bool(fetch_cfg.get("block_private_hosts", defaults.block_private_hosts)),
    )
