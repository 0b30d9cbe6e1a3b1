"""Configuration: environment variables layered over ~/.config/todoshare/config.json."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTAINER = "iCloud.com.example.todoshare"
DEFAULT_ENVIRONMENT = "development"
DEFAULT_SERVICE_ROOT = "https://api.apple-cloudkit.com"

CONFIG_FILE = "config.json"
STATE_FILE = "state.json"


def config_dir() -> Path:
    """Directory holding config.json and state.json (TODOSHARE_CONFIG_DIR overrides)."""
    raw = os.getenv("TODOSHARE_CONFIG_DIR") or os.path.expanduser(
        "~/.config/todoshare"
    )
    return Path(raw)


@dataclass(frozen=True)
class Settings:
    container: str = DEFAULT_CONTAINER
    environment: str = DEFAULT_ENVIRONMENT
    service_root: str = DEFAULT_SERVICE_ROOT
    api_token: Optional[str] = None
    web_auth_token: Optional[str] = None

    @property
    def state_path(self) -> Path:
        return config_dir() / STATE_FILE

    def params(self) -> Dict[str, object]:
        """Query parameters authenticating every CloudKit request."""
        return {
            "ckAPIToken": self.api_token,
            "ckWebAuthToken": self.web_auth_token,
        }


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        LOGGER.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def load_settings() -> Settings:
    file_cfg = _read_config_file(config_dir() / CONFIG_FILE)

    def pick(env: str, key: str, default: Optional[str]) -> Optional[str]:
        return os.getenv(env) or file_cfg.get(key) or default

    return Settings(
        container=pick("TODOSHARE_CONTAINER", "container", DEFAULT_CONTAINER),
        environment=pick("TODOSHARE_ENVIRONMENT", "environment", DEFAULT_ENVIRONMENT),
        service_root=pick(
            "TODOSHARE_SERVICE_ROOT", "service_root", DEFAULT_SERVICE_ROOT
        ),
        api_token=pick("TODOSHARE_API_TOKEN", "api_token", None),
        web_auth_token=os.getenv("TODOSHARE_WEB_AUTH_TOKEN"),
    )


def save_settings(values: Dict[str, Any]) -> Path:
    """Merge `values` into config.json and return its path."""
    directory = config_dir()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / CONFIG_FILE
    current = _read_config_file(path)
    current.update({k: v for k, v in values.items() if v is not None})
    with open(path, "w", encoding="utf-8") as f:
        json.dump(current, f, indent=2)
    return path
