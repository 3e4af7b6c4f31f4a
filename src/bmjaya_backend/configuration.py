from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:4]]

# Environment variable -> dotted config key
ENV_OVERRIDES: Dict[str, str] = {
    "BMJAYA_DB_PATH": "database.path",
    "BMJAYA_UPLOAD_DIR": "storage.upload_dir",
    "BMJAYA_SECRET_KEY": "auth.secret_key",
    "BMJAYA_ADMIN_USERNAME": "auth.bootstrap_admin_username",
    "BMJAYA_ADMIN_PASSWORD": "auth.bootstrap_admin_password",
    "BMJAYA_LOG_LEVEL": "logging.level",
    "BMJAYA_PAGE_SIZE": "server.page_size",
}


@dataclass
class ServerSettings:
    api_prefix: str = "/api"
    page_size: int = 10


@dataclass
class DatabaseSettings:
    path: str = "data/bm_jaya_printing.db"


@dataclass
class StorageSettings:
    upload_dir: str = "uploads-bmjaya-printing"
    max_upload_bytes: int = 500 * 1024
    max_photos_per_request: int = 10


@dataclass
class AuthSettings:
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    token_ttl_days: int = 360
    bootstrap_admin_username: Optional[str] = None
    bootstrap_admin_password: Optional[str] = None


@dataclass
class LoggingSettings:
    level: str = "INFO"


@dataclass
class Settings:
    server: ServerSettings = field(default_factory=ServerSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def find_config_file() -> Optional[Path]:
    explicit = os.environ.get("BMJAYA_CONFIG")
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found at {path}")
        return path
    return next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)


def _env_overrides() -> DictConfig:
    overrides = OmegaConf.create({})
    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            OmegaConf.update(overrides, key, value, force_add=True)
    return overrides


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """
    Build the runtime settings.

    Layers, later wins: dataclass defaults, config/config.yaml (if present),
    BMJAYA_* environment variables (a .env file is honoured), then explicit
    overrides.
    """
    load_dotenv()

    base = OmegaConf.structured(Settings)
    layers = [base]

    config_path = find_config_file()
    if config_path is not None:
        layers.append(OmegaConf.load(config_path))

    layers.append(_env_overrides())
    if overrides:
        layers.append(OmegaConf.create(overrides))

    merged = OmegaConf.merge(*layers)
    return OmegaConf.to_object(merged)  # type: ignore[return-value]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
