from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [Path.cwd() / "config/config.yaml"] + [parent / "config/config.yaml" for parent in _HERE.parents[:4]]

DEFAULTS: Dict[str, Any] = {
    "server": {
        "webhook_path": "/webhook",
    },
    "storage": {
        "temp_dir": "./temp",
        "file_expiry_days": 10,
        "sweep_interval_hours": 24,
    },
    "pipeline": {
        "fetch_timeout_seconds": 120.0,
        "max_workers": 1,
    },
    "ledger": {
        "path": "./data/money.csv",
    },
    "whatsapp": {
        "api_base_url": "https://graph.facebook.com/v22.0",
        "access_token": "",
        "phone_number_id": "",
        "recipient_number": "",
    },
    "logging": {
        "level": "INFO",
    },
}

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "WEBHOOK_PATH": "server.webhook_path",
    "TEMP_DIR": "storage.temp_dir",
    "FILE_EXPIRY_DAYS": "storage.file_expiry_days",
    "FETCH_TIMEOUT_SECONDS": "pipeline.fetch_timeout_seconds",
    "PIPELINE_MAX_WORKERS": "pipeline.max_workers",
    "MONEY_FILE_PATH": "ledger.path",
    "WHATSAPP_ACCESS_TOKEN": "whatsapp.access_token",
    "WHATSAPP_PHONE_NUMBER_ID": "whatsapp.phone_number_id",
    "WHATSAPP_RECIPIENT_NUMBER": "whatsapp.recipient_number",
    "LOG_LEVEL": "logging.level",
}

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def find_config_file() -> Optional[Path]:
    explicit = os.environ.get("PRINT_RENDER_CONFIG")
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found at {path}")
        return path
    return next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)


def _env_overrides(environ: Dict[str, str]) -> DictConfig:
    overrides = OmegaConf.create()
    for env_name, key in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            OmegaConf.update(overrides, key, value)
    return overrides


def build_settings(config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> DictConfig:
    """
    Merge built-in defaults, an optional YAML file and environment overrides.

    The defaults are set to struct mode before merging so that a typo in the
    YAML file fails loudly instead of being silently ignored. Values coming
    from the environment stay strings; callers cast numeric settings.
    """
    base = OmegaConf.create(DEFAULTS)
    OmegaConf.set_struct(base, True)

    layers = [base]
    if config_path is not None:
        layers.append(OmegaConf.load(config_path))
    layers.append(_env_overrides(dict(os.environ) if environ is None else environ))
    return DictConfig(OmegaConf.merge(*layers))


@lru_cache(maxsize=1)
def load_settings() -> DictConfig:
    load_dotenv()
    return build_settings(find_config_file())


def whatsapp_configured(settings: DictConfig) -> bool:
    whatsapp = settings.whatsapp
    return bool(whatsapp.access_token and whatsapp.phone_number_id and whatsapp.recipient_number)


def configure_logging(level: str = "INFO") -> logging.Logger:
    package_logger = logging.getLogger("print_render_backend")
    package_logger.setLevel(level.upper())
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    return package_logger
