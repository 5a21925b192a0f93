import logging
import os
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from zepplin.services.importer.catalog_client import ZIGISTRY_BASE_URL, ZIGLIBS_CONTENTS_URL

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ZEPPLIN_CONFIG"
DATA_DIR_ENV_VAR = "ZEPPLIN_DATA_DIR"
BACKEND_ENV_VAR = "ZEPPLIN_STORE_BACKEND"
LOG_LEVEL_ENV_VAR = "ZEPPLIN_LOG_LEVEL"
GITHUB_TOKEN_ENV_VAR = "GITHUB_TOKEN"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_REPO_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _REPO_ROOT / "data"


class CatalogSettings(BaseModel):
    ziglibs_url: str = Field(
        default=ZIGLIBS_CONTENTS_URL,
        description="GitHub contents API URL of the ziglibs libs/ directory.",
    )
    zigistry_url: str = Field(
        default=ZIGISTRY_BASE_URL,
        description="Base URL of a Zigistry-compatible API.",
    )
    github_token: Optional[str] = Field(
        default=None,
        description="Token sent to the GitHub API to raise rate limits.",
    )
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0)


class RegistryConfig(BaseModel):
    """
    Settings for building a registry store and its import tooling.

    Loaded from an optional YAML file; selected environment variables
    override file values.
    """

    data_dir: Path = Field(
        default=_DEFAULT_DATA_DIR,
        description="Directory of the JSON store.",
    )
    backend: Literal["memory", "json"] = Field(
        default="json",
        description="Storage engine: 'memory' (volatile) or 'json' (files under data_dir).",
    )
    seed_demo_data: bool = Field(
        default=False,
        description="Populate an opened store with demo packages and a demo user.",
    )
    intern_strings: bool = Field(
        default=False,
        description="Share one copy of repeated strings (owners, licenses, topics).",
    )
    log_level: str = Field(default="INFO")
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)


def configure_logging(level: Union[str, int] = "INFO") -> None:
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _read_yaml(path: Path) -> dict:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read config file {path}: {e}; using defaults")
        return {}
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        logger.warning(f"Config file {path} is not a mapping; using defaults")
        return {}
    return raw


def load_config(path: Optional[Path] = None) -> RegistryConfig:
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            path = Path(env_path).expanduser()

    raw = _read_yaml(Path(path)) if path is not None else {}
    try:
        config = RegistryConfig(**raw)
    except ValidationError as e:
        logger.warning(f"Invalid config in {path}: {e}; using defaults")
        config = RegistryConfig()

    overrides = {}
    if os.environ.get(DATA_DIR_ENV_VAR):
        overrides["data_dir"] = Path(os.environ[DATA_DIR_ENV_VAR]).expanduser()
    if os.environ.get(LOG_LEVEL_ENV_VAR):
        overrides["log_level"] = os.environ[LOG_LEVEL_ENV_VAR]

    backend = os.environ.get(BACKEND_ENV_VAR)
    if backend:
        if backend in ("memory", "json"):
            overrides["backend"] = backend
        else:
            logger.warning(f"Ignoring unknown {BACKEND_ENV_VAR}={backend!r}")

    token = os.environ.get(GITHUB_TOKEN_ENV_VAR)
    if token:
        overrides["catalog"] = config.catalog.model_copy(update={"github_token": token})

    return config.model_copy(update=overrides)
