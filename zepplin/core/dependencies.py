from typing import Optional
import logging

from zepplin.core.config import RegistryConfig, load_config
from zepplin.storage.artifact_store import ArtifactStore
from zepplin.storage.db_manager import RegistryStore
from zepplin.storage.json_store import JsonRegistryStore
from zepplin.storage.memory_store import InMemoryRegistryStore
from zepplin.storage.seed_data import seed_demo_data

logger = logging.getLogger(__name__)

_store: Optional[RegistryStore] = None


def create_store(config: RegistryConfig) -> RegistryStore:
    if config.backend == "memory":
        return InMemoryRegistryStore(intern_strings=config.intern_strings)
    return JsonRegistryStore(config.data_dir, intern_strings=config.intern_strings)


def open_store(config: RegistryConfig) -> RegistryStore:
    """Build, open and optionally seed the store described by ``config``."""
    store = create_store(config)
    store.open()
    if config.seed_demo_data:
        seed_demo_data(store)
    logger.info(f"Opened {config.backend} registry store")
    return store


def open_artifact_store(config: RegistryConfig) -> ArtifactStore:
    """Archives always live on disk, under ``data_dir/artifacts``."""
    return ArtifactStore(config.data_dir / "artifacts")


def get_store() -> RegistryStore:
    global _store
    if _store is None:
        _store = open_store(load_config())
    return _store


def reset_store() -> None:
    """Close and forget the default store; the next get_store() opens a new one."""
    global _store
    if _store is not None:
        _store.close()
    _store = None
