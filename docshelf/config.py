"""
Store configuration.

Each store directory holds a ``docshelf.toml``::

    [store]
    version = 1
    created = "2026-01-01T00:00:00+00:00"

    [backend]
    name = "local"

    [coordinator]
    tag_retry_limit = 5
    default_timeout = 30.0

    [logging]
    level = "INFO"

Keys in ``[backend]`` other than ``name`` are handed to the backend
factory as ``backend_params``.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w


CONFIG_FILENAME = "docshelf.toml"
CONFIG_VERSION = 1
STORE_PATH_ENV = "DOCSHELF_STORE_PATH"
DEFAULT_TAG_RETRY_LIMIT = 5


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoreConfig:
    """Settings for one store directory."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=_utc_iso)

    # "local" or a name registered under the docshelf.backends entry points
    backend: str = "local"
    backend_params: dict[str, Any] = field(default_factory=dict)

    # Conditional tag writes attempted before giving up
    tag_retry_limit: int = DEFAULT_TAG_RETRY_LIMIT

    # Seconds allowed per operation when the caller gives no timeout
    default_timeout: Optional[float] = None

    log_level: str = "INFO"

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILENAME

    @property
    def content_path(self) -> Path:
        return self.path / "content"

    @property
    def metadata_path(self) -> Path:
        return self.path / "metadata.db"

    @property
    def search_path(self) -> Path:
        return self.path / "search.db"

    @property
    def orphans_path(self) -> Path:
        return self.path / "orphans.db"

    def exists(self) -> bool:
        return self.config_path.exists()

    def to_toml(self) -> dict[str, Any]:
        coordinator: dict[str, Any] = {"tag_retry_limit": self.tag_retry_limit}
        if self.default_timeout is not None:
            coordinator["default_timeout"] = self.default_timeout
        return {
            "store": {"version": self.version, "created": self.created},
            "backend": {"name": self.backend, **self.backend_params},
            "coordinator": coordinator,
            "logging": {"level": self.log_level},
        }


def get_default_store_path() -> Path:
    """
    Store directory used when none is given.

    ``$DOCSHELF_STORE_PATH`` if set, otherwise ``~/.docshelf``.
    """
    env_path = os.environ.get(STORE_PATH_ENV)
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".docshelf"


def _coordinator_settings(section: dict[str, Any]) -> tuple[int, Optional[float]]:
    retry_limit = section.get("tag_retry_limit", DEFAULT_TAG_RETRY_LIMIT)
    if isinstance(retry_limit, bool) or not isinstance(retry_limit, int) or retry_limit < 1:
        raise ValueError(f"coordinator.tag_retry_limit must be a positive integer, got {retry_limit!r}")

    timeout = section.get("default_timeout")
    if timeout is None:
        return retry_limit, None
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError(f"coordinator.default_timeout must be a positive number, got {timeout!r}")
    return retry_limit, float(timeout)


def load_config(store_path: Path) -> StoreConfig:
    """
    Read ``docshelf.toml`` from a store directory.

    Raises:
        FileNotFoundError: The store has no config file
        ValueError: The file is from a newer docshelf or has bad values
    """
    config_file = store_path / CONFIG_FILENAME
    if not config_file.exists():
        raise FileNotFoundError(f"No {CONFIG_FILENAME} in {store_path}")

    data = tomllib.loads(config_file.read_text(encoding="utf-8"))

    store = data.get("store", {})
    version = store.get("version", CONFIG_VERSION)
    if version > CONFIG_VERSION:
        raise ValueError(
            f"{config_file} has config version {version}, newer than supported ({CONFIG_VERSION})"
        )

    backend = dict(data.get("backend", {}))
    retry_limit, timeout = _coordinator_settings(data.get("coordinator", {}))

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        backend=backend.pop("name", "local"),
        backend_params=backend,
        tag_retry_limit=retry_limit,
        default_timeout=timeout,
        log_level=data.get("logging", {}).get("level", "INFO"),
    )


def save_config(config: StoreConfig) -> None:
    """Write ``docshelf.toml``, creating the store directory if needed."""
    config.path.mkdir(parents=True, exist_ok=True)
    config.config_path.write_text(tomli_w.dumps(config.to_toml()), encoding="utf-8")


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Open a store's configuration, initializing the store on first use.
    """
    if (store_path / CONFIG_FILENAME).exists():
        return load_config(store_path)
    config = StoreConfig(path=store_path)
    save_config(config)
    return config
