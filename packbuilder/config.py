"""Configuration management for the pack builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Optional

from dotenv import load_dotenv

from .utils import ConfigError, atomic_write

ENV_BACKEND = "STORE_BACKEND"
ENV_DB_PATH = "STORE_DB_PATH"
ENV_BLOB_DIR = "BLOB_DIR"
ENV_STORE_URL = "STORE_URL"
ENV_CONTAINER = "CONTAINER_ID"
ENV_BOOTSTRAP = "BOOTSTRAP_RECORD_NAME"
ENV_SCHEME = "DEEP_LINK_SCHEME"
ENV_HISTORY_LIMIT = "HISTORY_LIMIT"
ENV_PAGE_SIZE = "QUERY_PAGE_SIZE"
ENV_HASHES = "CONCURRENT_HASHES"
ENV_RETRIES = "POINTER_MAX_RETRIES"
ENV_RETRY_DELAY = "POINTER_RETRY_DELAY"
BACKENDS = ("sqlite", "http")


def _base_dir() -> Path:
    return Path(__file__).resolve().parents[1]


def _env_path() -> Path:
    return _base_dir() / ".env"


def save_config(config: "Config", env_file: Optional[Path] = None) -> Path:
    """
    Persist configuration to the .env file.

    Args:
        config: Config instance to save.
        env_file: Optional path override for the .env file.

    Returns:
        Path of the written file.
    """
    lines = [
        f"{ENV_BACKEND}={config.store_backend}",
        f"{ENV_DB_PATH}={config.db_path}",
        f"{ENV_BLOB_DIR}={config.blob_dir}",
        f"{ENV_STORE_URL}={config.store_url}",
        f"{ENV_CONTAINER}={config.container_id}",
        f"{ENV_BOOTSTRAP}={config.bootstrap_record_name}",
        f"{ENV_SCHEME}={config.deep_link_scheme}",
        f"{ENV_HISTORY_LIMIT}={config.history_limit}",
        f"{ENV_PAGE_SIZE}={config.query_page_size}",
        f"{ENV_HASHES}={config.concurrent_hashes}",
        f"{ENV_RETRIES}={config.pointer_max_retries}",
        f"{ENV_RETRY_DELAY}={config.pointer_retry_delay}",
    ]
    data = "\n".join(lines) + "\n"
    target = env_file or _env_path()
    atomic_write(target, data)
    return target


@dataclass(frozen=True)
class Config:
    """Singleton configuration object."""

    store_backend: str
    db_path: Path
    blob_dir: Path
    store_url: str
    container_id: str
    bootstrap_record_name: str
    deep_link_scheme: str
    history_limit: int
    query_page_size: int
    concurrent_hashes: int
    pointer_max_retries: int
    pointer_retry_delay: float

    _instance: ClassVar[Optional["Config"]] = None

    @classmethod
    def get_instance(cls) -> "Config":
        """
        Retrieve a singleton instance of Config.

        Returns:
            Config singleton instance.
        """
        if cls._instance is None:
            cls._instance = load_config()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the cached instance so the next lookup reloads the environment."""
        cls._instance = None


def _parse_int(value: str, name: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {name}.") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be greater than 0.")
    return parsed


def _parse_delay(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid number for {ENV_RETRY_DELAY}.") from exc
    if parsed < 0:
        raise ConfigError(f"{ENV_RETRY_DELAY} must not be negative.")
    return parsed


def load_config(env_file: Optional[Path] = None) -> Config:
    """
    Load and validate configuration from the environment and .env file.

    Args:
        env_file: Optional path override for the .env file.

    Returns:
        Config instance.
    """
    env_file = env_file or _env_path()
    if env_file.exists():
        load_dotenv(env_file)

    backend = os.getenv(ENV_BACKEND, "sqlite").strip().lower()
    db_path = os.getenv(ENV_DB_PATH, "").strip()
    blob_dir = os.getenv(ENV_BLOB_DIR, "").strip()
    store_url = os.getenv(ENV_STORE_URL, "http://127.0.0.1:8765").strip()
    container_id = os.getenv(ENV_CONTAINER, "packbuilder.default").strip()
    bootstrap = os.getenv(ENV_BOOTSTRAP, "bootstrap-latest").strip()
    scheme = os.getenv(ENV_SCHEME, "packbuilder").strip()
    history_limit = os.getenv(ENV_HISTORY_LIMIT, "200").strip()
    page_size = os.getenv(ENV_PAGE_SIZE, "100").strip()
    hashes = os.getenv(ENV_HASHES, "5").strip()
    retries = os.getenv(ENV_RETRIES, "3").strip()
    retry_delay = os.getenv(ENV_RETRY_DELAY, "0.05").strip()

    if backend not in BACKENDS:
        raise ConfigError(
            f"{ENV_BACKEND} must be one of: {', '.join(BACKENDS)}.")
    if not bootstrap:
        raise ConfigError(f"{ENV_BOOTSTRAP} must not be empty.")
    if backend == "http" and not store_url:
        raise ConfigError(f"{ENV_STORE_URL} is required for the http backend.")

    return Config(
        store_backend=backend,
        db_path=Path(db_path).expanduser() if db_path else _base_dir() / "packstore.db",
        blob_dir=Path(blob_dir).expanduser() if blob_dir else _base_dir() / "blobs",
        store_url=store_url.rstrip("/"),
        container_id=container_id,
        bootstrap_record_name=bootstrap,
        deep_link_scheme=scheme or "packbuilder",
        history_limit=_parse_int(history_limit, ENV_HISTORY_LIMIT),
        query_page_size=_parse_int(page_size, ENV_PAGE_SIZE),
        concurrent_hashes=_parse_int(hashes, ENV_HASHES),
        pointer_max_retries=_parse_int(retries, ENV_RETRIES),
        pointer_retry_delay=_parse_delay(retry_delay),
    )
