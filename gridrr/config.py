"""Configuration loading for gridrr."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional
from xml.etree import ElementTree as ET

from .feed import PAGE_SIZE

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("sql", "firestore")


@dataclass
class StoreConfig:
    backend: str = "sql"
    connection_string: Optional[str] = None
    project_id: Optional[str] = None
    api_key_env: str = "FIRESTORE_API_KEY"
    collection: str = "websites"
    timeout: float = 10.0


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class AppConfig:
    env_file: Optional[str] = None
    categories_file: Optional[str] = None
    page_size: int = PAGE_SIZE
    site_url: str = "https://gridrr.com"
    ref_tag: str = "gridrr"
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def parse_env_config(path: str) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars: Dict[str, str] = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    try:
        tree = ET.parse(path)
        root = tree.getroot()
        for var in root.findall("variable"):
            name = var.attrib.get("name")
            value = var.text
            if name and value:
                env_vars[name] = value.strip()
    except Exception as exc:
        logger.warning("Failed to load environment config: %s", exc)
        raise

    return env_vars


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    env_node = root.find("env")
    env_file = (
        _resolve_path(config_path, env_node.text.strip())
        if env_node is not None and env_node.text
        else None
    )

    categories_node = root.find("categories")
    categories_file = (
        _resolve_path(config_path, categories_node.text.strip())
        if categories_node is not None and categories_node.text
        else None
    )

    page_size = int(root.findtext("page-size", str(PAGE_SIZE)))
    if page_size <= 0:
        raise ValueError("<page-size> must be positive.")

    site_url = root.findtext("site-url", "https://gridrr.com").strip().rstrip("/")
    ref_tag = root.findtext("ref-tag", "gridrr").strip()

    # Store
    store_node = root.find("store")
    store = StoreConfig()
    if store_node is not None:
        store.backend = store_node.attrib.get("backend", "sql").strip().lower()
        store.connection_string = store_node.findtext("connection-string")
        store.project_id = store_node.findtext("project-id")
        store.api_key_env = store_node.findtext("api-key-env", store.api_key_env)
        store.collection = store_node.findtext("collection", store.collection)
        timeout_node = store_node.find("timeout")
        if timeout_node is not None and timeout_node.text:
            store.timeout = float(timeout_node.text)
    if store.backend not in STORE_BACKENDS:
        raise ValueError(
            f"Unsupported store backend '{store.backend}'. "
            f"Expected one of: {', '.join(STORE_BACKENDS)}"
        )

    # Logging
    log_node = root.find("logging")
    logging_config = LoggingConfig()
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    return AppConfig(
        env_file=env_file,
        categories_file=categories_file,
        page_size=page_size,
        site_url=site_url,
        ref_tag=ref_tag,
        store=store,
        logging=logging_config,
    )
