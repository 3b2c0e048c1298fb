"""
Configuration Module
Loads config.yaml and environment settings, and builds the store and media clients.
"""

import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger

from .exceptions import ImportAbortedError
from .media import DEFAULT_HOST_DOMAIN, MediaHostClient
from .rest_store import RestCatalogStore
from .store import CatalogStore, MemoryCatalogStore

DEFAULT_CONFIG_PATH = 'config/config.yaml'


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Environment variables from a ``.env`` file are loaded as well.

    Args:
        config_path: Path to the YAML file

    Returns:
        Configuration dictionary (empty when the file is missing)
    """
    load_dotenv()
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Config file not found: {config_path}")
        return {}


def setting(
    config: Dict[str, Any],
    section: str,
    key: str,
    cli_value: Any = None,
    env_var: Optional[str] = None,
    default: Any = None,
) -> Any:
    """
    Resolve one setting: command line first, then environment, then YAML, then default.

    Args:
        config: Loaded configuration
        section: Top-level YAML section
        key: Key inside the section
        cli_value: Value given on the command line, if any
        env_var: Environment variable to consult
        default: Fallback value

    Returns:
        The resolved value
    """
    if cli_value is not None:
        return cli_value
    if env_var and os.getenv(env_var):
        return os.getenv(env_var)
    value = (config.get(section) or {}).get(key)
    return default if value is None else value


def create_store(config: Dict[str, Any], backend: Optional[str] = None) -> CatalogStore:
    """
    Build the catalog store named by the configuration.

    Args:
        config: Loaded configuration
        backend: ``memory`` or ``rest``; overrides ``store.backend``

    Returns:
        A catalog store

    Raises:
        ImportAbortedError: if the REST backend is chosen without credentials
    """
    backend = setting(config, 'store', 'backend', backend, default='memory')
    if backend == 'memory':
        logger.info("Using in-memory catalog store (dry run)")
        return MemoryCatalogStore()
    if backend != 'rest':
        raise ImportAbortedError(f"Unknown store backend: {backend}")

    url = setting(config, 'store', 'url', env_var='SUPABASE_URL')
    api_key = os.getenv('SUPABASE_SERVICE_ROLE_KEY')
    if not url or not api_key:
        raise ImportAbortedError('SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set for the rest backend')

    admin_api_url = setting(config, 'store', 'admin_api_url', env_var='ADMIN_API_URL')
    timeout = float(setting(config, 'store', 'timeout', default=30.0))
    logger.info(f"Using REST catalog store at {url}")
    return RestCatalogStore(url, api_key, admin_api_url=admin_api_url, timeout=timeout)


def create_media_client(config: Dict[str, Any]) -> Optional[MediaHostClient]:
    """
    Build the media host client, or None when no upload endpoint is configured.

    Args:
        config: Loaded configuration

    Returns:
        MediaHostClient or None
    """
    upload_url = setting(config, 'media', 'upload_url', env_var='MEDIA_UPLOAD_URL')
    if not upload_url:
        logger.warning("No media upload endpoint configured; image URLs will be linked as they are")
        return None
    return MediaHostClient(
        upload_url=upload_url,
        delete_url=setting(config, 'media', 'delete_url', env_var='MEDIA_DELETE_URL'),
        host_domain=setting(config, 'media', 'host_domain', default=DEFAULT_HOST_DOMAIN),
        retry_attempts=int(setting(config, 'media', 'retry_attempts', default=3)),
        retry_delay=float(setting(config, 'media', 'retry_delay', default=1.0)),
        timeout=float(setting(config, 'media', 'timeout', default=60.0)),
    )
