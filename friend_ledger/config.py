import logging
import os
import yaml
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CFG_PATH = Path(__file__).parent / 'data' / 'ledger_config.yaml'
ENV_VAR = 'FRIEND_LEDGER_CONFIG'

_config_cache: Optional[Dict[str, Any]] = None


def _get_config_path() -> Path:
    """Config path from the environment, falling back to the bundled file"""
    override = os.environ.get(ENV_VAR)
    config_path = Path(override).expanduser() if override else CFG_PATH

    if not config_path.exists():
        raise FileNotFoundError(f"Ledger config not found at {config_path}")

    return config_path


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the ledger configuration, caching the default file"""
    global _config_cache

    if path is None and _config_cache is not None:
        return _config_cache

    config_path = Path(path) if path is not None else _get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Ledger config not found at {config_path}")

    logger.debug(f"Loading ledger config from {config_path}")
    try:
        config = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse ledger config {config_path}: {e}")
        raise

    logger.info(f"Loaded ledger configuration (version {config.get('metadata', {}).get('config_version', 'unknown')})")
    if path is None:
        _config_cache = config
    return config


def reset_config_cache() -> None:
    global _config_cache
    _config_cache = None


def profile_name(config=None) -> str:
    cfg = config if config is not None else load_config()
    return (cfg.get('profile_name') or 'You').strip() or 'You'


def default_currency(config=None) -> str:
    cfg = config if config is not None else load_config()
    return cfg.get('default_currency', 'USD')


def data_dir(config=None) -> Path:
    cfg = config if config is not None else load_config()
    return Path(cfg.get('data_dir', '~/.friend_ledger')).expanduser()


def settled_tolerance(config=None) -> Decimal:
    cfg = config if config is not None else load_config()
    return Decimal(str(cfg.get('settled_tolerance', '0.01')))


def high_balance_threshold(config=None) -> Decimal:
    cfg = config if config is not None else load_config()
    return Decimal(str(cfg.get('high_balance_threshold', 20)))


def recent_days(config=None) -> int:
    cfg = config if config is not None else load_config()
    return int(cfg.get('recent_days', 30))


def cache_size(config=None) -> int:
    cfg = config if config is not None else load_config()
    return int(cfg.get('cache_size', 128))
