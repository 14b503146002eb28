import logging
import os
from pathlib import Path
from types import MappingProxyType

import yaml

from latency_simulator import REQUIRED_KEYS

logger = logging.getLogger(__name__)

DEFAULT_PATH = Path(__file__).resolve().parent / 'config' / 'latency_profile.yml'
EMPTY = MappingProxyType({})


def profile_path():
    return Path(os.environ.get('LATENCY_PROFILE_PATH', DEFAULT_PATH))


def load_profile(path=None):
    """Read a latency profile from YAML into a read-only mapping.

    Any problem (absent file, bad YAML, missing keys) is logged and yields an
    empty profile, which the simulator then reports as not loaded.
    """
    path = Path(path) if path is not None else profile_path()
    if not path.exists():
        logger.warning(f'Latency profile configuration file not found: {path}. Using empty profile.')
        return EMPTY
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f'Error loading latency profile: {e}. Using empty profile.')
        return EMPTY
    if not isinstance(data, dict):
        logger.error(f'Latency profile in {path} is not a mapping. Using empty profile.')
        return EMPTY

    profile = {str(k): v for k, v in data.items()}
    missing = [k for k in REQUIRED_KEYS if k not in profile]
    if missing:
        logger.error(
            f'Latency profile configuration is missing required keys: '
            f'{", ".join(missing)}. Using empty profile.'
        )
        return EMPTY

    logger.info(f'Latency profile loaded from {path}: {profile}')
    return MappingProxyType(profile)
