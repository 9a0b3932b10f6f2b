"""
Configuration for the SUUMO importer.

Defaults live in config.yaml next to this module. Scalar values can be
overridden from the environment, and callers may pass explicit overrides
to load_config(). The resulting ScraperConfig is immutable and is handed
to the mapper, parser, downloader and scraper service at construction time.
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"

# config key -> environment variable
ENV_OVERRIDES = {
    'base_url': 'SUUMO_BASE_URL',
    'allowed_url_prefix': 'SUUMO_ALLOWED_URL_PREFIX',
    'user_agent': 'SUUMO_USER_AGENT',
    'timeout': 'SUUMO_TIMEOUT',
    'image_timeout': 'SUUMO_IMAGE_TIMEOUT',
    'default_rate_limit': 'SUUMO_RATE_LIMIT',
    'image_delay': 'SUUMO_IMAGE_DELAY',
    'aws_region': 'AWS_REGION',
    'dynamodb_table': 'DYNAMODB_TABLE',
    'photo_bucket': 'PHOTO_BUCKET',
    'geocode_function': 'GEOCODE_FUNCTION',
    'log_level': 'LOG_LEVEL',
}

MAP_KEYS = ('building_type_map', 'room_type_map', 'structure_map')


def _frozen_map(value: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType({str(k): str(v) for k, v in (value or {}).items()})


@dataclass(frozen=True)
class ScraperConfig:
    """Immutable importer settings."""
    base_url: str = 'https://suumo.jp'
    allowed_url_prefix: str = 'https://suumo.jp/'
    user_agent: str = 'Mozilla/5.0 (compatible; suumo-import/1.0)'
    timeout: float = 30.0
    image_timeout: float = 30.0
    default_rate_limit: float = 2.0
    image_delay: float = 0.5

    aws_region: str = 'ap-northeast-1'
    dynamodb_table: str = 'suumo-import-properties'
    photo_bucket: str = 'suumo-import-photos'
    geocode_function: str = ''

    log_level: str = 'INFO'

    building_type_map: Mapping[str, str] = field(default_factory=lambda: _frozen_map({}))
    room_type_map: Mapping[str, str] = field(default_factory=lambda: _frozen_map({}))
    structure_map: Mapping[str, str] = field(default_factory=lambda: _frozen_map({}))

    def __post_init__(self):
        # Freeze maps passed in as plain dicts
        for key in MAP_KEYS:
            value = getattr(self, key)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, key, _frozen_map(value))

    def with_overrides(self, **overrides) -> 'ScraperConfig':
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)

    def page_headers(self) -> Dict[str, str]:
        """Headers for search-result page requests."""
        return {
            'User-Agent': self.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'ja,en;q=0.5',
            'Connection': 'keep-alive',
        }

    def image_headers(self) -> Dict[str, str]:
        """Headers for image downloads."""
        return {
            'User-Agent': self.user_agent,
            'Accept': 'image/webp,image/apng,image/*,*/*;q=0.8',
            'Referer': self.allowed_url_prefix,
        }


def _coerce(key: str, raw: Any, default: Any) -> Any:
    """Coerce an environment/YAML value to the type of the field default."""
    if raw is None:
        return default
    if isinstance(default, float):
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning(f"Invalid float value for {key}, using default: {default}")
            return default
    return str(raw)


def load_config(path: Optional[os.PathLike] = None, environ: Optional[Mapping[str, str]] = None,
                **overrides) -> ScraperConfig:
    """
    Build a ScraperConfig.

    Args:
        path: YAML file to read, defaults to the packaged config.yaml
        environ: environment mapping, defaults to os.environ
        **overrides: explicit field values, applied last

    Returns:
        Frozen ScraperConfig
    """
    config_file = Path(path) if path else DEFAULT_CONFIG_FILE
    with open(config_file, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f) or {}

    environ = os.environ if environ is None else environ
    defaults = {f.name: f.default for f in fields(ScraperConfig) if f.name not in MAP_KEYS}
    values: Dict[str, Any] = {}

    for key, default in defaults.items():
        value = raw.get(key, default)
        env_key = ENV_OVERRIDES.get(key)
        if env_key and environ.get(env_key) not in (None, ''):
            value = environ[env_key]
        values[key] = _coerce(key, value, default)

    for key in MAP_KEYS:
        values[key] = raw.get(key) or {}

    values.update(overrides)
    config = ScraperConfig(**values)
    logger.debug(f"Loaded config from {config_file} (table={config.dynamodb_table}, bucket={config.photo_bucket})")
    return config
