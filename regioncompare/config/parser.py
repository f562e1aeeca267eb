"""YAML run configuration parser."""
import logging
import os
from typing import Mapping, Optional

import yaml

from .schema import RunConfig

logger = logging.getLogger(__name__)

CACHE_DIR_ENV = "CACHE_DIR"
CACHE_TTL_ENV = "CACHE_TTL"


class ConfigParser:
    """Parser for YAML (or JSON) run configurations."""

    @staticmethod
    def load(file_path: str, environ: Optional[Mapping[str, str]] = None) -> RunConfig:
        """Load and validate a run configuration file.

        ``CACHE_DIR`` and ``CACHE_TTL`` in the environment override the
        file's cache settings.

        Args:
            file_path: Path to the YAML or JSON configuration.
            environ: Environment mapping; defaults to ``os.environ``.

        Returns:
            RunConfig: Validated configuration.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValidationError: If the configuration is invalid.
            yaml.YAMLError: If the YAML is malformed.
        """
        with open(file_path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return ConfigParser.from_dict(data, environ)

    @staticmethod
    def from_dict(data: dict, environ: Optional[Mapping[str, str]] = None) -> RunConfig:
        environ = os.environ if environ is None else environ
        data = dict(data)
        settings = dict(data.get('settings') or {})
        if environ.get(CACHE_DIR_ENV):
            settings['cache_dir'] = environ[CACHE_DIR_ENV]
            settings.pop('cacheDir', None)
        if environ.get(CACHE_TTL_ENV):
            settings['cache_ttl_seconds'] = environ[CACHE_TTL_ENV]
            settings.pop('cacheTtlSeconds', None)
        data['settings'] = settings
        config = RunConfig.model_validate(data)
        logger.debug("Loaded config: %s -> %s, %d providers, %d resources",
                     config.source_region, config.target_region,
                     len(config.providers), len(config.resources))
        return config
