"""
Configuration for the rental request pool.

Feature flags come from config/features.yaml, connection settings from the
environment (.env for local runs), business constants live in PoolConfig.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env only for local runs; deployed environments set variables directly
_env_path = Path(__file__).parent.parent / '.env'
if _env_path.exists():
    load_dotenv(_env_path)


class PoolConfig:
    """Pool business policy and cache settings."""

    # Pool membership
    POOL_TTL_DAYS = 30
    MAX_CANDIDATES = 100

    # Scoring
    BASE_SCORE = 50
    CAPACITY_WEIGHT = 20
    FAST_RESPONSE_SECONDS = 3600
    HIGH_ACCEPTANCE_RATE = 0.8
    METRICS_WINDOW_DAYS = 30   # responses counted in landlord metrics

    # Cache TTL values (seconds)
    MATCHING_TTL = 300       # 5 minutes
    LISTING_TTL = 120        # 2 minutes
    REQUEST_TTL = 300        # 5 minutes
    STATS_TTL = 60

    # Cache key prefixes
    PREFIX_MATCHING = 'matching_landlords:'
    PREFIX_LISTING = 'landlord_requests:'
    PREFIX_REQUEST = 'request:'
    KEY_STATS = 'pool_stats'

    # Listing
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100

    # Scheduler
    SWEEP_INTERVAL = 3600    # every hour
    RECONCILE_HOUR = 3       # UTC
    RECENT_MATCHES_HOURS = 24

    # Retention
    ANALYTICS_RETENTION_DAYS = 365
    MATCH_RETENTION_DAYS = 182

    # Connections
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    REDIS_MAX_CONNECTIONS = 10


class FeatureConfig:
    """Feature configuration manager."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize feature config loader.

        Args:
            config_path: Path to features.yaml, defaults to config/features.yaml
        """
        if config_path is None:
            config_path = Path(__file__).parent.parent / 'config' / 'features.yaml'

        self.config_path = config_path
        self._config = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            self._config = {}
            return

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load features config: {e}")
            self._config = {}

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    @property
    def is_request_pool_enabled(self) -> bool:
        """Check if the request pool is enabled."""
        return self._config.get('request_pool', {}).get('enabled', False)

    def is_component_enabled(self, component: str) -> bool:
        """Check if a request pool component is enabled.

        Args:
            component: Component name (e.g., 'redis_cache', 'analytics')

        Returns:
            True if component is enabled, False otherwise
        """
        if not self.is_request_pool_enabled:
            return False

        return self._config.get('request_pool', {}).get('components', {}).get(component, False)

    def is_mode_active(self, mode: str) -> bool:
        """Check if specific mode is active."""
        return self._config.get('modes', {}).get(mode, False)

    def get_all_config(self) -> Dict[str, Any]:
        """Get full configuration dictionary."""
        return self._config.copy()


# Global instance
feature_config = FeatureConfig()


def is_request_pool_enabled() -> bool:
    """Check if the request pool is enabled."""
    return feature_config.is_request_pool_enabled


def is_component_enabled(component: str) -> bool:
    """Check if specific request pool component is enabled."""
    return feature_config.is_component_enabled(component)


def is_development_mode() -> bool:
    """Check if development mode is active."""
    return feature_config.is_mode_active('development')
