"""
config.py
Process configuration from environment variables plus the packaged series map.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml

DEFAULT_SERIES_MAP = Path(__file__).parent / "data" / "series_map.yaml"


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings, read once at start-up.

    Provider keys are optional: a provider without credentials is reported
    as unconfigured and the aggregator falls back to the next source.
    """

    fred_api_key: Optional[str] = None
    nyfed_api_base: str = "https://markets.newyorkfed.org/api"
    fx_api_base: str = "https://api.exchangerate-api.com/v4/latest"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    request_timeout: float = 10.0
    history_max_days: int = 90
    rate_limit_window: float = 60.0
    rate_limit_capacity: int = 60
    series_map_path: Path = DEFAULT_SERIES_MAP

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Parameters
        ----------
        environ : dict, optional
            Mapping to read from (defaults to ``os.environ``)

        Returns
        -------
        Settings
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        return cls(
            fred_api_key=env.get("FRED_API_KEY") or None,
            nyfed_api_base=env.get("NYFED_API_BASE", defaults.nyfed_api_base).rstrip("/"),
            fx_api_base=env.get("FX_API_BASE", defaults.fx_api_base).rstrip("/"),
            cors_origins=_split_origins(env.get("CORS_ORIGINS", "")) or list(defaults.cors_origins),
            host=env.get("HOST", defaults.host),
            port=int(env.get("PORT", defaults.port)),
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
            request_timeout=float(env.get("REQUEST_TIMEOUT", defaults.request_timeout)),
            history_max_days=int(env.get("HISTORY_MAX_DAYS", defaults.history_max_days)),
            rate_limit_window=float(env.get("RATE_LIMIT_WINDOW", defaults.rate_limit_window)),
            rate_limit_capacity=int(env.get("RATE_LIMIT_CAPACITY", defaults.rate_limit_capacity)),
            series_map_path=Path(env.get("SERIES_MAP_PATH", defaults.series_map_path)),
        )


def load_series_map(config_path: Optional[Union[str, Path]] = None) -> Dict:
    """
    Load the rate catalog (provider ids, priorities, TTLs, regions).

    Parameters
    ----------
    config_path : str or Path, optional
        Path to a series_map.yaml file. Defaults to the packaged one.

    Returns
    -------
    dict
        Parsed configuration with keys ``rates``, ``ttl`` and ``regions``
    """
    if config_path is None:
        config_path = DEFAULT_SERIES_MAP
    with open(config_path, "r") as f:
        config = yaml.safe_load(f)

    for section in ("rates", "ttl", "regions"):
        if section not in config:
            raise ValueError(f"series map {config_path} is missing section '{section}'")
    return config
