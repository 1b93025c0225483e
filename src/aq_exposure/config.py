"""
Exposure Engine Configuration
=============================

This module handles configuration loading for the exposure engine.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    AQX_DEBOUNCE_SECONDS  -> engine.debounce_seconds
    AQX_CENSUS_API_KEY    -> census.api_key
    AQX_CENSUS_STATES     -> census.states (comma separated)
    AQX_CENSUS_TTL_HOURS  -> census.ttl_hours
    AQX_TRACTS_PATH       -> data.tracts_path
    AQX_SAMPLES_DIR       -> data.samples_dir
    AQX_PORT              -> server.port
    AQX_LOG_LEVEL         -> logging.level
    PORT                  -> server.port (Cloud Run)

Example:
    from aq_exposure.config import settings
    
    print(settings.engine.debounce_seconds)
    print(settings.census.variable)
    print(settings.tilesets[0].id)
"""

import os
import logging
import datetime as dt
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from aq_exposure.models.exposure import DEFAULT_PM25_LEVELS, ExposureBin
from aq_exposure.models.tileset import TilesetWindow


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class EngineConfig(BaseModel):
    """Analysis engine configuration."""
    
    debounce_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Trailing-edge debounce window for recompute triggers",
    )
    boundary_layer_id: str = Field(
        default="census-tracts-layer",
        description="Renderer layer holding the tract polygons",
    )
    padding_ratio: float = Field(
        default=0.2,
        ge=0,
        description="Per-side bounding box padding for sample queries",
    )


class CensusConfig(BaseModel):
    """Census API population source configuration."""
    
    base_url: str = Field(
        default="https://api.census.gov/data",
        description="Census data API root",
    )
    dataset: str = Field(default="2020/dec/pl", description="Dataset path")
    variable: str = Field(default="P1_001N", description="Total population variable")
    states: List[str] = Field(
        default_factory=lambda: ["06"],
        description="Two-digit state FIPS codes to fetch",
    )
    api_key: Optional[str] = Field(default=None, description="Optional API key")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Request timeout")
    ttl_hours: float = Field(default=24.0, gt=0, description="Population cache TTL")
    
    @field_validator("states")
    @classmethod
    def validate_states(cls, v: List[str]) -> List[str]:
        """Ensure state codes are two-digit FIPS codes."""
        for state in v:
            if len(state) != 2 or not state.isdigit():
                raise ValueError(f"Invalid state FIPS code: {state!r}")
        return v


class SamplesConfig(BaseModel):
    """Feature property names."""
    
    concentration_property: str = Field(
        default="PM25",
        description="Numeric concentration property of sample points",
    )
    time_property: str = Field(
        default="time",
        description="Timestamp property of sample points",
    )
    geoid_property: str = Field(
        default="GEOID",
        description="Identifier property of tract features",
    )


class TimelineConfig(BaseModel):
    """Simulation playback timeline."""
    
    start: dt.datetime = Field(
        default=dt.datetime(2024, 9, 16, 0, tzinfo=dt.timezone.utc),
        description="First simulated hour (naive values are UTC)",
    )
    skipped_hours: int = Field(default=0, ge=0, description="Hours skipped at the gap")
    skip_after: int = Field(default=12, ge=0, description="First offset after the gap")
    total_steps: int = Field(default=24, ge=1, description="Slider positions")


class DataConfig(BaseModel):
    """Files backing the in-memory renderer of the service."""
    
    tracts_path: str = Field(
        default="./data/tracts.geojson",
        description="Tract polygons (GeoJSON FeatureCollection)",
    )
    samples_dir: str = Field(
        default="./data/samples",
        description="Directory of <tileset id>.geojson sample files",
    )
    population_path: Optional[str] = Field(
        default=None,
        description="Static population table (JSON). Uses the Census API if unset",
    )
    zoom: float = Field(default=8.0, ge=0, le=22, description="Projection zoom level")


class ServerConfig(BaseModel):
    """Server configuration."""
    
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the exposure engine.
    
    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """
    
    engine: EngineConfig = Field(default_factory=EngineConfig)
    census: CensusConfig = Field(default_factory=CensusConfig)
    samples: SamplesConfig = Field(default_factory=SamplesConfig)
    tilesets: List[TilesetWindow] = Field(default_factory=list)
    exposure_bins: List[ExposureBin] = Field(
        default_factory=lambda: [ExposureBin(**level) for level in DEFAULT_PM25_LEVELS]
    )
    timeline: TimelineConfig = Field(default_factory=TimelineConfig)
    data: DataConfig = Field(default_factory=DataConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.
    
    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values
        
    Args:
        config_path: Path to config.yaml. If None, searches common locations.
        
    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break
    
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")
    
    _apply_env_overrides(config_data)
    
    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""
    
    # Engine settings
    if env_debounce := os.environ.get("AQX_DEBOUNCE_SECONDS"):
        config_data.setdefault("engine", {})["debounce_seconds"] = float(env_debounce)
    
    # Census settings
    if env_key := os.environ.get("AQX_CENSUS_API_KEY"):
        config_data.setdefault("census", {})["api_key"] = env_key
    if env_states := os.environ.get("AQX_CENSUS_STATES"):
        config_data.setdefault("census", {})["states"] = [
            s.strip() for s in env_states.split(",") if s.strip()
        ]
    if env_ttl := os.environ.get("AQX_CENSUS_TTL_HOURS"):
        config_data.setdefault("census", {})["ttl_hours"] = float(env_ttl)
    
    # Data files
    if env_tracts := os.environ.get("AQX_TRACTS_PATH"):
        config_data.setdefault("data", {})["tracts_path"] = env_tracts
    if env_samples := os.environ.get("AQX_SAMPLES_DIR"):
        config_data.setdefault("data", {})["samples_dir"] = env_samples
    
    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("AQX_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    
    # Logging settings
    if env_log := os.environ.get("AQX_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)
    
    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    
    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

settings = load_config()
setup_logging(settings)
