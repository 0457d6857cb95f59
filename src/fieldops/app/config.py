"""Configuration management using Pydantic settings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FIELDOPS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "FIELDOPS"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Territory center; spawns and the fleet are scattered around it.
    # Default: Vellore, Tamil Nadu.
    map_center_lat: float = 12.9165
    map_center_lng: float = 79.1325
    incident_radius_m: float = 20_000.0
    fleet_radius_m: float = 15_000.0

    # Simulation engine
    simulation_enabled: bool = True
    units_per_category: int = 5
    initial_incidents: int = 3
    chaos_mode: bool = False
    max_delta_ms: float = 1000.0   # larger frame gaps are dropped
    tick_interval: float = 0.05    # seconds between host loop frames
    random_seed: int | None = None

    # Persistence
    snapshot_path: Path = Path("./data/incidents.json")
    history_limit: int = 50

    # Operator log
    operator_log_limit: int = 50


settings = Settings()
