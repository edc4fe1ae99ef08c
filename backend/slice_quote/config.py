# config.py

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application configuration settings loaded from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'  # Ignore extra fields from environment/dotenv
    )

    # Slicing engine
    slicer_path: str = Field("/usr/local/bin/prusa-slicer", description="Path (or bare name on PATH) of the PrusaSlicer executable.")
    slicer_timeout_ms: int = Field(60000, description="Hard wall-clock timeout for a single slicer run, in milliseconds.")
    slicer_config_dir: str = Field("/app/config/prusaslicer", description="Directory holding printer/, filament/ and print/ profile .ini files.")
    slicer_max_output_bytes: int = Field(10 * 1024 * 1024, description="Maximum bytes of slicer stdout/stderr kept in memory.")

    # Storage
    slicer_temp_dir: str = Field("/tmp/slicing", description="Flat directory for uploaded models and generated G-code.")
    upload_ttl_hours: float = Field(24, description="How long an uploaded model stays available for slicing.")
    gcode_ttl_hours: float = Field(24, description="Retention window for generated G-code files.")
    max_upload_size_mb: int = Field(50, description="Upload size ceiling in MiB.")
    cleanup_interval_minutes: float = Field(30, description="Interval of the background cleanup sweep.")

    # Pricing (NGN)
    machine_hourly_rate: float = Field(2000, description="Machine time cost per hour.")
    setup_fee: float = Field(500, description="Flat setup fee per unique model.")

    # Logging Configuration
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")

    @field_validator('log_level')
    @classmethod
    def log_level_must_be_valid(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of {valid_levels}')
        return v.upper()

    @field_validator('slicer_timeout_ms', 'slicer_max_output_bytes', 'max_upload_size_mb')
    @classmethod
    def must_be_positive_int(cls, v):
        if v <= 0:
            raise ValueError('value must be greater than 0')
        return v

    @field_validator('upload_ttl_hours', 'gcode_ttl_hours', 'cleanup_interval_minutes')
    @classmethod
    def must_be_positive_float(cls, v):
        if v <= 0:
            raise ValueError('value must be greater than 0')
        return v

    @field_validator('machine_hourly_rate', 'setup_fee')
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError('rates and fees cannot be negative')
        return v

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def slicer_timeout_sec(self) -> float:
        return self.slicer_timeout_ms / 1000.0

    @property
    def temp_dir(self) -> Path:
        return Path(self.slicer_temp_dir)


# --- Singleton Instance ---
# Create a single instance of the settings to be imported across the application
try:
    settings = Settings()
    logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    logger.info(f"Configuration loaded. Log level: {settings.log_level}, Slicer: {settings.slicer_path}, "
                f"Timeout: {settings.slicer_timeout_ms}ms, Temp dir: {settings.slicer_temp_dir}")
except Exception as e:
    logging.basicConfig(level='INFO', format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    logger.error(f"CRITICAL: Failed to load application configuration: {e}", exc_info=True)
    raise


def get_settings() -> Settings:
    """Returns the singleton settings instance."""
    return settings
