import os
import logging
import sys
from typing import Optional
from urllib.parse import urlparse


# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def setup_logging():
    """Configure application-wide logging"""
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


# =============================================================================
# Prometheus Configuration
# =============================================================================
PROMETHEUS_URL: str = os.getenv("PROMETHEUS_URL", "http://localhost:9090")
PROMETHEUS_TIMEOUT_SECONDS: int = int(os.getenv("PROMETHEUS_TIMEOUT_SECONDS", "30"))
PROMETHEUS_RETRY_COUNT: int = int(os.getenv("PROMETHEUS_RETRY_COUNT", "3"))
PROMETHEUS_RETRY_BACKOFF_BASE: int = int(os.getenv("PROMETHEUS_RETRY_BACKOFF_BASE", "1"))

# =============================================================================
# Capacity Planning Configuration
# =============================================================================
# Safety margin applied when a tool call does not pass one (percent, 0-50)
DEFAULT_SAFETY_MARGIN_PERCENT: float = float(os.getenv("DEFAULT_SAFETY_MARGIN_PERCENT", "15"))
# Days of quota usage history fed to the trend forecaster
TREND_HISTORY_DAYS: int = int(os.getenv("TREND_HISTORY_DAYS", "7"))
# Optional YAML file overriding analysis.tuning.DEFAULT_TUNING
TUNING_CONFIG_PATH: Optional[str] = os.getenv("TUNING_CONFIG_PATH")

# Output directory for CLI results
OUTPUT_DIR: str = os.getenv("OUTPUT_DIR", "output")

# =============================================================================
# HTTP Tool Server
# =============================================================================
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8080"))


def get_output_path(tool_name: str) -> str:
    """Default CLI output path: {OUTPUT_DIR}/{tool_name}_output.json"""
    return os.path.join(OUTPUT_DIR, f"{tool_name}_output.json")


__all__ = [
    "PROMETHEUS_URL",
    "PROMETHEUS_TIMEOUT_SECONDS",
    "PROMETHEUS_RETRY_COUNT",
    "PROMETHEUS_RETRY_BACKOFF_BASE",
    "DEFAULT_SAFETY_MARGIN_PERCENT",
    "TREND_HISTORY_DAYS",
    "TUNING_CONFIG_PATH",
    "OUTPUT_DIR",
    "SERVER_HOST",
    "SERVER_PORT",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "setup_logging",
    "validate_config",
    "get_output_path",
    "ConfigValidationError",
]


# =============================================================================
# Configuration Validation
# =============================================================================
class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def _validate_positive_int(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")


def _validate_url(name: str, value: str) -> None:
    try:
        result = urlparse(value)
        if not all([result.scheme, result.netloc]):
            raise ValueError("Missing scheme or netloc")
        if result.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid scheme: {result.scheme}")
    except Exception as e:
        raise ConfigValidationError(f"{name} is not a valid URL: {value} ({e})")


def _validate_safety_margin(value: float) -> None:
    if not 0 <= value <= 50:
        raise ConfigValidationError(
            f"DEFAULT_SAFETY_MARGIN_PERCENT must be between 0 and 50, got {value}"
        )


def validate_config() -> None:
    """Validate all configuration values on startup

    Raises:
        ConfigValidationError: If any configuration value is invalid
    """
    errors = []

    # Validate counts and timeouts are positive
    for name, value in (
        ("PROMETHEUS_TIMEOUT_SECONDS", PROMETHEUS_TIMEOUT_SECONDS),
        ("PROMETHEUS_RETRY_COUNT", PROMETHEUS_RETRY_COUNT),
        ("TREND_HISTORY_DAYS", TREND_HISTORY_DAYS),
        ("SERVER_PORT", SERVER_PORT),
    ):
        try:
            _validate_positive_int(name, value)
        except ConfigValidationError as e:
            errors.append(str(e))

    try:
        _validate_url("PROMETHEUS_URL", PROMETHEUS_URL)
    except ConfigValidationError as e:
        errors.append(str(e))

    try:
        _validate_safety_margin(DEFAULT_SAFETY_MARGIN_PERCENT)
    except ConfigValidationError as e:
        errors.append(str(e))

    if TUNING_CONFIG_PATH and not os.path.isfile(TUNING_CONFIG_PATH):
        errors.append(f"TUNING_CONFIG_PATH does not exist: {TUNING_CONFIG_PATH}")

    if errors:
        raise ConfigValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )
