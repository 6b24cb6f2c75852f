"""
Configuration management for dep-bumper.

Settings come from built-in defaults, then an optional JSON/YAML config file,
then ``DEP_BUMPER_*`` environment variables. Command-line flags override the
resulting values at call time.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

# Warnings go to stderr so that --json output stays parseable
console = Console(stderr=True)

DEFAULT_REGISTRY = "https://registry.npmjs.org"

DEFAULT_DEPENDENCY_TYPES = [
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
]


@dataclass
class UpdateConfig:
    """Core update-check configuration."""

    max_sockets: int = 64
    dependency_types: List[str] = field(
        default_factory=lambda: list(DEFAULT_DEPENDENCY_TYPES)
    )
    retry_default_registry: bool = True


@dataclass
class NetworkConfig:
    """Network and registry configuration."""

    default_registry: str = DEFAULT_REGISTRY
    github_api_url: str = "https://api.github.com"
    user_agent: str = "dep-bumper/1.0.0"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    log_level: str = "WARNING"
    enable_file_logging: bool = False
    log_file_path: Optional[str] = None


@dataclass
class PerformanceConfig:
    """Performance configuration."""

    enable_caching: bool = True


@dataclass
class ComprehensiveConfig:
    """Main configuration containing all subsections."""

    update: UpdateConfig = field(default_factory=UpdateConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_global_config: Optional[ComprehensiveConfig] = None

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_config_values(config: ComprehensiveConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    if config.update.max_sockets <= 0:
        errors.append("update.max_sockets must be positive")
    if not config.update.dependency_types:
        errors.append("update.dependency_types must not be empty")

    if not config.network.default_registry.startswith(("http://", "https://")):
        errors.append("network.default_registry must be an http(s) URL")
    if not config.network.github_api_url.startswith(("http://", "https://")):
        errors.append("network.github_api_url must be an http(s) URL")
    if config.network.connect_timeout <= 0:
        errors.append("network.connect_timeout must be positive")
    if config.network.read_timeout <= 0:
        errors.append("network.read_timeout must be positive")

    if config.logging.log_level.upper() not in _LOG_LEVELS:
        errors.append(f"logging.log_level must be one of {sorted(_LOG_LEVELS)}")

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from a JSON or YAML file."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                return yaml.safe_load(f)
            if config_path.suffix.lower() == ".json":
                return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"⚠️  Error loading config from {config_path}: {e}", style="yellow")

    return None


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / ".dep-bumper.json",
        Path.cwd() / ".dep-bumper.yaml",
        Path.cwd() / ".dep-bumper.yml",
        Path.home() / ".config" / "dep-bumper" / "config.json",
        Path.home() / ".config" / "dep-bumper" / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: ComprehensiveConfig) -> None:
    """Load environment variable overrides."""

    def get_env_bool(key: str, default: bool = False) -> bool:
        value = os.environ.get(key, "").lower()
        return value in ["true", "1", "yes", "on"] if value else default

    def get_env_int(key: str, default: Optional[int] = None) -> Optional[int]:
        try:
            return int(os.environ[key]) if key in os.environ else default
        except ValueError:
            console.print(f"⚠️  Invalid integer value for {key}, using default", style="yellow")
            return default

    def get_env_float(key: str, default: Optional[float] = None) -> Optional[float]:
        try:
            return float(os.environ[key]) if key in os.environ else default
        except ValueError:
            console.print(f"⚠️  Invalid float value for {key}, using default", style="yellow")
            return default

    if max_sockets := get_env_int("DEP_BUMPER_MAX_SOCKETS"):
        config.update.max_sockets = max_sockets
    if types := os.environ.get("DEP_BUMPER_TYPES"):
        config.update.dependency_types = [t for t in types.split(",") if t]
    config.update.retry_default_registry = get_env_bool(
        "DEP_BUMPER_RETRY_DEFAULT_REGISTRY", config.update.retry_default_registry
    )

    if registry := os.environ.get("DEP_BUMPER_REGISTRY"):
        config.network.default_registry = registry
    if github_api := os.environ.get("DEP_BUMPER_GITHUB_API_URL"):
        config.network.github_api_url = github_api
    if user_agent := os.environ.get("DEP_BUMPER_USER_AGENT"):
        config.network.user_agent = user_agent
    if connect_timeout := get_env_float("DEP_BUMPER_CONNECT_TIMEOUT"):
        config.network.connect_timeout = connect_timeout
    if read_timeout := get_env_float("DEP_BUMPER_READ_TIMEOUT"):
        config.network.read_timeout = read_timeout

    if log_level := os.environ.get("DEP_BUMPER_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()
    if log_file := os.environ.get("DEP_BUMPER_LOG_FILE"):
        config.logging.log_file_path = log_file
        config.logging.enable_file_logging = True

    config.performance.enable_caching = get_env_bool(
        "DEP_BUMPER_ENABLE_CACHING", config.performance.enable_caching
    )


def apply_config_section(
    config: Any, section_data: Dict[str, Any], section_name: str
) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            console.print(f"⚠️  Unknown config key in {section_name}: {key}", style="yellow")


def load_config(config_file: Optional[Path] = None) -> ComprehensiveConfig:
    """Load configuration from file and environment."""
    global _global_config

    if _global_config is not None and config_file is None:
        return _global_config

    config = ComprehensiveConfig()

    config_file = config_file or find_config_file()
    if config_file:
        file_config = load_config_file(config_file)
        if isinstance(file_config, dict):
            for section_name in ("update", "network", "logging", "performance"):
                section_data = file_config.get(section_name)
                if isinstance(section_data, dict):
                    apply_config_section(
                        getattr(config, section_name), section_data, section_name
                    )

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")
        console.print("Using default values for invalid settings.", style="yellow")
        config = _restore_invalid_defaults(config, validation_errors)

    _global_config = config
    return config


def _restore_invalid_defaults(
    config: ComprehensiveConfig, errors: List[str]
) -> ComprehensiveConfig:
    defaults = ComprehensiveConfig()
    for error in errors:
        section_name, _, rest = error.partition(".")
        key = rest.split(" ", 1)[0]
        section = getattr(config, section_name, None)
        if section is not None and hasattr(section, key):
            setattr(section, key, getattr(getattr(defaults, section_name), key))
    return config


def get_config() -> ComprehensiveConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate a sample configuration file with all defaults."""
    return json.dumps(ComprehensiveConfig().to_dict(), indent=2)
