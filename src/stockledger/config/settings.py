from dataclasses import dataclass, field, fields
from typing import Dict, Any
import yaml
from pathlib import Path

from stockledger.config.database import DATABASE_CONFIG  # Import database config
from stockledger.core.exceptions import ConfigError

@dataclass
class StockConfig:
    """Configuration for the stock reconciliation engine."""
    bardana_name: str = "Bardana"
    bardana_low_stock_kg: float = 300.0
    guard_purchases: bool = False

@dataclass
class FilePathConfig:
    """File path configuration."""
    input_dir: str = "data/input"
    log_dir: str = "logs"
    report_dir: str = "reports"

@dataclass
class ImporterConfig:
    """Configuration for the item importer."""
    chunk_size: int = 200
    enable_validation: bool = True

@dataclass
class ApplicationConfig:
    """Main application configuration."""
    stock: StockConfig = field(default_factory=StockConfig)
    importer: ImporterConfig = field(default_factory=ImporterConfig)
    file_paths: FilePathConfig = field(default_factory=FilePathConfig)
    log_level: str = "INFO"
    database: Dict[str, Any] = field(default_factory=dict)  # Add database as dict

def _build_section(cls, data: Any, section: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{section}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in '{section}': {sorted(unknown)}")
    return cls(**data)

def load_config(config_path: str = "config/settings.yaml") -> ApplicationConfig:
    """Load configuration from YAML file and database.py."""
    if not Path(config_path).exists():
        # Return default configuration with database from database.py
        config = ApplicationConfig()
        config.database = dict(DATABASE_CONFIG)
        return config

    with open(config_path, 'r') as f:
        try:
            config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")

    # Database settings come from the environment only
    config_data.pop('database', None)

    sections = {
        'stock': StockConfig,
        'importer': ImporterConfig,
        'file_paths': FilePathConfig,
    }
    unknown = set(config_data) - set(sections) - {'log_level'}
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {sorted(unknown)}")

    config = ApplicationConfig(
        **{name: _build_section(cls, config_data.get(name), name) for name, cls in sections.items()},
        log_level=str(config_data.get('log_level', 'INFO')),
    )
    config.database = dict(DATABASE_CONFIG)  # Attach database config from database.py
    return config
