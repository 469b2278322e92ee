"""
Order Board Configuration Management
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any

from dotenv import load_dotenv


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class BoardConfig:
    """Configuration for the order board sync engine"""

    # API settings
    api_base_url: str = "http://localhost:4000/api"
    auth_token: Optional[str] = None
    request_timeout: float = 15.0  # seconds

    # Sync settings
    poll_interval: float = 60.0  # seconds
    sync_debounce: float = 0.75  # seconds
    flush_on_close: bool = True

    # Search settings
    search_case_sensitive: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    # Paths
    config_dir: str = field(default_factory=lambda: str(Path.home() / ".orderboard"))

    def load_from_file(self, config_path: str) -> None:
        """Load configuration from JSON file"""
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
                for key, value in data.items():
                    if hasattr(self, key):
                        setattr(self, key, value)

    def save_to_file(self, config_path: Optional[str] = None) -> None:
        """Save configuration to JSON file"""
        path = Path(config_path or (Path(self.config_dir) / "config.json"))
        path.parent.mkdir(parents=True, exist_ok=True)
        data = asdict(self)
        # Never persist the bearer credential
        data.pop("auth_token", None)
        with open(path, 'w') as f:
            json.dump(data, f, indent=2)

    @classmethod
    def load_default(cls, env_file: Optional[str] = None) -> "BoardConfig":
        """Load .env, then the user config file, then environment overrides"""
        load_dotenv(env_file)

        config = cls()
        default_config_path = Path(config.config_dir) / "config.json"
        if default_config_path.exists():
            config.load_from_file(str(default_config_path))

        config._load_from_env()

        return config

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        env_mappings = {
            "ORDERBOARD_API_URL": "api_base_url",
            "ORDERBOARD_AUTH_TOKEN": "auth_token",
            "ORDERBOARD_REQUEST_TIMEOUT": ("request_timeout", float),
            "ORDERBOARD_POLL_INTERVAL": ("poll_interval", float),
            "ORDERBOARD_SYNC_DEBOUNCE": ("sync_debounce", float),
            "ORDERBOARD_FLUSH_ON_CLOSE": ("flush_on_close", _parse_bool),
            "ORDERBOARD_SEARCH_CASE_SENSITIVE": ("search_case_sensitive", _parse_bool),
            "ORDERBOARD_LOG_LEVEL": "log_level",
            "ORDERBOARD_LOG_JSON": ("log_json", _parse_bool),
            "ORDERBOARD_LOG_FILE": "log_file",
        }

        for env_var, mapping in env_mappings.items():
            value = os.environ.get(env_var)
            if value:
                if isinstance(mapping, tuple):
                    attr, converter = mapping
                    setattr(self, attr, converter(value))
                else:
                    setattr(self, mapping, value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return asdict(self)
