"""User configuration for the console client.

Persists the access token between runs as a JSON file in the user's
config directory.
"""
import json
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional


def get_config_dir() -> Path:
    """Get the configuration directory for the current platform."""
    if sys.platform == "win32":
        base = Path.home() / "AppData" / "Roaming"
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path.home() / ".config"

    config_dir = base / "MagiaPlateada"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Get the path to the user config file."""
    return get_config_dir() / "settings.json"


@dataclass
class UserConfig:
    """Settings that persist across console sessions."""

    access_token: str = ""
    user_id: str = ""
    user_email: str = ""
    display_name: str = ""

    # Can be overridden for dev/staging
    server_url: str = ""

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "UserConfig":
        """Load config from file, falling back to defaults."""
        path = path or get_config_path()
        if not path.exists():
            return cls()

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            print(f"Warning: could not read {path}: {e}")
            return cls()

        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def save(self, path: Optional[Path] = None) -> None:
        path = path or get_config_path()
        path.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")

    def set_login(self, access_token: str, user_id: str, email: str, display_name: str,
                  path: Optional[Path] = None) -> None:
        self.access_token = access_token
        self.user_id = user_id
        self.user_email = email
        self.display_name = display_name
        self.save(path)

    def clear_login(self, path: Optional[Path] = None) -> None:
        self.access_token = ""
        self.user_id = ""
        self.user_email = ""
        self.display_name = ""
        self.save(path)
