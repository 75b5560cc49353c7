import json
import os

# Settings management
SETTINGS_FILE = "settings.json"
DEFAULT_SERVER = "localhost:5000"  # Default server if no settings file exists

DEFAULT_SETTINGS = {
    "storage": "local",        # local, remote or memory
    "server_url": DEFAULT_SERVER,
    "db_file": "memory_game.db",
    "reveal_delay": 1.0,       # seconds mismatched cards stay face up
    "fps": 60,
}

STORAGE_MODES = ("local", "remote", "memory")


def load_settings(path=SETTINGS_FILE):
    """Load settings from a JSON file, filling in defaults for missing keys."""
    settings = dict(DEFAULT_SETTINGS)
    if os.path.exists(path):
        try:
            with open(path, 'r') as f:
                stored = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            print(f"Could not read {path}, using defaults: {e}")
            return settings
        if isinstance(stored, dict):
            settings.update({k: v for k, v in stored.items() if k in DEFAULT_SETTINGS})

    if settings["storage"] not in STORAGE_MODES:
        print(f"Unknown storage mode {settings['storage']!r}, using local")
        settings["storage"] = "local"
    try:
        settings["reveal_delay"] = max(0.0, float(settings["reveal_delay"]))
    except (TypeError, ValueError):
        settings["reveal_delay"] = DEFAULT_SETTINGS["reveal_delay"]
    return settings


def save_settings(settings, path=SETTINGS_FILE):
    """Save settings to a JSON file."""
    with open(path, 'w') as f:
        json.dump(settings, f, indent=2)
