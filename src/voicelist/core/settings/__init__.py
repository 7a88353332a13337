from .settings import APP_NAME, Settings, get_config_dir, get_settings

__all__ = [
    "APP_NAME",
    "Settings",
    "get_config_dir",
    "get_settings",
]
