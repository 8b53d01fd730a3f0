from config.settings.app_config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
