from adstxt_updater.config.loader import DestinationConfigLoader, SettingsLoader

__all__ = ["DestinationConfigLoader", "SettingsLoader"]
