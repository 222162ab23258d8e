from pdvsync.core.clock import Clock, to_iso, utc_now
from pdvsync.core.config import SyncConfig, load_sync_config_from_env

__all__ = [
    "Clock",
    "SyncConfig",
    "load_sync_config_from_env",
    "to_iso",
    "utc_now",
]
