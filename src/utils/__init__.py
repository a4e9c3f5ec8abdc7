"""
Utility modules for the selection sync service
"""
from .config_loader import SyncConfig, load_sync_config

__all__ = [
    'SyncConfig',
    'load_sync_config',
]
