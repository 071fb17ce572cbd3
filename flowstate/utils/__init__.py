"""Utilities for FlowState."""

from .asset_store import AssetStore, JsonAssetStore
from .config_manager import ConfigManager
from .path_finder import PathFinder

__all__ = [
    'AssetStore',
    'ConfigManager',
    'JsonAssetStore',
    'PathFinder'
]
