"""
Configuration utilities for axbuild.
"""

from .settings import (
    BuildSettings,
    PackagingSettings,
    error_log_path,
    load_build_settings,
    load_packaging_settings,
)

__all__ = [
    "BuildSettings",
    "PackagingSettings",
    "error_log_path",
    "load_build_settings",
    "load_packaging_settings",
]
