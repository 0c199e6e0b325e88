"""
Metadata models and providers for axbuild.

The metadata layer captures model descriptors from a Dynamics 365 F&O
metadata store before they are ordered and packaged.
"""

from .descriptor import parse_model_descriptor
from .models import Layer, ModelInfo, ModelVersion, ModuleInfo, group_models, module_key
from .provider import (
    DiskMetadataProvider,
    MetadataProvider,
    MetadataProviderFactory,
    RuntimeMetadataProvider,
)

__all__ = [
    "Layer",
    "ModelInfo",
    "ModelVersion",
    "ModuleInfo",
    "group_models",
    "module_key",
    "parse_model_descriptor",
    "MetadataProvider",
    "DiskMetadataProvider",
    "RuntimeMetadataProvider",
    "MetadataProviderFactory",
]
