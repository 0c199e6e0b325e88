"""
Build orchestration project generation for Dynamics 365 F&O modules.
"""

from .descriptor import BuildItem, BuildItemType, DependencyDescriptor, load_dependency_descriptor
from .generator import (
    PROJECT_FILE_NAME,
    BuildProjectDocument,
    ModuleBuildTask,
    ProjectBuildTask,
    ProjectFileGenerator,
)
from .runtime import RUNTIME_MARKER_FILE, RuntimePackageResolver, is_runtime_package

__all__ = [
    "BuildItem",
    "BuildItemType",
    "DependencyDescriptor",
    "load_dependency_descriptor",
    "PROJECT_FILE_NAME",
    "BuildProjectDocument",
    "ModuleBuildTask",
    "ProjectBuildTask",
    "ProjectFileGenerator",
    "RUNTIME_MARKER_FILE",
    "RuntimePackageResolver",
    "is_runtime_package",
]
