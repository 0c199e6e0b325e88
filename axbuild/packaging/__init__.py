"""
NuGet packaging of built modules and deployable package assembly.
"""

from .assembler import InstallConfig, PackageAssembler, StagingFilter
from .builder import DeployablePackageBuilder, PackagingResult
from .exclusions import ExclusionPolicy, ProductInfo, load_product_info
from .merge import RuntimePackageMerger
from .naming import PackageType, get_package_nuspec_id
from .nuspec import NuspecDependency, NuspecDocument, build_dependencies
from .source import SourcePackageBuilder
from .tools import ModelExporter, NuGetPackager, ToolResult, ToolRunner, ZipCompressor, retry

__all__ = [
    "InstallConfig",
    "PackageAssembler",
    "StagingFilter",
    "DeployablePackageBuilder",
    "PackagingResult",
    "ExclusionPolicy",
    "ProductInfo",
    "load_product_info",
    "RuntimePackageMerger",
    "PackageType",
    "get_package_nuspec_id",
    "NuspecDependency",
    "NuspecDocument",
    "build_dependencies",
    "SourcePackageBuilder",
    "ModelExporter",
    "NuGetPackager",
    "ToolResult",
    "ToolRunner",
    "ZipCompressor",
    "retry",
]
