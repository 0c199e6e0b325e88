"""
End-to-end packaging of built modules into a deployable runtime package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from axbuild.config import PackagingSettings
from axbuild.errors import UnknownModuleError
from axbuild.metadata.models import ModuleInfo, index_modules, module_key
from axbuild.metadata.provider import MetadataProviderFactory
from axbuild.packaging.assembler import PackageAssembler
from axbuild.packaging.exclusions import ExclusionPolicy, load_product_info
from axbuild.packaging.merge import BASE_PACKAGE_NAME, RuntimePackageMerger
from axbuild.packaging.naming import PackageType
from axbuild.packaging.source import SourcePackageBuilder
from axbuild.packaging.tools import ModelExporter, ToolRunner, ZipCompressor
from axbuild.projects.runtime import has_module_assembly, is_runtime_package

logger = logging.getLogger(__name__)


def deployable_package_name(version: str) -> str:
    return f"AXDeployableRuntime_{version}.zip"


def source_package_name(version: str) -> str:
    return f"AXSourcePackage_{version}.zip"


@dataclass
class PackagingResult:
    module_packages: List[Path] = field(default_factory=list)
    deployable_package: Optional[Path] = None
    source_package: Optional[Path] = None


def create_exclusion_policy(settings: PackagingSettings) -> ExclusionPolicy:
    if settings.product_info_path is None:
        return ExclusionPolicy.create(excluded=settings.excluded_modules)
    info = load_product_info(settings.product_info_path)
    return ExclusionPolicy.from_product_info(info, excluded=settings.excluded_modules)


class DeployablePackageBuilder:
    """
    Packages every built module under the metadata directory.

    A module counts as built when its package directory holds the compiled
    module assembly. Without an explicit module list only modules in a
    customization layer and binary-only packages are considered.
    """

    def __init__(
        self,
        settings: PackagingSettings,
        *,
        runner: ToolRunner | None = None,
        policy: ExclusionPolicy | None = None,
        provider_factory: MetadataProviderFactory | None = None,
    ) -> None:
        self._settings = settings
        self._runner = runner or ToolRunner()
        self._policy = policy or create_exclusion_policy(settings)
        self._factory = provider_factory or MetadataProviderFactory()
        self._assembler = PackageAssembler(settings, self._policy, runner=self._runner)

    # Discovery --------------------------------------------------------------------
    def runtime_packages(self) -> List[str]:
        root = self._settings.metadata_path
        return [
            path.name
            for path in sorted(root.iterdir(), key=lambda path: path.name.lower())
            if path.is_dir() and is_runtime_package(path)
        ]

    def built_modules(self, modules: Sequence[ModuleInfo]) -> List[ModuleInfo]:
        root = self._settings.metadata_path
        built: List[ModuleInfo] = []
        for module in modules:
            module_dir = root / module.name
            if module_dir.is_dir() and has_module_assembly(module_dir):
                built.append(module)
            else:
                logger.debug("Module %s has no compiled assembly; skipped", module.name)
        return built

    # Public API -------------------------------------------------------------------
    def build(self, modules: Sequence[str] = (), *, include_source: bool = False) -> PackagingResult:
        """
        Create one runtime package per built module and merge them into the
        deployable package.

        `modules` restricts packaging to the named modules; each must exist in
        the metadata directory. With `include_source`, the models of the
        packaged source modules are also exported into a source package.
        """

        settings = self._settings
        provider = self._factory.create_provider(settings.metadata_path, self.runtime_packages())
        all_modules = provider.list_modules()
        index = index_modules(all_modules)

        if modules:
            missing = [name for name in modules if module_key(name) not in index]
            if missing:
                raise UnknownModuleError(missing)
            candidates = [index[module_key(name)] for name in modules]
        else:
            # Standard modules ship with the release; only customizations are packaged by default.
            candidates = [module for module in all_modules if module.is_runtime or module.layer.is_custom]

        built = {module_key(module.name): module for module in self.built_modules(candidates)}
        included = self._policy.filter_modules(module.name for module in built.values())
        logger.info("Packaging %d module(s): %s", len(included), ", ".join(included))

        result = PackagingResult()
        for name in included:
            module = built[module_key(name)]
            package = self._assembler.create_package(
                module,
                PackageType.RUN,
                module_dir=settings.metadata_path / module.name,
                modules=index,
            )
            result.module_packages.append(package)

        merger = RuntimePackageMerger(base_package=settings.template_path / BASE_PACKAGE_NAME)
        result.deployable_package = merger.merge(
            result.module_packages,
            settings.output_path / deployable_package_name(settings.package_version),
        )

        if include_source:
            result.source_package = self._build_source_package([built[module_key(name)] for name in included])
        return result

    def _build_source_package(self, modules: Sequence[ModuleInfo]) -> Optional[Path]:
        models = [model.name for module in modules if not module.is_runtime for model in module.models]
        if not models:
            logger.warning("No source models to export; source package not created")
            return None

        settings = self._settings
        builder = SourcePackageBuilder(
            ModelExporter(settings.model_util_path, self._runner),
            ZipCompressor(settings.zip_tool_path, self._runner, retries=settings.tool_retries),
            settings.working_path,
        )
        return builder.build(
            models,
            settings.metadata_path,
            settings.output_path / source_package_name(settings.package_version),
        )
