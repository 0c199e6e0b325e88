"""
Per-module package assembly.

For one module and package type the assembler renders the `.nuspec`, copies
the install scripts, writes the install configuration, compresses the
module's files and packs everything with NuGet. All intermediate files live
in a working directory that is removed whether or not packing succeeds.
"""

from __future__ import annotations

import fnmatch
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from axbuild.config import PackagingSettings
from axbuild.errors import MissingPathError, StructuralMismatchError
from axbuild.metadata.models import ModuleInfo
from axbuild.packaging.exclusions import ExclusionPolicy
from axbuild.packaging.naming import PackageType, package_identity
from axbuild.packaging.nuspec import NuspecDocument, build_dependencies
from axbuild.packaging.tools import NuGetPackager, ToolRunner, ZipCompressor

logger = logging.getLogger(__name__)

INSTALL_SCRIPTS = ("Install.ps1", "Uninstall.ps1")
INSTALL_CONFIG_FILE = "InstallConfig.json"
TOOLS_FOLDER = "tools"


class InstallConfig(BaseModel):
    """Tells the install script which package and payload archive it handles."""

    model_config = ConfigDict(frozen=True)

    PackageName: str
    ZipName: str

    def write(self, path: Path) -> Path:
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path


@dataclass(frozen=True)
class StagingFilter:
    """
    Selects module files for a package.

    Folder names apply to the first path segment below the module directory
    and compare case-insensitively. `include_folders` empty means every
    folder; files directly in the module directory are kept unless
    `include_folders` is set.
    """

    include_folders: Tuple[str, ...] = ()
    exclude_folders: Tuple[str, ...] = ()
    include_patterns: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = ()

    def accepts(self, relative: Path) -> bool:
        parts = relative.parts
        top = parts[0].lower() if len(parts) > 1 else None
        if self.include_folders and top not in {name.lower() for name in self.include_folders}:
            return False
        if top is not None and top in {name.lower() for name in self.exclude_folders}:
            return False
        name = relative.name.lower()
        if self.include_patterns and not any(fnmatch.fnmatch(name, pattern.lower()) for pattern in self.include_patterns):
            return False
        if any(fnmatch.fnmatch(name, pattern.lower()) for pattern in self.exclude_patterns):
            return False
        return True

    def select(self, root: Path) -> List[Path]:
        return sorted(
            path
            for path in root.rglob("*")
            if path.is_file() and self.accepts(path.relative_to(root))
        )


STAGING_FILTERS: Dict[PackageType, StagingFilter] = {
    PackageType.RUN: StagingFilter(
        exclude_folders=("Descriptor", "XppMetadata"),
        exclude_patterns=("*.delete",),
    ),
    PackageType.COMPILE: StagingFilter(
        include_folders=("bin", "Descriptor", "XppMetadata"),
        exclude_patterns=("*.delete",),
    ),
    PackageType.DEVELOP: StagingFilter(
        exclude_folders=("bin", "XppMetadata"),
        exclude_patterns=("*.delete",),
    ),
    PackageType.FORMADAPTOR: StagingFilter(
        include_folders=("bin",),
        include_patterns=("*FormAdaptor*",),
        exclude_patterns=("*.delete",),
    ),
}


class PackageAssembler:
    def __init__(
        self,
        settings: PackagingSettings,
        policy: ExclusionPolicy,
        *,
        runner: ToolRunner | None = None,
        compressor: ZipCompressor | None = None,
        packager: NuGetPackager | None = None,
    ) -> None:
        self._settings = settings
        self._policy = policy
        runner = runner or ToolRunner()
        self._compressor = compressor or ZipCompressor(
            settings.zip_tool_path, runner, retries=settings.tool_retries
        )
        self._packager = packager or NuGetPackager(
            settings.nuget_path, runner, retries=settings.tool_retries
        )

    # Public API -------------------------------------------------------------------
    def create_package(
        self,
        module: ModuleInfo,
        package_type: PackageType,
        *,
        module_dir: Path,
        modules: Mapping[str, ModuleInfo],
        output_dir: Optional[Path] = None,
    ) -> Path:
        """Build the package of `module` and return the path of the `.nupkg`."""

        if package_type == PackageType.SOURCE:
            raise ValueError("Source packages are built by SourcePackageBuilder")
        if not module_dir.is_dir():
            raise MissingPathError(module_dir, f"Output directory of module {module.name}")

        settings = self._settings
        identity = package_identity(module.name, package_type, settings.namespace)
        version = str(module.version)
        output_dir = output_dir or settings.output_path
        working_dir = settings.working_path / identity.id

        self._reset(working_dir)
        try:
            nuspec = NuspecDocument(
                id=identity.id,
                version=version,
                authors=settings.authors,
                owners=settings.authors,
                description=identity.description,
                summary=identity.summary,
                title=identity.title,
                tags=f"{settings.namespace} {package_type.value or 'source'}",
                copyright=settings.copyright,
                dependencies=build_dependencies(
                    module,
                    package_type,
                    modules,
                    self._policy,
                    namespace=settings.namespace,
                    strict_versions=settings.strict_version_check,
                ),
                include_tools=True,
            )
            nuspec_path = nuspec.write(working_dir)

            tools_dir = working_dir / TOOLS_FOLDER
            tools_dir.mkdir()
            self._copy_install_scripts(tools_dir)
            zip_name = f"{identity.id}.zip"
            InstallConfig(PackageName=identity.id, ZipName=zip_name).write(tools_dir / INSTALL_CONFIG_FILE)

            files = STAGING_FILTERS[package_type].select(module_dir)
            if not files:
                raise StructuralMismatchError(
                    f"No files to package for module {module.name} ({package_type.value}) in {module_dir}"
                )
            self._compressor.compress(
                files,
                module_dir,
                tools_dir / zip_name,
                error_log=working_dir / "zip-errors.log",
            )

            package_path = self._packager.pack(
                nuspec_path,
                output_dir,
                package_id=identity.id,
                version=version,
                error_log=working_dir / "nuget-errors.log",
            )
            logger.info("Created package %s (%d files)", package_path.name, len(files))
            return package_path
        finally:
            shutil.rmtree(working_dir, ignore_errors=True)

    # Internal helpers -------------------------------------------------------------
    def _reset(self, working_dir: Path) -> None:
        if working_dir.exists():
            shutil.rmtree(working_dir)
        working_dir.mkdir(parents=True)

    def _copy_install_scripts(self, tools_dir: Path) -> None:
        for script in INSTALL_SCRIPTS:
            source = self._settings.template_path / script
            if not source.is_file():
                raise MissingPathError(source, "Install script template")
            shutil.copy2(source, tools_dir / script)
