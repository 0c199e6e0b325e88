"""
Runtime (binary-only) package resolution.

A package directory is binary-only when it ships its compiled module assembly
(`bin/Dynamics.AX.<Package>.dll`) but no model descriptor. Such packages
cannot be built from source, so they are staged next to the source modules
for the compiler to reference.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Sequence

from axbuild.errors import MissingPathError
from axbuild.metadata.descriptor import descriptor_files, find_child_dir

logger = logging.getLogger(__name__)

RUNTIME_MARKER_FILE = "Customization.txt"
BIN_FOLDER = "bin"


def module_assembly_name(package: str) -> str:
    return f"Dynamics.AX.{package}.dll"


def has_module_assembly(package_dir: Path) -> bool:
    bin_dir = find_child_dir(package_dir, BIN_FOLDER)
    if bin_dir is None:
        return False
    wanted = module_assembly_name(package_dir.name).lower()
    return any(path.is_file() and path.name.lower() == wanted for path in bin_dir.iterdir())


def has_source_descriptors(package_dir: Path) -> bool:
    return bool(descriptor_files(package_dir))


def is_runtime_package(package_dir: Path) -> bool:
    return has_module_assembly(package_dir) and not has_source_descriptors(package_dir)


@dataclass
class RuntimePackageResolver:
    """
    Classifies packages under `metadata_path` and stages the binary-only ones
    into `deployment_metadata_path`.
    """

    metadata_path: Path
    deployment_metadata_path: Path

    def find_runtime_includes(self) -> List[str]:
        """
        Binary-only package names in the metadata directory, minus packages
        already deployed as source.
        """

        if not self.metadata_path.is_dir():
            raise MissingPathError(self.metadata_path, "Metadata directory")

        includes: List[str] = []
        for package_dir in sorted(self.metadata_path.iterdir(), key=lambda path: path.name.lower()):
            if not package_dir.is_dir() or not is_runtime_package(package_dir):
                continue
            deployed = self.deployment_metadata_path / package_dir.name
            if deployed.is_dir() and has_source_descriptors(deployed):
                logger.info("Package %s is deployed as source, not treated as runtime", package_dir.name)
                continue
            includes.append(package_dir.name)

        if includes:
            logger.info("Runtime packages: %s", ", ".join(includes))
        return includes

    def stage(self, packages: Sequence[str]) -> List[Path]:
        """
        Copy each runtime package into the deployment directory and mark it as
        created by the build. Existing targets are left untouched.
        """

        staged: List[Path] = []
        for package in packages:
            source = self.metadata_path / package
            target = self.deployment_metadata_path / package
            if not source.is_dir():
                raise MissingPathError(source, "Runtime package directory")
            if target.exists():
                logger.warning(
                    "Runtime package %s already exists in %s; leaving it unchanged",
                    package,
                    self.deployment_metadata_path,
                )
                continue

            shutil.copytree(source, target)
            (target / RUNTIME_MARKER_FILE).write_text(
                f"Package {package} was created by the build process from runtime binaries "
                f"on {datetime.now(timezone.utc).isoformat()}.\n",
                encoding="utf-8",
            )
            logger.info("Staged runtime package %s", package)
            staged.append(target)
        return staged
