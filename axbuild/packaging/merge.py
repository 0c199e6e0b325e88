"""
Merging of per-module runtime packages into one deployable package.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

from axbuild.errors import MissingPathError

logger = logging.getLogger(__name__)

RUNTIME_PACKAGE_FOLDER = "AOSService/Packages/files"
BASE_PACKAGE_NAME = "BaseDeployablePackage.zip"


def combine_runtime_archives(packages: Sequence[Path], archive: Path) -> Path:
    """Write every package into `archive` under the runtime package folder."""

    archive.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as target:
        for package in packages:
            if not package.is_file():
                raise MissingPathError(package, "Module package")
            target.write(package, arcname=f"{RUNTIME_PACKAGE_FOLDER}/{package.name}")
    return archive


def merge_archives(archives: Sequence[Path], output: Path) -> Path:
    """
    Merge zip archives into `output`. An entry in a later archive replaces the
    entry of the same name in an earlier one.
    """

    sources: Dict[str, Path] = {}
    for archive in archives:
        with zipfile.ZipFile(archive) as source:
            for name in source.namelist():
                if not name.endswith("/"):
                    sources[name] = archive

    output.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as target:
        for archive in archives:
            with zipfile.ZipFile(archive) as source:
                for info in source.infolist():
                    if sources.get(info.filename) == archive:
                        target.writestr(info, source.read(info))
    return output


@dataclass
class RuntimePackageMerger:
    base_package: Path

    def merge(self, module_packages: Sequence[Path], output_path: Path) -> Optional[Path]:
        """
        Build the deployable runtime package: the base package with every
        module package added under `AOSService/Packages/files`.
        """

        if not module_packages:
            logger.warning("No module packages to merge; deployable package not created")
            return None
        if not self.base_package.is_file():
            raise MissingPathError(self.base_package, "Base deployable package")

        combined = output_path.with_name(f"{output_path.stem}.modules.zip")
        try:
            combine_runtime_archives(module_packages, combined)
            merge_archives([self.base_package, combined], output_path)
        finally:
            combined.unlink(missing_ok=True)

        logger.info("Merged %d module package(s) into %s", len(module_packages), output_path)
        return output_path
