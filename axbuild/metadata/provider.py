"""
Metadata providers that enumerate models and modules from a metadata store.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from axbuild.errors import MissingPathError
from axbuild.metadata.descriptor import descriptor_files, parse_model_descriptor
from axbuild.metadata.models import Layer, ModelInfo, ModuleInfo, group_models, module_key

logger = logging.getLogger(__name__)


class MetadataProvider(ABC):
    """Read-only view over a metadata store."""

    @abstractmethod
    def list_model_infos(self) -> List[ModelInfo]:
        """Return every model known to the store."""

    def runtime_module_names(self) -> Tuple[str, ...]:
        return ()

    def list_modules(self) -> List[ModuleInfo]:
        return group_models(self.list_model_infos(), self.runtime_module_names())

    def list_modules_in_dependency_order(self) -> List[ModuleInfo]:
        # axbuild.graph imports this package.
        from axbuild.graph.ordering import topological_order

        return topological_order(self.list_modules())


class DiskMetadataProvider(MetadataProvider):
    """Provider backed by `<root>/<Package>/Descriptor/*.xml` files."""

    def __init__(self, root: Path) -> None:
        if not root.is_dir():
            raise MissingPathError(root, "Metadata directory")
        self.root = root

    def package_dirs(self) -> List[Path]:
        return sorted(
            (path for path in self.root.iterdir() if path.is_dir()),
            key=lambda path: path.name.lower(),
        )

    def list_model_infos(self) -> List[ModelInfo]:
        models: List[ModelInfo] = []
        for package_dir in self.package_dirs():
            for descriptor in descriptor_files(package_dir):
                models.append(parse_model_descriptor(descriptor))
        logger.debug("Loaded %d model descriptors from %s", len(models), self.root)
        return models


class RuntimeMetadataProvider(DiskMetadataProvider):
    """
    Disk provider extended with binary-only (runtime) packages.

    A runtime package that carries no descriptor is represented by a single
    model named after the package, without references: the package is
    already compiled, so its own references never affect the build order.
    """

    def __init__(self, root: Path, runtime_packages: Iterable[str]) -> None:
        super().__init__(root)
        self.runtime_packages: Tuple[str, ...] = tuple(runtime_packages)

    def runtime_module_names(self) -> Tuple[str, ...]:
        return self.runtime_packages

    def list_model_infos(self) -> List[ModelInfo]:
        models = super().list_model_infos()
        known = {module_key(model.module) for model in models}
        for package in self.runtime_packages:
            if module_key(package) in known:
                continue
            package_dir = self.root / package
            if not package_dir.is_dir():
                raise MissingPathError(package_dir, "Runtime package directory")
            models.append(
                ModelInfo(
                    name=package,
                    module=package,
                    # Layer is unknown for binary-only packages.
                    layer=Layer.USR,
                )
            )
        return models


class MetadataProviderFactory:
    def create_disk_provider(self, root: Path) -> DiskMetadataProvider:
        return DiskMetadataProvider(root)

    def create_runtime_provider(
        self,
        root: Path,
        runtime_packages: Sequence[str],
    ) -> RuntimeMetadataProvider:
        return RuntimeMetadataProvider(root, runtime_packages)

    def create_provider(self, root: Path, runtime_packages: Sequence[str] = ()) -> MetadataProvider:
        if runtime_packages:
            return self.create_runtime_provider(root, runtime_packages)
        return self.create_disk_provider(root)
