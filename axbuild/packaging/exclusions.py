"""
Module exclusion policy for custom deployable packages.

Three sets of module names never end up in a custom package: an explicit
user exclusion list, the platform packages and the sealed application
packages. The latter two come from the product information file of the
installed release.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from axbuild.errors import ConfigurationError, MissingPathError
from axbuild.metadata.models import ModelVersion, module_key

logger = logging.getLogger(__name__)

SEALED_APPLICATION_VERSION = ModelVersion(8, 1, 0, 0)


class ProductInfo(BaseModel):
    """Product information of the installed platform and application."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    application_version: str = Field(alias="applicationVersion")
    platform_packages: List[str] = Field(default_factory=list, alias="platformPackages")
    application_packages: List[str] = Field(default_factory=list, alias="applicationPackages")

    @field_validator("application_version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        ModelVersion.parse(value)
        return value

    @property
    def parsed_application_version(self) -> ModelVersion:
        return ModelVersion.parse(self.application_version)

    @property
    def is_sealed_application(self) -> bool:
        return self.parsed_application_version.as_tuple() >= SEALED_APPLICATION_VERSION.as_tuple()


def load_product_info(path: Path) -> ProductInfo:
    if not path.is_file():
        raise MissingPathError(path, "Product information file")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        info = ProductInfo.model_validate(payload)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigurationError(f"Invalid product information file {path}: {exc}") from exc
    return info


@dataclass(frozen=True)
class ExclusionPolicy:
    excluded: FrozenSet[str] = frozenset()
    platform_packages: FrozenSet[str] = frozenset()
    application_packages: FrozenSet[str] = frozenset()

    @classmethod
    def create(
        cls,
        *,
        excluded: Iterable[str] = (),
        platform_packages: Iterable[str] = (),
        application_packages: Iterable[str] = (),
    ) -> "ExclusionPolicy":
        return cls(
            excluded=frozenset(module_key(name) for name in excluded),
            platform_packages=frozenset(module_key(name) for name in platform_packages),
            application_packages=frozenset(module_key(name) for name in application_packages),
        )

    @classmethod
    def from_product_info(cls, info: ProductInfo, excluded: Iterable[str] = ()) -> "ExclusionPolicy":
        """
        Before the sealed application release, application packages could
        still be customized: the application set is empty and any application
        package the product information also lists as platform is released.
        """

        platform = list(info.platform_packages)
        application = list(info.application_packages)
        if not info.is_sealed_application:
            released = {module_key(name) for name in application}
            platform = [name for name in platform if module_key(name) not in released]
            application = []
            logger.debug(
                "Application %s predates sealed application %s; application packages not protected",
                info.application_version,
                SEALED_APPLICATION_VERSION,
            )
        return cls.create(excluded=excluded, platform_packages=platform, application_packages=application)

    def is_protected(self, name: str) -> bool:
        key = module_key(name)
        return key in self.platform_packages or key in self.application_packages

    def is_excluded(self, name: str) -> bool:
        return module_key(name) in self.excluded or self.is_protected(name)

    def filter_modules(self, names: Iterable[str]) -> List[str]:
        """
        Drop excluded modules. Protected modules are reported as errors since
        they must never be part of a custom package.
        """

        included: List[str] = []
        for name in names:
            key = module_key(name)
            if key in self.platform_packages:
                logger.error("Module %s is a platform package and cannot be included in a custom package", name)
                continue
            if key in self.application_packages:
                logger.error("Module %s is a sealed application package and cannot be included in a custom package", name)
                continue
            if key in self.excluded:
                logger.info("Module %s excluded by configuration", name)
                continue
            included.append(name)
        return included
