"""
Package identifiers and human-readable package strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

DEFAULT_NAMESPACE = "dynamicsax"


class PackageType(str, Enum):
    SOURCE = ""
    RUN = "run"
    COMPILE = "compile"
    DEVELOP = "develop"
    FORMADAPTOR = "formadaptor"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PackageType":
        if value is None:
            return cls.SOURCE
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown package type '{value}'") from None

    @property
    def suffix(self) -> str:
        if self in (PackageType.SOURCE, PackageType.RUN):
            return ""
        return f"-{self.value}"


_DESCRIPTIONS = {
    PackageType.SOURCE: "Source code for the {name} module.",
    PackageType.RUN: "Runtime binaries for the {name} module.",
    PackageType.COMPILE: "Compile-time references for the {name} module.",
    PackageType.DEVELOP: "Development metadata for the {name} module.",
    PackageType.FORMADAPTOR: "Form adaptor binaries for the {name} module.",
}

_TITLES = {
    PackageType.SOURCE: "{name} source",
    PackageType.RUN: "{name}",
    PackageType.COMPILE: "{name} compile",
    PackageType.DEVELOP: "{name} develop",
    PackageType.FORMADAPTOR: "{name} form adaptor",
}


def get_package_nuspec_id(
    name: str,
    package_type: PackageType | str = PackageType.RUN,
    namespace: str = DEFAULT_NAMESPACE,
) -> str:
    """
    Canonical package id: `<namespace>-<name>[-compile|-develop|-formadaptor]`,
    lower-cased.
    """

    if not isinstance(package_type, PackageType):
        package_type = PackageType.parse(package_type)
    return f"{namespace}-{name.strip()}{package_type.suffix}".lower()


def nuspec_file_name(package_id: str, version: str) -> str:
    return f"{package_id}.{version}.nuspec"


def normalize_package_version(version: str) -> str:
    """
    Version as NuGet writes it into package file names: leading zeros are
    dropped, at least three parts are kept and a zero fourth part is
    removed (`1.0.0.0` becomes `1.0.0`, `1.2.3.4` stays). Build metadata
    after `+` is dropped; a release label is kept. Versions that are not
    numeric are returned unchanged.
    """

    release, _, _ = version.strip().partition("+")
    numbers, dash, label = release.partition("-")
    parts = numbers.split(".")
    if not 1 <= len(parts) <= 4 or not all(part.isdigit() for part in parts):
        return version
    digits = [str(int(part)) for part in parts]
    digits.extend(["0"] * (3 - len(digits)))
    if len(digits) == 4 and digits[3] == "0":
        digits.pop()
    return ".".join(digits) + dash + label


def nupkg_file_name(package_id: str, version: str) -> str:
    return f"{package_id}.{normalize_package_version(version)}.nupkg"


@dataclass(frozen=True)
class PackageIdentity:
    id: str
    title: str
    description: str
    summary: str
    package_type: PackageType


def package_identity(
    name: str,
    package_type: PackageType,
    namespace: str = DEFAULT_NAMESPACE,
) -> PackageIdentity:
    description = _DESCRIPTIONS[package_type].format(name=name)
    return PackageIdentity(
        id=get_package_nuspec_id(name, package_type, namespace),
        title=_TITLES[package_type].format(name=name),
        description=description,
        summary=description,
        package_type=package_type,
    )
