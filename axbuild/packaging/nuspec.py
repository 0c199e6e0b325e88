"""
`.nuspec` package manifests.

Documents are built as element trees and serialized at the end, so ids and
descriptions never need manual escaping.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping
from xml.etree import ElementTree as ET

from axbuild.errors import ConfigurationError, MalformedDescriptorError
from axbuild.metadata.models import ModuleInfo, module_key
from axbuild.packaging.exclusions import ExclusionPolicy
from axbuild.packaging.naming import PackageType, get_package_nuspec_id, nuspec_file_name

logger = logging.getLogger(__name__)

NUSPEC_NAMESPACE = "http://schemas.microsoft.com/packaging/2011/08/nuspec.xsd"
ANY_VERSION = "0.0.0.0"
TOOLS_INCLUDE = "tools\\**"


def _tag(name: str) -> str:
    return f"{{{NUSPEC_NAMESPACE}}}{name}"


@dataclass(frozen=True, slots=True)
class NuspecDependency:
    id: str
    version: str


@dataclass(slots=True)
class NuspecDocument:
    id: str
    version: str
    authors: str
    description: str
    owners: str = ""
    summary: str = ""
    title: str = ""
    tags: str = ""
    copyright: str = ""
    require_license_acceptance: bool = False
    dependencies: List[NuspecDependency] = field(default_factory=list)
    include_tools: bool = False

    @property
    def file_name(self) -> str:
        return nuspec_file_name(self.id, self.version)

    def to_element(self) -> ET.Element:
        package = ET.Element(_tag("package"))
        metadata = ET.SubElement(package, _tag("metadata"))
        values = (
            ("id", self.id),
            ("version", self.version),
            ("title", self.title or self.id),
            ("authors", self.authors),
            ("owners", self.owners or self.authors),
            ("requireLicenseAcceptance", "true" if self.require_license_acceptance else "false"),
            ("description", self.description),
            ("summary", self.summary or self.description),
            ("copyright", self.copyright),
            ("tags", self.tags),
        )
        for name, value in values:
            ET.SubElement(metadata, _tag(name)).text = value

        dependencies = ET.SubElement(metadata, _tag("dependencies"))
        for dependency in self.dependencies:
            ET.SubElement(
                dependencies,
                _tag("dependency"),
                {"id": dependency.id, "version": dependency.version},
            )

        if self.include_tools:
            files = ET.SubElement(package, _tag("files"))
            ET.SubElement(files, _tag("file"), {"src": TOOLS_INCLUDE, "target": "tools"})
        return package

    def to_xml(self) -> bytes:
        ET.register_namespace("", NUSPEC_NAMESPACE)
        root = self.to_element()
        ET.indent(root)
        return ET.tostring(root, encoding="utf-8", xml_declaration=True)

    def write(self, directory: Path) -> Path:
        path = directory / self.file_name
        path.write_bytes(self.to_xml())
        return path

    @classmethod
    def parse(cls, path: Path) -> "NuspecDocument":
        try:
            root = ET.parse(path).getroot()
        except ET.ParseError as exc:
            raise MalformedDescriptorError(path, str(exc)) from exc

        metadata = root.find(_tag("metadata"))
        if metadata is None:
            raise MalformedDescriptorError(path, "missing <metadata>")

        def text(name: str) -> str:
            return (metadata.findtext(_tag(name)) or "").strip()

        dependencies = [
            NuspecDependency(id=element.get("id", ""), version=element.get("version", ""))
            for element in metadata.findall(f"{_tag('dependencies')}/{_tag('dependency')}")
        ]
        return cls(
            id=text("id"),
            version=text("version"),
            authors=text("authors"),
            description=text("description"),
            owners=text("owners"),
            summary=text("summary"),
            title=text("title"),
            tags=text("tags"),
            copyright=text("copyright"),
            require_license_acceptance=text("requireLicenseAcceptance").lower() == "true",
            dependencies=dependencies,
            include_tools=root.find(_tag("files")) is not None,
        )


def build_dependencies(
    module: ModuleInfo,
    package_type: PackageType,
    modules: Mapping[str, ModuleInfo],
    policy: ExclusionPolicy,
    *,
    namespace: str,
    strict_versions: bool = False,
) -> List[NuspecDependency]:
    """
    Dependencies of `module`'s package: one per referenced module that is
    neither excluded nor protected.

    With `strict_versions` each dependency is pinned to the exact version of
    the referenced module. This stays off by default: the versions recorded in
    model descriptors often differ from the versions actually deployed, and
    pinned dependencies then fail to install.
    """

    dependencies: List[NuspecDependency] = []
    for reference in module.references:
        if policy.is_excluded(reference):
            logger.debug("Skipping dependency %s -> %s", module.name, reference)
            continue

        if strict_versions:
            referenced = modules.get(module_key(reference))
            if referenced is None:
                raise ConfigurationError(
                    f"Cannot pin dependency {module.name} -> {reference}: module not found in metadata"
                )
            version = f"[{referenced.version}]"
        else:
            version = ANY_VERSION

        dependencies.append(
            NuspecDependency(
                id=get_package_nuspec_id(reference, package_type, namespace),
                version=version,
            )
        )
    return dependencies
