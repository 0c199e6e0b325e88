"""
Dependency descriptor parsing.

A dependency descriptor lists the build items in an explicit order and may
interleave compiled .NET projects with X++ modules:

    <Projects>
      <Project>
        <Type>Metadata</Type>
        <Name>ContosoCore</Name>
      </Project>
      <Project>
        <Type>Project</Type>
        <Name>Projects\\ContosoInterop\\ContosoInterop.csproj</Name>
        <ReferencesModules><Module>ContosoCore</Module></ReferencesModules>
        <ReferencedByModules><Module>ContosoExtensions</Module></ReferencedByModules>
      </Project>
    </Projects>
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List
from xml.etree import ElementTree as ET

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from axbuild.errors import MalformedDescriptorError, MissingPathError


class BuildItemType(str, Enum):
    PROJECT = "Project"
    METADATA = "Metadata"


class BuildItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: BuildItemType
    name: str = Field(min_length=1)
    references_modules: List[str] = Field(default_factory=list)
    referenced_by_modules: List[str] = Field(default_factory=list)


class DependencyDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: List[BuildItem] = Field(default_factory=list)

    @property
    def metadata_items(self) -> List[BuildItem]:
        return [item for item in self.items if item.type == BuildItemType.METADATA]

    @property
    def project_items(self) -> List[BuildItem]:
        return [item for item in self.items if item.type == BuildItemType.PROJECT]


def _text(element: ET.Element, tag_name: str) -> str | None:
    child = element.find(tag_name)
    if child is not None and child.text and child.text.strip():
        return child.text.strip()
    return None


def _module_list(element: ET.Element, container: str) -> List[str]:
    return [
        child.text.strip()
        for child in element.findall(f"{container}/Module")
        if child.text and child.text.strip()
    ]


def _normalize_type(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip().capitalize()


def load_dependency_descriptor(path: Path) -> DependencyDescriptor:
    """
    Parse a dependency descriptor file.

    Raises:
        MissingPathError: the file does not exist.
        MalformedDescriptorError: invalid XML, wrong root element or an item
            with a missing/unknown type or name.
    """

    if not path.is_file():
        raise MissingPathError(path, "Dependency descriptor")

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise MalformedDescriptorError(path, str(exc)) from exc

    if root.tag != "Projects":
        raise MalformedDescriptorError(path, f"expected <Projects> root, found <{root.tag}>")

    raw_items = [
        {
            "type": _normalize_type(_text(project, "Type")),
            "name": _text(project, "Name") or "",
            "references_modules": _module_list(project, "ReferencesModules"),
            "referenced_by_modules": _module_list(project, "ReferencedByModules"),
        }
        for project in root.findall("Project")
    ]

    try:
        return DependencyDescriptor(items=raw_items)
    except ValidationError as exc:
        raise MalformedDescriptorError(path, str(exc)) from exc
