"""
Model descriptor (AxModelInfo) parsing.

Each package in the metadata store carries one descriptor per model under
`<Package>/Descriptor/<Model>.xml`. `ModuleReferences` children are
serialized with a data-contract namespace, so tags are matched without their
namespace.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple
from xml.etree import ElementTree as ET

from axbuild.errors import MalformedDescriptorError
from axbuild.metadata.models import Layer, ModelInfo, ModelVersion

DESCRIPTOR_FOLDER = "Descriptor"


def _strip_namespace(tag: str) -> str:
    return tag.split("}", 1)[1] if "}" in tag else tag


def _find_child(element: ET.Element, tag_name: str) -> ET.Element | None:
    for child in element:
        if _strip_namespace(child.tag).lower() == tag_name.lower():
            return child
    return None


def _find_text(element: ET.Element, tag_name: str) -> str | None:
    child = _find_child(element, tag_name)
    if child is not None and child.text and child.text.strip():
        return child.text.strip()
    return None


def _parse_int(element: ET.Element, tag_name: str, default: int, path: Path) -> int:
    text = _find_text(element, tag_name)
    if text is None:
        return default
    try:
        return int(text)
    except ValueError:
        raise MalformedDescriptorError(path, f"{tag_name} is not a number: {text!r}") from None


def _parse_references(element: ET.Element) -> Tuple[str, ...]:
    container = _find_child(element, "ModuleReferences")
    if container is None:
        return ()
    return tuple(
        child.text.strip()
        for child in container
        if child.text and child.text.strip()
    )


def parse_model_descriptor(path: Path) -> ModelInfo:
    """Read a single descriptor file into a `ModelInfo`."""

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise MalformedDescriptorError(path, str(exc)) from exc

    if _strip_namespace(root.tag) != "AxModelInfo":
        raise MalformedDescriptorError(path, f"unexpected root element <{_strip_namespace(root.tag)}>")

    name = _find_text(root, "Name") or path.stem
    layer_text = _find_text(root, "Layer")
    try:
        layer = Layer.parse(layer_text) if layer_text is not None else Layer.USR
    except ValueError as exc:
        raise MalformedDescriptorError(path, str(exc)) from exc

    version = ModelVersion(
        major=_parse_int(root, "VersionMajor", 1, path),
        minor=_parse_int(root, "VersionMinor", 0, path),
        build=_parse_int(root, "VersionBuild", 0, path),
        revision=_parse_int(root, "VersionRevision", 0, path),
    )

    return ModelInfo(
        name=name,
        module=_find_text(root, "ModelModule") or name,
        layer=layer,
        version=version,
        display_name=_find_text(root, "DisplayName"),
        publisher=_find_text(root, "Publisher"),
        description=_find_text(root, "Description"),
        module_references=_parse_references(root),
    )


def find_child_dir(parent: Path, name: str) -> Optional[Path]:
    """Case-insensitive lookup of a direct child directory."""

    exact = parent / name
    if exact.is_dir():
        return exact
    if not parent.is_dir():
        return None
    wanted = name.lower()
    for child in parent.iterdir():
        if child.is_dir() and child.name.lower() == wanted:
            return child
    return None


def descriptor_files(package_dir: Path) -> list[Path]:
    descriptor_dir = find_child_dir(package_dir, DESCRIPTOR_FOLDER)
    if descriptor_dir is None:
        return []
    return sorted(
        path
        for path in descriptor_dir.iterdir()
        if path.is_file() and path.suffix.lower() == ".xml"
    )
