"""
Centralized build settings.

Environment variables drive configuration so that build agents can override
defaults without code changes. Settings are loaded once at process start and
passed explicitly into the components that need them; command line options
are applied on top through the `overrides` mapping.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from axbuild.errors import ConfigurationError

ENV_PREFIX = "AXBUILD_"
DEFAULT_ERROR_LOG = "GenerateProjErrors.log"
DEFAULT_BASE_PROJECT = Path("Metadata") / "Build.proj"


def _lookup(name: str, overrides: Mapping[str, Any] | None, default: Any = None) -> Any:
    if overrides and overrides.get(name) is not None:
        return overrides[name]
    value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
    if value is None or value == "":
        return default
    return value


def _required_path(name: str, overrides: Mapping[str, Any] | None) -> Path:
    value = _lookup(name, overrides)
    if value is None:
        raise ConfigurationError(
            f"Missing required setting '{name}' (set {ENV_PREFIX}{name.upper()})"
        )
    return Path(value)


def _optional_path(name: str, overrides: Mapping[str, Any] | None) -> Optional[Path]:
    value = _lookup(name, overrides)
    return Path(value) if value is not None else None


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_list(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.replace(";", ",").split(",")
    else:
        items = list(value)
    return tuple(item.strip() for item in items if item and item.strip())


@dataclass(frozen=True)
class BuildSettings:
    """Paths used when generating the build orchestration project."""

    metadata_path: Path
    deployment_metadata_path: Path
    sdk_path: Path
    base_project: Optional[Path] = None
    error_log: Path = Path(DEFAULT_ERROR_LOG)

    @property
    def source_root(self) -> Path:
        return self.metadata_path.parent

    @property
    def resolved_base_project(self) -> Path:
        return self.base_project or self.sdk_path / DEFAULT_BASE_PROJECT


def load_build_settings(overrides: Mapping[str, Any] | None = None) -> BuildSettings:
    """
    Load generator configuration.

    Required vars:
        AXBUILD_METADATA_PATH
        AXBUILD_DEPLOYMENT_METADATA_PATH
        AXBUILD_SDK_PATH

    Optional:
        AXBUILD_BASE_PROJECT (defaults to <sdk>/Metadata/Build.proj)
        AXBUILD_ERROR_LOG (defaults to "GenerateProjErrors.log")
    """

    return BuildSettings(
        metadata_path=_required_path("metadata_path", overrides),
        deployment_metadata_path=_required_path("deployment_metadata_path", overrides),
        sdk_path=_required_path("sdk_path", overrides),
        base_project=_optional_path("base_project", overrides),
        error_log=error_log_path(overrides),
    )


def error_log_path(overrides: Mapping[str, Any] | None = None) -> Path:
    """Error log location, resolvable even when other settings are missing."""

    return Path(_lookup("error_log", overrides, DEFAULT_ERROR_LOG))


@dataclass(frozen=True)
class PackagingSettings:
    """Paths, tools and package metadata used by the packaging pipeline."""

    metadata_path: Path
    output_path: Path
    working_path: Path
    template_path: Path
    nuget_path: str = "nuget"
    zip_tool_path: str = "7za"
    model_util_path: str = "ModelUtil.exe"
    product_info_path: Optional[Path] = None
    namespace: str = "dynamicsax"
    authors: str = "Dynamics 365 customization"
    copyright: str = ""
    package_version: str = "1.0.0.0"
    strict_version_check: bool = False
    tool_retries: int = 2
    excluded_modules: Tuple[str, ...] = ()


def load_packaging_settings(overrides: Mapping[str, Any] | None = None) -> PackagingSettings:
    """
    Load packaging configuration.

    Required vars:
        AXBUILD_METADATA_PATH
        AXBUILD_OUTPUT_PATH
        AXBUILD_TEMPLATE_PATH

    AXBUILD_WORKING_PATH defaults to <output>/_work. Tool paths default to
    executables found on PATH.
    """

    output_path = _required_path("output_path", overrides)
    working_path = _optional_path("working_path", overrides) or output_path / "_work"
    try:
        tool_retries = int(_lookup("tool_retries", overrides, 2))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid tool_retries value: {exc}") from exc
    if tool_retries < 0:
        raise ConfigurationError("tool_retries must not be negative")

    return PackagingSettings(
        metadata_path=_required_path("metadata_path", overrides),
        output_path=output_path,
        working_path=working_path,
        template_path=_required_path("template_path", overrides),
        nuget_path=str(_lookup("nuget_path", overrides, "nuget")),
        zip_tool_path=str(_lookup("zip_tool_path", overrides, "7za")),
        model_util_path=str(_lookup("modelutil_path", overrides, "ModelUtil.exe")),
        product_info_path=_optional_path("product_info_path", overrides),
        namespace=str(_lookup("package_namespace", overrides, "dynamicsax")),
        authors=str(_lookup("package_authors", overrides, "Dynamics 365 customization")),
        copyright=str(_lookup("package_copyright", overrides, "")),
        package_version=str(_lookup("package_version", overrides, "1.0.0.0")),
        strict_version_check=_parse_bool(_lookup("strict_version_check", overrides, False)),
        tool_retries=tool_retries,
        excluded_modules=_parse_list(_lookup("excluded_modules", overrides)),
    )
