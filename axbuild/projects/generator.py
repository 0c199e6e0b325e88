"""
Generation of the MSBuild orchestration project (`Metadata_Project_Build.proj`).

The generated project imports nothing itself: each X++ module is built by
invoking the SDK's base build project with the module and model names, and
each .NET project listed in a dependency descriptor is built directly with
its reference and output paths wired in.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from xml.etree import ElementTree as ET

from axbuild.config import BuildSettings
from axbuild.errors import MissingPathError, UnknownModuleError
from axbuild.graph.ordering import OrderedModule, compute_build_order
from axbuild.metadata.models import ModuleInfo, index_modules, module_key
from axbuild.metadata.provider import MetadataProvider, MetadataProviderFactory
from axbuild.projects.descriptor import BuildItem, BuildItemType, load_dependency_descriptor
from axbuild.projects.runtime import BIN_FOLDER, RuntimePackageResolver

logger = logging.getLogger(__name__)

MSBUILD_NAMESPACE = "http://schemas.microsoft.com/developer/msbuild/2003"
PROJECT_FILE_NAME = "Metadata_Project_Build.proj"
BUILD_TARGET = "BuildModules"
MODULE_BUILD_TARGET = "BuildModule"


def _tag(name: str) -> str:
    return f"{{{MSBUILD_NAMESPACE}}}{name}"


def _escape_list(values: Sequence[str]) -> str:
    # MSBuild splits Properties on ';', so list values are escaped.
    return "%3B".join(values)


@dataclass(frozen=True)
class ModuleBuildTask:
    module: str
    models: Tuple[str, ...]


@dataclass(frozen=True)
class ProjectBuildTask:
    name: str
    project_path: Path
    reference_paths: Tuple[Path, ...]
    destination_paths: Tuple[Path, ...]


BuildTask = ModuleBuildTask | ProjectBuildTask


@dataclass
class BuildProjectDocument:
    """In-memory form of the orchestration project, serialized by `write`."""

    base_project: Path
    output_path: Path
    tasks: List[BuildTask] = field(default_factory=list)

    def to_element(self) -> ET.Element:
        root = ET.Element(
            _tag("Project"),
            {"ToolsVersion": "14.0", "DefaultTargets": BUILD_TARGET},
        )

        base_group = ET.SubElement(root, _tag("ItemGroup"))
        ET.SubElement(base_group, _tag("BaseProject"), {"Include": str(self.base_project)})

        properties = ET.SubElement(root, _tag("PropertyGroup"))
        ET.SubElement(properties, _tag("DeploymentBinPath")).text = str(self.output_path)

        target = ET.Element(_tag("Target"), {"Name": BUILD_TARGET})

        for index, task in enumerate(self.tasks, start=1):
            if isinstance(task, ModuleBuildTask):
                prefix = f"Module{index}"
                ET.SubElement(properties, _tag(f"{prefix}Name")).text = task.module
                ET.SubElement(properties, _tag(f"{prefix}Models")).text = _escape_list(task.models)
                ET.SubElement(
                    target,
                    _tag("MSBuild"),
                    {
                        "Projects": "@(BaseProject)",
                        "Targets": MODULE_BUILD_TARGET,
                        "Properties": f"ModuleToBuild=$({prefix}Name);ModelsToBuild=$({prefix}Models)",
                    },
                )
                continue

            prefix = f"Project{index}"
            paths_group = ET.SubElement(root, _tag("ItemGroup"))
            for reference_path in task.reference_paths:
                ET.SubElement(paths_group, _tag(f"{prefix}ReferencePath"), {"Include": str(reference_path)})
            for destination_path in task.destination_paths:
                ET.SubElement(paths_group, _tag(f"{prefix}DestinationPath"), {"Include": str(destination_path)})

            ET.SubElement(properties, _tag(f"{prefix}Path")).text = str(task.project_path)
            build = ET.SubElement(
                target,
                _tag("MSBuild"),
                {
                    "Projects": f"$({prefix}Path)",
                    "Targets": "Build",
                    "Properties": f"ReferencePath=@({prefix}ReferencePath);OutDir=$(DeploymentBinPath)\\",
                },
            )
            ET.SubElement(build, _tag("Output"), {"TaskParameter": "TargetOutputs", "ItemName": f"{prefix}Output"})
            if task.destination_paths:
                ET.SubElement(
                    target,
                    _tag("Copy"),
                    {
                        "SourceFiles": f"@({prefix}Output)",
                        "DestinationFolder": f"%({prefix}DestinationPath.Identity)",
                    },
                )

        root.append(target)
        return root

    def to_xml(self) -> bytes:
        ET.register_namespace("", MSBUILD_NAMESPACE)
        root = self.to_element()
        ET.indent(root)
        return ET.tostring(root, encoding="utf-8", xml_declaration=True)

    def write(self, path: Path) -> Path:
        path.write_bytes(self.to_xml())
        return path


class ProjectFileGenerator:
    """
    Coordinates loading metadata, staging sources and writing the
    orchestration project.
    """

    def __init__(
        self,
        settings: BuildSettings,
        *,
        provider_factory: MetadataProviderFactory | None = None,
        resolver: RuntimePackageResolver | None = None,
    ) -> None:
        self._settings = settings
        self._factory = provider_factory or MetadataProviderFactory()
        self._resolver = resolver or RuntimePackageResolver(
            metadata_path=settings.metadata_path,
            deployment_metadata_path=settings.deployment_metadata_path,
        )
        self.last_build_order: List[OrderedModule] = []
        self.last_modules: List[ModuleInfo] = []

    @property
    def output_path(self) -> Path:
        return self._settings.source_root / PROJECT_FILE_NAME

    @property
    def staging_bin_path(self) -> Path:
        return self._settings.deployment_metadata_path / BIN_FOLDER

    # Public API -------------------------------------------------------------------
    def generate(
        self,
        modules_to_build: Sequence[str] = (),
        dependency_descriptor: Optional[Path] = None,
    ) -> Path:
        """
        Stage sources and write the orchestration project.

        Without a dependency descriptor the `modules_to_build` are ordered by
        their references. With one, the descriptor's item order is used and
        `modules_to_build` is ignored.
        """

        settings = self._settings
        if not settings.metadata_path.is_dir():
            raise MissingPathError(settings.metadata_path, "Metadata directory")
        settings.deployment_metadata_path.mkdir(parents=True, exist_ok=True)

        runtime_includes = self._resolver.find_runtime_includes()
        provider = self._factory.create_provider(settings.metadata_path, runtime_includes)
        self.last_modules = provider.list_modules()

        if dependency_descriptor is not None:
            tasks = self._custom_tasks(dependency_descriptor)
        else:
            tasks = self._default_tasks(provider, modules_to_build)

        for task in tasks:
            if isinstance(task, ModuleBuildTask):
                self._copy_module_source(task.module)
        self._resolver.stage(runtime_includes)

        document = BuildProjectDocument(
            base_project=settings.resolved_base_project,
            output_path=self.staging_bin_path,
            tasks=tasks,
        )
        if not tasks:
            logger.warning("No modules or projects to build; %s will contain no build tasks", PROJECT_FILE_NAME)
        path = document.write(self.output_path)
        logger.info("Wrote %s with %d build task(s)", path, len(tasks))
        return path

    # Task planning ----------------------------------------------------------------
    def _is_binary_only(self, name: str) -> bool:
        key = module_key(name)
        for module in self.last_modules:
            if module_key(module.name) == key and module.is_runtime:
                logger.info("Module %s is binary-only; staged as runtime package, not built", module.name)
                return True
        return False

    def _default_tasks(self, provider: MetadataProvider, modules_to_build: Sequence[str]) -> List[BuildTask]:
        order = compute_build_order(provider, modules_to_build)
        self.last_build_order = [entry for entry in order if not self._is_binary_only(entry.name)]
        return [ModuleBuildTask(module=entry.name, models=entry.models) for entry in self.last_build_order]

    def _custom_tasks(self, descriptor_path: Path) -> List[BuildTask]:
        descriptor = load_dependency_descriptor(descriptor_path)
        modules = index_modules(self.last_modules)

        missing = [
            item.name for item in descriptor.metadata_items if module_key(item.name) not in modules
        ]
        if missing:
            raise UnknownModuleError(missing)

        tasks: List[BuildTask] = []
        self.last_build_order = []
        for item in descriptor.items:
            if item.type == BuildItemType.METADATA:
                module = modules[module_key(item.name)]
                if self._is_binary_only(module.name):
                    continue
                self.last_build_order.append(OrderedModule(name=module.name, models=module.model_names))
                tasks.append(ModuleBuildTask(module=module.name, models=module.model_names))
            else:
                tasks.append(self._project_task(item))
        return tasks

    def _project_task(self, item: BuildItem) -> ProjectBuildTask:
        project_path = Path(item.name.replace("\\", "/"))
        if not project_path.is_absolute():
            project_path = self._settings.source_root / project_path
        if not project_path.is_file():
            raise MissingPathError(project_path, "Project file")

        deployment = self._settings.deployment_metadata_path
        reference_paths = [self.staging_bin_path]
        reference_paths.extend(deployment / module / BIN_FOLDER for module in item.references_modules)

        destination_paths = []
        for module in item.referenced_by_modules:
            destination = deployment / module / BIN_FOLDER
            destination.mkdir(parents=True, exist_ok=True)
            destination_paths.append(destination)

        return ProjectBuildTask(
            name=project_path.stem,
            project_path=project_path,
            reference_paths=tuple(reference_paths),
            destination_paths=tuple(destination_paths),
        )

    # Staging ----------------------------------------------------------------------
    def _copy_module_source(self, module: str) -> None:
        source = self._settings.metadata_path / module
        if not source.is_dir():
            raise MissingPathError(source, f"Source directory for module {module}")
        target = self._settings.deployment_metadata_path / module
        shutil.copytree(source, target, dirs_exist_ok=True)
        logger.debug("Copied %s to %s", source, target)
