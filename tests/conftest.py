"""
Shared fixtures: metadata tree builders and a scripted stand-in for the
external tools (7-Zip, NuGet, ModelUtil).
"""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from xml.etree import ElementTree as ET

import pytest

from axbuild.config import BuildSettings, PackagingSettings
from axbuild.packaging.tools import ToolResult

ARRAYS_NAMESPACE = "http://schemas.microsoft.com/2003/10/Serialization/Arrays"


def descriptor_xml(
    name: str,
    *,
    module: Optional[str] = None,
    layer: str | int = 14,
    references: Sequence[str] = (),
    version: Sequence[int] = (1, 0, 0, 0),
) -> str:
    refs = "".join(f"<d2p1:string>{reference}</d2p1:string>" for reference in references)
    major, minor, build, revision = version
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<AxModelInfo xmlns:i="http://www.w3.org/2001/XMLSchema-instance">'
        f"<DisplayName>{name}</DisplayName>"
        f"<Layer>{layer}</Layer>"
        f"<ModelModule>{module or name}</ModelModule>"
        f'<ModuleReferences xmlns:d2p1="{ARRAYS_NAMESPACE}">{refs}</ModuleReferences>'
        f"<Name>{name}</Name>"
        "<Publisher>Contoso</Publisher>"
        f"<VersionBuild>{build}</VersionBuild>"
        f"<VersionMajor>{major}</VersionMajor>"
        f"<VersionMinor>{minor}</VersionMinor>"
        f"<VersionRevision>{revision}</VersionRevision>"
        "</AxModelInfo>"
    )


class MetadataTree:
    """Builds a `<root>/<Package>/Descriptor/<Model>.xml` metadata store."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def add_model(
        self,
        name: str,
        *,
        module: Optional[str] = None,
        layer: str | int = 14,
        references: Sequence[str] = (),
        version: Sequence[int] = (1, 0, 0, 0),
    ) -> Path:
        package_dir = self.root / (module or name)
        descriptor_dir = package_dir / "Descriptor"
        descriptor_dir.mkdir(parents=True, exist_ok=True)
        (descriptor_dir / f"{name}.xml").write_text(
            descriptor_xml(name, module=module, layer=layer, references=references, version=version),
            encoding="utf-8",
        )
        return package_dir

    def add_assembly(self, package: str) -> Path:
        bin_dir = self.root / package / "bin"
        bin_dir.mkdir(parents=True, exist_ok=True)
        assembly = bin_dir / f"Dynamics.AX.{package}.dll"
        assembly.write_bytes(b"MZ")
        return assembly

    def add_runtime_package(self, package: str) -> Path:
        self.add_assembly(package)
        return self.root / package


@pytest.fixture
def metadata(tmp_path: Path) -> MetadataTree:
    return MetadataTree(tmp_path / "Metadata")


@pytest.fixture
def build_settings(tmp_path: Path, metadata: MetadataTree) -> BuildSettings:
    sdk = tmp_path / "Sdk"
    (sdk / "Metadata").mkdir(parents=True)
    (sdk / "Metadata" / "Build.proj").write_text("<Project />", encoding="utf-8")
    return BuildSettings(
        metadata_path=metadata.root,
        deployment_metadata_path=tmp_path / "Packages",
        sdk_path=sdk,
    )


@pytest.fixture
def templates(tmp_path: Path) -> Path:
    template_dir = tmp_path / "Templates"
    template_dir.mkdir()
    (template_dir / "Install.ps1").write_text("# install\n", encoding="utf-8")
    (template_dir / "Uninstall.ps1").write_text("# uninstall\n", encoding="utf-8")
    with zipfile.ZipFile(template_dir / "BaseDeployablePackage.zip", "w") as base:
        base.writestr("HotfixInstallationInfo.xml", "<HotfixInstallationInfo />")
        base.writestr("AOSService/Scripts/AutoDeploy.ps1", "# deploy")
    return template_dir


@pytest.fixture
def packaging_settings(tmp_path: Path, metadata: MetadataTree, templates: Path) -> PackagingSettings:
    return PackagingSettings(
        metadata_path=metadata.root,
        output_path=tmp_path / "Output",
        working_path=tmp_path / "Work",
        template_path=templates,
    )


def nuget_file_version(version: str) -> str:
    """NuGet 3.4+ drops a zero fourth part and pads to three parts in file names."""

    numbers = [int(part) for part in version.split(".")]
    numbers += [0] * (3 - len(numbers))
    if len(numbers) == 4 and numbers[-1] == 0:
        numbers.pop()
    return ".".join(str(number) for number in numbers)


class FakeToolRunner:
    """
    Emulates the external tools by producing their expected outputs.

    `failures` maps a tool verb (`a`, `pack`, `-export`) to the number of
    leading calls that exit with code 1.
    """

    def __init__(self, failures: Optional[Dict[str, int]] = None) -> None:
        self.failures = dict(failures or {})
        self.calls: List[tuple] = []

    def verb(self, args: Sequence[str]) -> str:
        return args[1]

    def run(self, args: Sequence[str], *, cwd: Optional[Path] = None) -> ToolResult:
        self.calls.append(tuple(args))
        verb = self.verb(args)
        if self.failures.get(verb, 0) > 0:
            self.failures[verb] -= 1
            return ToolResult(args=tuple(args), exit_code=1, stderr=f"{verb} failed")

        if verb == "a":
            self._zip(args, cwd)
        elif verb == "pack":
            self._pack(args)
        elif verb == "-export":
            self._export(args)
        return ToolResult(args=tuple(args), exit_code=0, stdout="ok")

    def calls_for(self, verb: str) -> List[tuple]:
        return [call for call in self.calls if call[1] == verb]

    def _zip(self, args: Sequence[str], cwd: Optional[Path]) -> None:
        archive = Path(args[3])
        list_file = Path(args[4][1:])
        base = Path(cwd) if cwd else Path.cwd()
        with zipfile.ZipFile(archive, "w") as target:
            for line in list_file.read_text(encoding="utf-8").splitlines():
                if line.strip():
                    target.write(base / line, arcname=line.replace("\\", "/"))

    def _pack(self, args: Sequence[str]) -> None:
        nuspec = Path(args[2])
        output_dir = Path(args[args.index("-OutputDirectory") + 1])
        fields = {element.tag.rsplit("}", 1)[-1]: (element.text or "").strip() for element in ET.parse(nuspec).iter()}
        file_name = f"{fields['id']}.{nuget_file_version(fields['version'])}.nupkg"
        with zipfile.ZipFile(output_dir / file_name, "w") as package:
            package.write(nuspec, arcname=nuspec.name)
            for path in sorted((nuspec.parent / "tools").rglob("*")):
                if path.is_file():
                    package.write(path, arcname=f"tools/{path.relative_to(nuspec.parent / 'tools').as_posix()}")

    def _export(self, args: Sequence[str]) -> None:
        options = dict(arg[1:].split("=", 1) for arg in args[2:])
        output_dir = Path(options["outputpath"])
        (output_dir / f"{options['modelname']}-1.0.0.0.axmodel").write_bytes(b"axmodel")


@pytest.fixture
def tool_runner() -> FakeToolRunner:
    return FakeToolRunner()
