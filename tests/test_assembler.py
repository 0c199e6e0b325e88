from __future__ import annotations

import json
import zipfile
from pathlib import Path

import pytest

from axbuild.errors import MissingPathError, StructuralMismatchError, ToolError
from axbuild.metadata import DiskMetadataProvider
from axbuild.metadata.models import index_modules
from axbuild.packaging import ExclusionPolicy, NuspecDocument, PackageAssembler, PackageType, StagingFilter
from axbuild.packaging.assembler import STAGING_FILTERS
from conftest import FakeToolRunner


@pytest.fixture
def fleet(metadata):
    metadata.add_model("Fleet", references=["Base", "ApplicationPlatform"], version=(1, 2, 3, 4))
    metadata.add_model("Base")
    metadata.add_assembly("Fleet")
    module_dir = metadata.root / "Fleet"
    (module_dir / "XppMetadata").mkdir()
    (module_dir / "XppMetadata" / "Fleet.xml").write_text("<xpp />", encoding="utf-8")
    (module_dir / "bin" / "Old.dll.delete").write_bytes(b"")
    (module_dir / "Resources").mkdir()
    (module_dir / "Resources" / "logo.png").write_bytes(b"png")
    modules = index_modules(DiskMetadataProvider(metadata.root).list_modules())
    return modules["fleet"], modules, module_dir


def relative(paths, root: Path):
    return [path.relative_to(root).as_posix() for path in paths]


def test_runtime_filter_excludes_metadata_and_deleted_files(fleet):
    _, _, module_dir = fleet

    selected = relative(STAGING_FILTERS[PackageType.RUN].select(module_dir), module_dir)

    assert selected == ["Resources/logo.png", "bin/Dynamics.AX.Fleet.dll"]


def test_compile_filter_includes_only_build_folders(fleet):
    _, _, module_dir = fleet

    selected = relative(STAGING_FILTERS[PackageType.COMPILE].select(module_dir), module_dir)

    assert selected == ["Descriptor/Fleet.xml", "XppMetadata/Fleet.xml", "bin/Dynamics.AX.Fleet.dll"]


def test_form_adaptor_filter_matches_pattern(tmp_path):
    (tmp_path / "bin").mkdir()
    (tmp_path / "bin" / "Dynamics.AX.Fleet.FormAdaptor.dll").write_bytes(b"MZ")
    (tmp_path / "bin" / "Dynamics.AX.Fleet.dll").write_bytes(b"MZ")

    selected = relative(STAGING_FILTERS[PackageType.FORMADAPTOR].select(tmp_path), tmp_path)

    assert selected == ["bin/Dynamics.AX.Fleet.FormAdaptor.dll"]


def test_filter_folder_names_are_case_insensitive():
    staging = StagingFilter(exclude_folders=("XppMetadata",))

    assert not staging.accepts(Path("xppmetadata/a.xml"))
    assert staging.accepts(Path("a.xml"))


def test_create_package(packaging_settings, fleet):
    module, modules, module_dir = fleet
    runner = FakeToolRunner()
    policy = ExclusionPolicy.create(platform_packages=["ApplicationPlatform"])

    package = PackageAssembler(packaging_settings, policy, runner=runner).create_package(
        module, PackageType.RUN, module_dir=module_dir, modules=modules
    )

    assert package == packaging_settings.output_path / "dynamicsax-fleet.1.2.3.4.nupkg"
    with zipfile.ZipFile(package) as nupkg:
        names = set(nupkg.namelist())
        assert {
            "dynamicsax-fleet.1.2.3.4.nuspec",
            "tools/Install.ps1",
            "tools/Uninstall.ps1",
            "tools/InstallConfig.json",
            "tools/dynamicsax-fleet.zip",
        } <= names
        config = json.loads(nupkg.read("tools/InstallConfig.json"))
        nuspec_text = nupkg.read("dynamicsax-fleet.1.2.3.4.nuspec")

    assert config == {"PackageName": "dynamicsax-fleet", "ZipName": "dynamicsax-fleet.zip"}
    assert b"dynamicsax-base" in nuspec_text
    assert b"applicationplatform" not in nuspec_text.lower()
    assert not (packaging_settings.working_path / "dynamicsax-fleet").exists()


def test_nuspec_dependencies_in_package(packaging_settings, fleet, tmp_path):
    module, modules, module_dir = fleet
    PackageAssembler(packaging_settings, ExclusionPolicy(), runner=FakeToolRunner()).create_package(
        module, PackageType.RUN, module_dir=module_dir, modules=modules
    )

    package = packaging_settings.output_path / "dynamicsax-fleet.1.2.3.4.nupkg"
    with zipfile.ZipFile(package) as nupkg:
        nupkg.extract("dynamicsax-fleet.1.2.3.4.nuspec", tmp_path / "extracted")
    document = NuspecDocument.parse(tmp_path / "extracted" / "dynamicsax-fleet.1.2.3.4.nuspec")

    assert [dependency.id for dependency in document.dependencies] == [
        "dynamicsax-base",
        "dynamicsax-applicationplatform",
    ]
    assert {dependency.version for dependency in document.dependencies} == {"0.0.0.0"}


def test_working_directory_removed_after_failure(packaging_settings, fleet):
    module, modules, module_dir = fleet
    runner = FakeToolRunner(failures={"pack": 10})

    with pytest.raises(ToolError):
        PackageAssembler(packaging_settings, ExclusionPolicy(), runner=runner).create_package(
            module, PackageType.RUN, module_dir=module_dir, modules=modules
        )

    assert not (packaging_settings.working_path / "dynamicsax-fleet").exists()
    assert not list(packaging_settings.output_path.glob("*.nupkg"))


def test_missing_install_script(packaging_settings, fleet):
    module, modules, module_dir = fleet
    (packaging_settings.template_path / "Uninstall.ps1").unlink()

    with pytest.raises(MissingPathError):
        PackageAssembler(packaging_settings, ExclusionPolicy(), runner=FakeToolRunner()).create_package(
            module, PackageType.RUN, module_dir=module_dir, modules=modules
        )
    assert not (packaging_settings.working_path / "dynamicsax-fleet").exists()


def test_nothing_to_package(packaging_settings, fleet, tmp_path):
    module, modules, _ = fleet
    empty = tmp_path / "Empty"
    (empty / "Descriptor").mkdir(parents=True)
    (empty / "Descriptor" / "Fleet.xml").write_text("<AxModelInfo />", encoding="utf-8")

    with pytest.raises(StructuralMismatchError):
        PackageAssembler(packaging_settings, ExclusionPolicy(), runner=FakeToolRunner()).create_package(
            module, PackageType.RUN, module_dir=empty, modules=modules
        )
