from __future__ import annotations

import subprocess
import zipfile
from pathlib import Path

import pytest

from axbuild.errors import StructuralMismatchError, ToolError
from axbuild.packaging import NuspecDocument
from axbuild.packaging.tools import ModelExporter, NuGetPackager, ToolResult, ZipCompressor, retry, run_with_retry
from conftest import FakeToolRunner


def staged_files(tmp_path: Path) -> tuple[Path, list[Path]]:
    base = tmp_path / "Module"
    (base / "bin").mkdir(parents=True)
    first = base / "bin" / "Dynamics.AX.Fleet.dll"
    second = base / "readme.txt"
    first.write_bytes(b"MZ")
    second.write_text("hello", encoding="utf-8")
    return base, [first, second]


def test_retry_returns_first_success():
    attempts = []

    def flaky(attempt: int) -> str:
        attempts.append(attempt)
        if attempt < 3:
            raise ToolError("zip", "busy")
        return "done"

    assert retry(flaky, max_attempts=3) == "done"
    assert attempts == [1, 2, 3]


def test_retry_does_not_retry_other_errors():
    attempts = []

    def broken(attempt: int) -> None:
        attempts.append(attempt)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        retry(broken, max_attempts=3)
    assert attempts == [1]


def test_zip_succeeds_on_second_attempt(tmp_path):
    runner = FakeToolRunner(failures={"a": 1})
    base, files = staged_files(tmp_path)
    archive = tmp_path / "out" / "fleet.zip"

    result = ZipCompressor("7za", runner).compress(files, base, archive, error_log=tmp_path / "zip.log")

    assert result == archive
    assert len(runner.calls_for("a")) == 2
    assert list(archive.parent.glob("*.zip")) == [archive]
    with zipfile.ZipFile(archive) as produced:
        assert sorted(produced.namelist()) == ["bin/Dynamics.AX.Fleet.dll", "readme.txt"]
    assert not list(archive.parent.glob("*.filelist.txt"))


def test_exhausted_retries_carry_error_log(tmp_path):
    runner = FakeToolRunner(failures={"a": 5})
    base, files = staged_files(tmp_path)

    with pytest.raises(ToolError) as excinfo:
        ZipCompressor("7za", runner, retries=2).compress(
            files, base, tmp_path / "fleet.zip", error_log=tmp_path / "zip.log"
        )

    assert len(runner.calls_for("a")) == 3
    assert excinfo.value.exit_code == 1
    assert excinfo.value.log.count("a failed") == 3
    assert "--- attempt 3 ---" in excinfo.value.log


def test_partial_output_is_removed_before_each_attempt(tmp_path):
    output = tmp_path / "out.zip"
    output.write_bytes(b"partial")
    seen = []

    class Runner:
        def run(self, args, *, cwd=None):
            seen.append(output.exists())
            output.write_bytes(b"complete")
            return ToolResult(args=tuple(args), exit_code=0)

    run_with_retry(Runner(), ["tool"], tool="tool", output_path=output, error_log=tmp_path / "tool.log")

    assert seen == [False]
    assert output.read_bytes() == b"complete"


def test_launch_error_tolerated_when_output_produced(tmp_path):
    output = tmp_path / "out.zip"

    class Runner:
        def run(self, args, *, cwd=None):
            output.write_bytes(b"data")
            raise subprocess.SubprocessError("wait failed")

    result = run_with_retry(Runner(), ["tool"], tool="tool", output_path=output, error_log=tmp_path / "tool.log")

    assert result == output


def test_launch_error_tolerated_after_earlier_failed_attempt(tmp_path):
    output = tmp_path / "out.zip"
    calls = []

    class Runner:
        def run(self, args, *, cwd=None):
            calls.append(args)
            if len(calls) == 1:
                return ToolResult(args=tuple(args), exit_code=1, stderr="locked")
            output.write_bytes(b"data")
            raise subprocess.SubprocessError("wait failed")

    result = run_with_retry(Runner(), ["tool"], tool="tool", output_path=output, error_log=tmp_path / "tool.log")

    assert result == output
    assert len(calls) == 2
    assert output.read_bytes() == b"data"


def test_launch_error_with_stderr_is_not_tolerated(tmp_path):
    output = tmp_path / "out.zip"

    class Runner:
        def run(self, args, *, cwd=None):
            output.write_bytes(b"data")
            raise subprocess.TimeoutExpired(args, 5, stderr=b"disk full")

    with pytest.raises(ToolError):
        run_with_retry(
            Runner(), ["tool"], tool="tool", output_path=output, error_log=tmp_path / "tool.log", retries=0
        )


def test_launch_error_without_output_is_retried(tmp_path):
    calls = []

    class Runner:
        def run(self, args, *, cwd=None):
            calls.append(args)
            raise FileNotFoundError("no such tool")

    with pytest.raises(ToolError) as excinfo:
        run_with_retry(
            Runner(), ["tool"], tool="tool", output_path=tmp_path / "out", error_log=tmp_path / "tool.log", retries=1
        )

    assert len(calls) == 2
    assert "FileNotFoundError" in excinfo.value.log


def test_missing_output_is_a_failure(tmp_path):
    class Runner:
        def run(self, args, *, cwd=None):
            return ToolResult(args=tuple(args), exit_code=0)

    with pytest.raises(ToolError) as excinfo:
        run_with_retry(
            Runner(), ["tool"], tool="tool", output_path=tmp_path / "out", error_log=tmp_path / "tool.log", retries=0
        )

    assert "was not produced" in excinfo.value.log


def test_nuget_pack_produces_expected_package(tmp_path):
    runner = FakeToolRunner(failures={"pack": 1})
    nuspec = NuspecDocument(
        id="dynamicsax-fleet", version="1.0.0.0", authors="Contoso", description="Runtime binaries for the Fleet module."
    ).write(tmp_path)
    (tmp_path / "tools").mkdir()

    package = NuGetPackager("nuget", runner).pack(
        nuspec,
        tmp_path / "out",
        package_id="dynamicsax-fleet",
        version="1.0.0.0",
        error_log=tmp_path / "nuget.log",
    )

    assert package == tmp_path / "out" / "dynamicsax-fleet.1.0.0.nupkg"
    assert package.is_file()
    assert len(runner.calls_for("pack")) == 2


def test_model_export_picks_first_match(tmp_path, caplog):
    output_dir = tmp_path / "export"
    output_dir.mkdir()
    (output_dir / "Fleet-0.9.0.0.axmodel").write_bytes(b"old")

    exported = ModelExporter("ModelUtil.exe", FakeToolRunner()).export("Fleet", tmp_path, output_dir)

    assert exported.name == "Fleet-0.9.0.0.axmodel"
    assert "produced 2 files" in caplog.text


def test_model_export_without_output_is_structural_mismatch(tmp_path):
    class Runner:
        def run(self, args, *, cwd=None):
            return ToolResult(args=tuple(args), exit_code=0)

    with pytest.raises(StructuralMismatchError):
        ModelExporter("ModelUtil.exe", Runner()).export("Fleet", tmp_path, tmp_path / "export")


def test_model_export_failure_is_tool_error(tmp_path):
    runner = FakeToolRunner(failures={"-export": 1})

    with pytest.raises(ToolError):
        ModelExporter("ModelUtil.exe", runner).export("Fleet", tmp_path, tmp_path / "export")
