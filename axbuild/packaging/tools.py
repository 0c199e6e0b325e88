"""
External tool invocation: zip compression, NuGet packing and model export.

Each tool call goes through a `ToolRunner`, which returns a `ToolResult` with
the captured output and exit code. Transient failures are retried by
`retry`, a bounded-retry combinator.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TypeVar

from axbuild.errors import StructuralMismatchError, ToolError
from axbuild.packaging.naming import nupkg_file_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

LAUNCH_ERRORS = (OSError, subprocess.SubprocessError)


@dataclass(frozen=True)
class ToolResult:
    args: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class ToolRunner:
    """Runs external processes and waits for them to exit."""

    def run(self, args: Sequence[str], *, cwd: Optional[Path] = None) -> ToolResult:
        logger.debug("Running %s", " ".join(args))
        completed = subprocess.run(
            list(args),
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            check=False,
        )
        return ToolResult(
            args=tuple(args),
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ToolError)


def retry(
    fn: Callable[[int], T],
    *,
    max_attempts: int,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    description: str = "operation",
) -> T:
    """
    Call `fn(attempt)` until it succeeds or `max_attempts` is reached.

    Errors rejected by `is_retryable` propagate immediately. The error of the
    last attempt propagates once attempts are exhausted.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return fn(attempt)
        except Exception as exc:
            if attempt >= max_attempts or not is_retryable(exc):
                raise
            logger.warning("%s failed (attempt %d of %d): %s", description, attempt, max_attempts, exc)
    raise AssertionError("unreachable")


def _read_log(path: Path) -> str:
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8", errors="replace")


def _append_log(path: Path, attempt: int, text: str) -> None:
    if not text.strip():
        return
    with path.open("a", encoding="utf-8") as handle:
        handle.write(f"--- attempt {attempt} ---\n{text.rstrip()}\n")


def run_with_retry(
    runner: ToolRunner,
    args: Sequence[str],
    *,
    tool: str,
    output_path: Path,
    error_log: Path,
    retries: int = 2,
    cwd: Optional[Path] = None,
) -> Path:
    """
    Run a tool expected to produce `output_path`, retrying up to `retries`
    additional times.

    Partial output is removed before every attempt. A launch error is
    tolerated when the tool nevertheless left a non-empty output file and
    reported no errors during that attempt; earlier failed attempts do not
    count against it. On final failure the raised `ToolError`
    carries the error log accumulated across attempts.
    """

    error_log.parent.mkdir(parents=True, exist_ok=True)
    error_log.write_text("", encoding="utf-8")

    def attempt(number: int) -> Path:
        if output_path.exists():
            output_path.unlink()

        start = len(_read_log(error_log))
        try:
            result = runner.run(args, cwd=cwd)
        except LAUNCH_ERRORS as exc:
            produced = output_path.is_file() and output_path.stat().st_size > 0
            reported = _read_log(error_log)[start:].strip() or getattr(exc, "stderr", None)
            if produced and not reported:
                logger.warning("%s raised %s but produced %s; accepting output", tool, exc, output_path.name)
                return output_path
            _append_log(error_log, number, f"{type(exc).__name__}: {exc}")
            raise ToolError(tool, str(exc), log=_read_log(error_log)) from exc

        _append_log(error_log, number, result.stderr or (result.stdout if not result.succeeded else ""))
        if not result.succeeded:
            raise ToolError(tool, "failed", exit_code=result.exit_code, log=_read_log(error_log))
        if not output_path.is_file():
            _append_log(error_log, number, f"expected output {output_path} was not produced")
            raise ToolError(tool, f"did not produce {output_path.name}", log=_read_log(error_log))
        return output_path

    return retry(attempt, max_attempts=retries + 1, description=tool)


class ZipCompressor:
    """Compresses a list of files with a 7-Zip compatible command line tool."""

    def __init__(self, executable: str, runner: ToolRunner | None = None, *, retries: int = 2) -> None:
        self.executable = executable
        self.runner = runner or ToolRunner()
        self.retries = retries

    def compress(self, files: Sequence[Path], base_dir: Path, archive: Path, *, error_log: Path) -> Path:
        """Add `files` (relative to `base_dir`) to a new zip `archive`."""

        archive.parent.mkdir(parents=True, exist_ok=True)
        list_file = archive.with_name(f"{archive.stem}.filelist.txt")
        relative: List[str] = [str(path.relative_to(base_dir)) for path in files]
        list_file.write_text("\n".join(relative) + "\n", encoding="utf-8")
        try:
            return run_with_retry(
                self.runner,
                [self.executable, "a", "-tzip", str(archive), f"@{list_file}"],
                tool="zip",
                output_path=archive,
                error_log=error_log,
                retries=self.retries,
                cwd=base_dir,
            )
        finally:
            list_file.unlink(missing_ok=True)


class NuGetPackager:
    def __init__(self, executable: str, runner: ToolRunner | None = None, *, retries: int = 2) -> None:
        self.executable = executable
        self.runner = runner or ToolRunner()
        self.retries = retries

    def pack(
        self,
        nuspec_path: Path,
        output_dir: Path,
        *,
        package_id: str,
        version: str,
        error_log: Path,
    ) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        return run_with_retry(
            self.runner,
            [
                self.executable,
                "pack",
                str(nuspec_path),
                "-OutputDirectory",
                str(output_dir),
                "-NoPackageAnalysis",
                "-NonInteractive",
            ],
            tool="nuget",
            output_path=output_dir / nupkg_file_name(package_id, version),
            error_log=error_log,
            retries=self.retries,
            cwd=nuspec_path.parent,
        )


class ModelExporter:
    """Exports a model from the metadata store to an `.axmodel` file."""

    def __init__(self, executable: str, runner: ToolRunner | None = None) -> None:
        self.executable = executable
        self.runner = runner or ToolRunner()

    def export(self, model: str, metadata_path: Path, output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        result = self.runner.run(
            [
                self.executable,
                "-export",
                f"-metadatastorepath={metadata_path}",
                f"-modelname={model}",
                f"-outputpath={output_dir}",
            ]
        )
        if not result.succeeded:
            raise ToolError("model export", f"export of {model} failed", exit_code=result.exit_code, log=result.stderr)

        matches = sorted(output_dir.glob(f"{model}-*.axmodel"))
        if not matches:
            raise StructuralMismatchError(
                f"Model export of {model} produced no file matching {model}-*.axmodel in {output_dir}"
            )
        if len(matches) > 1:
            logger.warning(
                "Model export of %s produced %d files; using %s",
                model,
                len(matches),
                matches[0].name,
            )
        return matches[0]
