"""
Exception hierarchy shared by the project-file generator and the packaging
pipeline.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Sequence


class AxBuildError(Exception):
    """Base class for all pipeline failures."""


class ConfigurationError(AxBuildError):
    """Fatal misconfiguration. Never retried."""


class MissingPathError(ConfigurationError):
    def __init__(self, path: Path | str, description: str = "Path") -> None:
        self.path = Path(path)
        super().__init__(f"{description} not found: {path}")


class MalformedDescriptorError(ConfigurationError):
    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        super().__init__(f"Malformed descriptor {path}: {reason}")


class UnknownModuleError(ConfigurationError):
    def __init__(self, names: Iterable[str]) -> None:
        self.names = tuple(names)
        super().__init__("Module(s) not found in metadata: " + ", ".join(self.names))


class CyclicDependencyError(ConfigurationError):
    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__("Cyclic module dependency: " + " -> ".join(self.cycle))


class StructuralMismatchError(AxBuildError):
    """A tool finished but its output does not have the expected shape."""


class ToolError(AxBuildError):
    """
    An external tool failed: non-zero exit code, missing output, or an
    exception raised while launching or waiting on the process.

    `log` carries the error log content accumulated across attempts.
    """

    def __init__(
        self,
        tool: str,
        message: str,
        *,
        exit_code: Optional[int] = None,
        log: str = "",
    ) -> None:
        self.tool = tool
        self.exit_code = exit_code
        self.log = log
        text = f"{tool}: {message}"
        if exit_code is not None:
            text += f" (exit code {exit_code})"
        if log.strip():
            text += f"\n{log.strip()}"
        super().__init__(text)
