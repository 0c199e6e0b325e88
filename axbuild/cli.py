"""
Helpers shared by the axbuild command line entry points.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = -1


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable diagnostic logging, including full tracebacks on failure.",
    )
    parser.add_argument(
        "--raise-errors",
        action="store_true",
        help="Re-raise fatal errors instead of converting them to exit code -1.",
    )


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def split_names(values: Optional[Iterable[str]]) -> List[str]:
    """Accept both repeated arguments and comma/semicolon separated lists."""

    names: List[str] = []
    for value in values or ():
        names.extend(part.strip() for part in value.replace(";", ",").split(","))
    return [name for name in names if name]


def write_error_log(path: Path, exc: BaseException) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{type(exc).__name__}: {exc}\n", encoding="utf-8")
    except OSError as write_error:
        logger.error("Could not write error log %s: %s", path, write_error)


def clear_error_log(path: Optional[Path]) -> None:
    if path is not None and path.exists():
        path.unlink()


def run_guarded(
    action: Callable[[], object],
    *,
    error_log: Optional[Path],
    raise_errors: bool = False,
) -> int:
    """
    Run `action`, converting any failure into a logged summary, an error log
    file and exit code -1.
    """

    clear_error_log(error_log)
    try:
        action()
    except Exception as exc:
        logger.error("%s", exc)
        logger.debug("Failure details", exc_info=True)
        if error_log is not None:
            write_error_log(error_log, exc)
        if raise_errors:
            raise
        return EXIT_FAILURE
    return EXIT_SUCCESS
