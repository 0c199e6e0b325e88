"""
Command line entry point that generates `Metadata_Project_Build.proj`.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from axbuild.cli import add_common_arguments, configure_logging, run_guarded, split_names
from axbuild.config import BuildSettings, error_log_path, load_build_settings
from axbuild.projects.generator import ProjectFileGenerator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate the MSBuild orchestration project for Dynamics 365 F&O modules."
    )
    parser.add_argument(
        "--metadata-path",
        type=Path,
        help="Metadata directory holding the module sources (AXBUILD_METADATA_PATH).",
    )
    parser.add_argument(
        "--deployment-metadata-path",
        type=Path,
        help="Deployment packages directory sources are staged into (AXBUILD_DEPLOYMENT_METADATA_PATH).",
    )
    parser.add_argument(
        "--sdk-path",
        type=Path,
        help="Dynamics SDK directory containing the base build project (AXBUILD_SDK_PATH).",
    )
    parser.add_argument(
        "--base-project",
        type=Path,
        help="Base build project invoked per module. Defaults to <sdk>/Metadata/Build.proj.",
    )
    parser.add_argument(
        "--modules",
        nargs="*",
        default=[],
        help="Modules to build; comma separated lists are accepted.",
    )
    parser.add_argument(
        "--dependency-descriptor",
        type=Path,
        help="Optional XML listing build items in explicit order, including .NET projects.",
    )
    parser.add_argument(
        "--error-log",
        type=Path,
        help="File written with the error message when generation fails.",
    )
    add_common_arguments(parser)
    return parser


def run(args: argparse.Namespace, settings: BuildSettings) -> None:
    generator = ProjectFileGenerator(settings)
    path = generator.generate(
        modules_to_build=split_names(args.modules),
        dependency_descriptor=args.dependency_descriptor,
    )
    print(f"Generated {path}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    overrides = {
        "metadata_path": args.metadata_path,
        "deployment_metadata_path": args.deployment_metadata_path,
        "sdk_path": args.sdk_path,
        "base_project": args.base_project,
        "error_log": args.error_log,
    }
    return run_guarded(
        lambda: run(args, load_build_settings(overrides)),
        error_log=error_log_path(overrides),
        raise_errors=args.raise_errors,
    )


if __name__ == "__main__":
    raise SystemExit(main())
