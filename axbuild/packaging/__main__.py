"""
Command line entry point that packages built modules into a deployable
runtime package.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from axbuild.cli import add_common_arguments, configure_logging, run_guarded, split_names
from axbuild.config import PackagingSettings, load_packaging_settings
from axbuild.packaging.builder import DeployablePackageBuilder


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create NuGet packages for built modules and merge them into a deployable package."
    )
    parser.add_argument("--metadata-path", type=Path, help="Directory of built module packages (AXBUILD_METADATA_PATH).")
    parser.add_argument("--output-path", type=Path, help="Directory receiving the packages (AXBUILD_OUTPUT_PATH).")
    parser.add_argument("--working-path", type=Path, help="Scratch directory. Defaults to <output>/_work.")
    parser.add_argument(
        "--template-path",
        type=Path,
        help="Directory with Install.ps1, Uninstall.ps1 and BaseDeployablePackage.zip (AXBUILD_TEMPLATE_PATH).",
    )
    parser.add_argument("--nuget-path", help="NuGet executable (AXBUILD_NUGET_PATH).")
    parser.add_argument("--zip-tool-path", help="7-Zip compatible executable (AXBUILD_ZIP_TOOL_PATH).")
    parser.add_argument("--modelutil-path", help="Model export executable (AXBUILD_MODELUTIL_PATH).")
    parser.add_argument("--product-info-path", type=Path, help="Product information JSON of the installed release.")
    parser.add_argument("--package-version", help="Version of the deployable package (AXBUILD_PACKAGE_VERSION).")
    parser.add_argument(
        "--strict-version-check",
        action="store_true",
        default=None,
        help="Pin package dependencies to the exact versions found in metadata.",
    )
    parser.add_argument(
        "--exclude",
        nargs="*",
        default=[],
        help="Modules never packaged; comma separated lists are accepted.",
    )
    parser.add_argument(
        "--modules",
        nargs="*",
        default=[],
        help="Package only these modules; comma separated lists are accepted.",
    )
    parser.add_argument("--source-package", action="store_true", help="Also export models into a source package.")
    parser.add_argument("--error-log", type=Path, help="File written with the error message when packaging fails.")
    add_common_arguments(parser)
    return parser


def run(args: argparse.Namespace, settings: PackagingSettings) -> None:
    builder = DeployablePackageBuilder(settings)
    result = builder.build(split_names(args.modules), include_source=args.source_package)
    for package in result.module_packages:
        print(f"Created {package}")
    if result.deployable_package is not None:
        print(f"Deployable package {result.deployable_package}")
    if result.source_package is not None:
        print(f"Source package {result.source_package}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    excluded = split_names(args.exclude)
    overrides = {
        "metadata_path": args.metadata_path,
        "output_path": args.output_path,
        "working_path": args.working_path,
        "template_path": args.template_path,
        "nuget_path": args.nuget_path,
        "zip_tool_path": args.zip_tool_path,
        "modelutil_path": args.modelutil_path,
        "product_info_path": args.product_info_path,
        "package_version": args.package_version,
        "strict_version_check": args.strict_version_check,
        "excluded_modules": ",".join(excluded) if excluded else None,
    }
    return run_guarded(
        lambda: run(args, load_packaging_settings(overrides)),
        error_log=args.error_log,
        raise_errors=args.raise_errors,
    )


if __name__ == "__main__":
    raise SystemExit(main())
