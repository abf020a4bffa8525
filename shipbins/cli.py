"""Command-line interface for shipbins."""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any, Callable

from rich.markup import escape

from . import __version__
from .archive import ArchiveError, verify_archive
from .build import build_matrix
from .checksums import verify_checksum_manifest, write_checksum_manifest
from .config import ProjectConfig, ReleaseConfig
from .publish import publish_channels
from .render import render_manifests
from .utils import ReleaseError, console, log, setup_logging

Command = Callable[[argparse.Namespace, ProjectConfig, ReleaseConfig], None]


def build(_args: Any, project: ProjectConfig, release: ReleaseConfig) -> None:
    """Build, archive and package every target."""
    build_matrix(project, release)


def checksums(_args: Any, project: ProjectConfig, _release: ReleaseConfig) -> None:
    """Write the checksum manifest of the artifacts directory."""
    write_checksum_manifest(project.artifacts_dir, project.checksum_file)


def render(_args: Any, project: ProjectConfig, release: ReleaseConfig) -> None:
    """Render the manifest of every channel."""
    render_manifests(project, release)


def prepare_release(args: Any, project: ProjectConfig, release: ReleaseConfig) -> None:
    """Build everything, checksum it, then render the channel manifests."""
    build(args, project, release)
    checksums(args, project, release)
    render(args, project, release)


def publish_release(args: argparse.Namespace, project: ProjectConfig, release: ReleaseConfig) -> None:
    """Push the rendered manifests to every channel repository."""
    publish_channels(project, release, verify_downloads=args.verify_downloads)


def verify(_args: Any, project: ProjectConfig, _release: ReleaseConfig) -> None:
    """Check the artifacts against the checksum manifest and the archive layout."""
    problems = verify_checksum_manifest(project.checksum_path)
    for target in project.build_targets:
        expected = [*project.archive_files, target.binary_entry_name(project.project)]
        try:
            verify_archive(project.artifacts_dir / target.archive_filename(project.project), expected)
        except ArchiveError as e:
            problems.append(str(e))

    for problem in problems:
        log(problem, "error", "verify:")
    if problems:
        msg = f"Verification found {len(problems)} problem(s)"
        raise ReleaseError(msg)
    log("all artifacts verified", "success", "verify:")


def print_version(_args: Any, _project: ProjectConfig, _release: ReleaseConfig) -> None:
    console.print(f"[yellow]shipbins[/] [bold]v{__version__}[/]")


COMMANDS: dict[str, tuple[Command, str]] = {
    "prepare": (prepare_release, "Build, checksum and render manifests"),
    "build": (build, "Build, archive and package every target"),
    "checksums": (checksums, "Write the artifact checksum manifest"),
    "render": (render, "Render the distribution manifests"),
    "publish": (publish_release, "Push the rendered manifests to their repositories"),
    "verify": (verify, "Verify artifacts against the checksum manifest"),
    "version": (print_version, "Print version information"),
}


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        description="shipbins - Build, package and publish CLI binary releases",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--config-file",
        type=str,
        help="Path to configuration file (default: ./shipbins.yaml)",
    )
    parser.add_argument("--version-no", help="Release version [env: VERSION_NO]")
    parser.add_argument("--date", help="Build date [env: DATE]")
    parser.add_argument("--commit-url", help="URL of the released commit [env: COMMIT_URL]")
    parser.add_argument("--nfpm-version", help="nfpm image version [env: NFPM_VERSION]")
    parser.add_argument("--github-token", help="Token used to push manifests [env: GITHUB_TOKEN]")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Timeout in seconds for each subprocess and network call, 0 disables [env: SHIPBINS_TIMEOUT]",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")
    for name, (func, help_text) in COMMANDS.items():
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.set_defaults(func=func)
        if name == "publish":
            command_parser.add_argument(
                "--verify-downloads",
                action="store_true",
                help="Check that each channel's download URL exists before publishing",
            )

    return parser


def release_config_from_args(args: argparse.Namespace) -> ReleaseConfig:
    """Options win over environment variables, which win over defaults."""
    return ReleaseConfig.from_env(
        os.environ,
        version=args.version_no,
        date=args.date,
        commit_url=args.commit_url,
        nfpm_version=args.nfpm_version,
        github_token=args.github_token,
        timeout=args.timeout,
    )


def _report_failures(error: ReleaseError, indent: int = 1) -> None:
    for label, failure in error.failures.items():
        console.print(f"{'  ' * indent}[red]- {escape(label)}: {escape(str(failure))}[/red]")
        if isinstance(failure, ReleaseError):
            _report_failures(failure, indent + 1)


def main(argv: list[str] | None = None) -> None:
    """Main function to parse arguments and execute commands."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Setup logging
    setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(2)

    try:
        project = ProjectConfig.load_from_file(args.config_file)
        release = release_config_from_args(args)
        args.func(args, project, release)
    except ReleaseError as e:
        console.print(f"❌ [bold red]Error: {escape(e.message)}[/bold red]")
        _report_failures(e)
        sys.exit(1)
    except Exception as e:
        console.print(f"❌ [bold red]Error: {escape(str(e))}[/bold red]")
        if args.verbose:
            console.print_exception()
        sys.exit(1)


if __name__ == "__main__":
    main()
