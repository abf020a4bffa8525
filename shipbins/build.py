"""Build, archive and package the binary for every target platform."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from .archive import write_archive
from .config import ConfigError
from .utils import log, nix_path, run_command, run_in_parallel

if TYPE_CHECKING:
    from .config import BuildTarget, ProjectConfig, ReleaseConfig


def prepare_output_dirs(project: ProjectConfig) -> None:
    """Start from an empty dist directory with the artifacts directory in place."""
    if project.dist_dir.exists():
        shutil.rmtree(project.dist_dir)
        log(f"rm -rf {project.dist_dir}", "info", "prepare:")
    project.artifacts_dir.mkdir(parents=True, exist_ok=True)
    log(f"mkdir -p {project.artifacts_dir}", "info", "prepare:")


def ldflags(release: ReleaseConfig) -> str:
    """Link-time variables embedding the release metadata in the binary."""
    return (
        f"-X main.versionNo={release.version} "
        f"-X main.commitUrl={release.commit_url} "
        f"-X main.date={release.date}"
    )


def go_build_command(
    target: BuildTarget,
    project: ProjectConfig,
    release: ReleaseConfig,
) -> tuple[list[str], dict[str, str]]:
    """Command line and environment that cross-compile ``target``."""
    output = project.dist_dir / target.binary_filename(project.project)
    args = ["go", "build", "-ldflags", ldflags(release), "-o", str(output), "."]
    env = {"CGO_ENABLED": "0", "GOOS": target.os, "GOARCH": target.arch}
    return args, env


def build_binary(target: BuildTarget, project: ProjectConfig, release: ReleaseConfig) -> Path:
    """Compile the binary for one target."""
    prefix = f"go build {target.os}:"
    args, env = go_build_command(target, project, release)
    run_command(args, prefix=prefix, env=env, cwd=project.project_dir, timeout=release.timeout)
    binary = project.dist_dir / target.binary_filename(project.project)
    log(f"built {binary}", "success", prefix)
    return binary


def create_target_archive(target: BuildTarget, project: ProjectConfig) -> Path:
    """Package the documentation files and the binary into the platform archive."""
    entries = [(name, project.project_dir / name) for name in project.archive_files]
    entries.append(
        (
            target.binary_entry_name(project.project),
            project.dist_dir / target.binary_filename(project.project),
        ),
    )
    archive = project.artifacts_dir / target.archive_filename(project.project)
    write_archive(archive, entries, target.archive_format)
    log(f"packaged {archive}", "success", f"archive {target.os}:")
    return archive


def nfpm_image(project: ProjectConfig, release: ReleaseConfig) -> str:
    return f"{project.nfpm_image}:v{release.nfpm_version}"


def nfpm_command(
    kind: str,
    target: BuildTarget,
    project: ProjectConfig,
    release: ReleaseConfig,
) -> list[str]:
    """Docker command line that produces one native package with nfpm."""
    try:
        relative = project.artifacts_dir.relative_to(project.project_dir)
    except ValueError:
        msg = f"{project.artifacts_dir} must be inside {project.project_dir} to be visible to nfpm"
        raise ConfigError(msg) from None

    mount = nix_path(project.project_dir)
    package = relative.as_posix() + "/" + target.package_filename(project.project, kind)
    return [
        "docker", "run", "--rm",
        "-v", f"{project.project_dir}:{mount}",
        "-w", mount,
        "-e", f"VERSION={release.version}",
        nfpm_image(project, release),
        "pkg", "--target", f"./{package}",
    ]  # fmt: skip


def build_native_packages(
    target: BuildTarget,
    project: ProjectConfig,
    release: ReleaseConfig,
) -> None:
    """Pull the nfpm image then build every native package kind concurrently."""
    image = nfpm_image(project, release)
    run_command(["docker", "pull", image], prefix="nfpm:", timeout=release.timeout)

    def package(kind: str) -> None:
        prefix = f"nfpm({kind}):"
        run_command(nfpm_command(kind, target, project, release), prefix=prefix, timeout=release.timeout)
        log(f"packaged {target.package_filename(project.project, kind)}", "success", prefix)

    run_in_parallel(
        {f"nfpm({kind})": (lambda kind=kind: package(kind)) for kind in project.native_packages},
        "native packages",
    )


def build_target(target: BuildTarget, project: ProjectConfig, release: ReleaseConfig) -> None:
    """Compile one target, then archive and package it concurrently."""
    build_binary(target, project, release)

    jobs = {f"archive {target.os}": lambda: create_target_archive(target, project)}
    if target.builds_native_packages and project.native_packages:
        jobs[f"native packages {target.os}"] = lambda: build_native_packages(
            target,
            project,
            release,
        )
    run_in_parallel(jobs, f"{target} packaging steps")


def build_matrix(project: ProjectConfig, release: ReleaseConfig) -> None:
    """Build every configured target concurrently; fails if any target fails."""
    prepare_output_dirs(project)
    targets = project.build_targets
    log(f"Building {len(targets)} targets in parallel...", "info", "prepare:")
    run_in_parallel(
        {str(target): (lambda target=target: build_target(target, project, release)) for target in targets},
        "build targets",
    )
