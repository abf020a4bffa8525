"""Publish rendered manifests to their channel repositories."""

from __future__ import annotations

import base64
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

import requests

from .config import ConfigError
from .render import render_template
from .utils import log, run_command, run_in_parallel, unlink_if_exists

if TYPE_CHECKING:
    from .config import ProjectConfig, PublishChannel, ReleaseConfig

GIT_USERNAME = "token"


def git_auth_args(token: str) -> list[str]:
    """Git options sending ``token`` as the basic-auth password of user ``token``."""
    credentials = base64.b64encode(f"{GIT_USERNAME}:{token}".encode()).decode()
    return ["-c", f"http.extraHeader=Authorization: Basic {credentials}"]


def commit_message(project: str, version: str) -> str:
    return f"chore({project}): release new version {version}"


def check_download(url: str, timeout: float | None = None) -> None:
    """Make sure a release asset referenced by a manifest can be downloaded."""
    response = requests.head(url, allow_redirects=True, timeout=timeout)
    response.raise_for_status()


def clone_repository(
    channel: PublishChannel,
    clone_dir: Path,
    release: ReleaseConfig,
) -> None:
    """Clone the channel repository into a fresh directory."""
    if clone_dir.exists():
        shutil.rmtree(clone_dir)
    clone_dir.parent.mkdir(parents=True, exist_ok=True)
    run_command(
        ["git", *git_auth_args(release.github_token or ""), "clone", channel.repo, str(clone_dir)],
        prefix=f"{channel.name}:",
        display=f"git clone {channel.repo} {clone_dir}",
        timeout=release.timeout,
    )
    log(f"cloned {channel.repo} => {clone_dir}", "info", f"{channel.name}:")


def replace_manifest(channel: PublishChannel, rendered: Path, clone_dir: Path) -> Path:
    """Swap the manifest inside the clone for the freshly rendered one."""
    prefix = f"{channel.name}:"
    target = clone_dir / channel.manifest_path
    unlink_if_exists(target, prefix)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(rendered, target)
    log(f"copied {rendered} => {target}", "info", prefix)
    return target


def commit_manifest(
    channel: PublishChannel,
    clone_dir: Path,
    project: ProjectConfig,
    release: ReleaseConfig,
) -> None:
    """Stage the manifest and commit it as the release bot.

    The commit is made even when the manifest is unchanged, so re-publishing
    a version that already reached the repository still succeeds.
    """
    prefix = f"{channel.name}:"
    run_command(
        ["git", "-C", str(clone_dir), "add", channel.manifest_path],
        prefix=prefix,
        timeout=release.timeout,
    )
    log(f"git add {channel.manifest_path}", "info", prefix)

    message = commit_message(project.project, release.version)
    run_command(
        [
            "git", "-C", str(clone_dir),
            "-c", f"user.name={project.bot.name}",
            "-c", f"user.email={project.bot.email}",
            "commit", "--allow-empty", "-m", message,
        ],
        prefix=prefix,
        timeout=release.timeout,
    )  # fmt: skip
    log(f'git commit -m "{message}"', "info", prefix)


def push_repository(
    channel: PublishChannel,
    clone_dir: Path,
    project: ProjectConfig,
    release: ReleaseConfig,
) -> None:
    prefix = f"{channel.name}:"
    display = f"git push {project.remote} {project.branch} -C {clone_dir}"
    log(display, "info", prefix)
    run_command(
        [
            "git", "-C", str(clone_dir),
            *git_auth_args(release.github_token or ""),
            "push", project.remote, project.branch,
        ],
        prefix=prefix,
        display=display,
        timeout=release.timeout,
    )  # fmt: skip


def publish_channel(
    channel: PublishChannel,
    project: ProjectConfig,
    release: ReleaseConfig,
    verify_downloads: bool = False,  # noqa: FBT001, FBT002
) -> None:
    """Clone, replace the manifest, commit and push for one channel."""
    rendered = project.rendered_manifest_path(channel)
    if not rendered.is_file():
        msg = f"Rendered manifest {rendered} not found, run `render` first"
        raise FileNotFoundError(msg)

    if verify_downloads and channel.download_url:
        url = render_template(channel.download_url, release.version)
        check_download(url, release.timeout)
        log(f"verified {url}", "info", f"{channel.name}:")

    clone_dir = project.clone_dir(channel)
    clone_repository(channel, clone_dir, release)
    replace_manifest(channel, rendered, clone_dir)
    commit_manifest(channel, clone_dir, project, release)
    push_repository(channel, clone_dir, project, release)
    log(f"published {channel.manifest_path} to {channel.repo}", "success", f"{channel.name}:")


def publish_channels(
    project: ProjectConfig,
    release: ReleaseConfig,
    verify_downloads: bool = False,  # noqa: FBT001, FBT002
) -> None:
    """Publish every channel concurrently; fails if any channel fails."""
    if not release.github_token:
        msg = "A GitHub token is required to publish (--github-token or GITHUB_TOKEN)"
        raise ConfigError(msg)

    run_in_parallel(
        {
            channel.name: (
                lambda channel=channel: publish_channel(channel, project, release, verify_downloads)
            )
            for channel in project.publish_channels
        },
        "channels",
    )
