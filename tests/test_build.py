"""Tests for shipbins.build."""

from __future__ import annotations

import random
import threading
import time
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from shipbins.archive import list_archive_members
from shipbins.build import build_matrix, go_build_command, ldflags, nfpm_command
from shipbins.config import BuildTarget, ProjectConfig, ReleaseConfig
from shipbins.utils import CommandError, ReleaseError

LINUX = BuildTarget("linux", "amd64")
DARWIN = BuildTarget("darwin", "amd64")
WINDOWS = BuildTarget("windows", "amd64")


class FakeToolchain:
    """Stands in for go and docker, writing the files they would produce."""

    def __init__(self, project: ProjectConfig, fail_on: str | None = None, jitter: bool = False) -> None:
        self.project = project
        self.fail_on = fail_on
        self.jitter = jitter
        self.calls: list[tuple[list[str], dict[str, Any]]] = []
        self._lock = threading.Lock()

    def __call__(self, args: list[str], **kwargs: Any) -> None:
        with self._lock:
            self.calls.append((args, kwargs))
        if self.jitter:
            time.sleep(random.uniform(0, 0.05))  # noqa: S311
        if self.fail_on and self.fail_on in " ".join(args) + str(kwargs.get("env")):
            msg = f"{kwargs['prefix']} `{' '.join(args)}` exited with status 1"
            raise CommandError(msg, " ".join(args), 1)
        if args[:2] == ["go", "build"]:
            Path(args[args.index("-o") + 1]).write_bytes(b"binary " + kwargs["env"]["GOOS"].encode())
        elif args[:2] == ["docker", "run"]:
            target = args[args.index("--target") + 1]
            (self.project.project_dir / target).write_bytes(b"package")

    def commands(self, program: str) -> list[list[str]]:
        return [args for args, _ in self.calls if args[0] == program]


def test_ldflags(release: ReleaseConfig) -> None:
    assert ldflags(release) == (
        "-X main.versionNo=2.0.0 "
        "-X main.commitUrl=https://github.com/brad-jones/ssh-add-with-pass/commit/abc "
        "-X main.date=2020-01-02T03:04:05.678Z"
    )


@pytest.mark.parametrize(
    ("target", "binary"),
    [
        (LINUX, "ssh_add_with_pass_linux_amd64"),
        (DARWIN, "ssh_add_with_pass_darwin_amd64"),
        (WINDOWS, "ssh_add_with_pass_windows_amd64.exe"),
    ],
)
def test_go_build_command(
    project: ProjectConfig,
    release: ReleaseConfig,
    target: BuildTarget,
    binary: str,
) -> None:
    args, env = go_build_command(target, project, release)
    assert args[:2] == ["go", "build"]
    assert args[args.index("-o") + 1] == str(project.dist_dir / binary)
    assert args[-1] == "."
    assert env == {"CGO_ENABLED": "0", "GOOS": target.os, "GOARCH": "amd64"}


def test_nfpm_command(project: ProjectConfig, release: ReleaseConfig) -> None:
    args = nfpm_command("rpm", LINUX, project, release)
    mount = str(project.project_dir)
    assert args == [
        "docker", "run", "--rm",
        "-v", f"{mount}:{mount}",
        "-w", mount,
        "-e", "VERSION=2.0.0",
        "goreleaser/nfpm:v1.10.3",
        "pkg", "--target", "./dist/github-downloads/ssh_add_with_pass_linux_amd64.rpm",
    ]  # fmt: skip


def test_build_matrix_produces_all_artifacts(project: ProjectConfig, release: ReleaseConfig) -> None:
    """Test a full matrix build with a fake toolchain."""
    stale = project.dist_dir / "stale.txt"
    stale.parent.mkdir(parents=True)
    stale.write_text("old")

    toolchain = FakeToolchain(project)
    with patch("shipbins.build.run_command", toolchain):
        build_matrix(project, release)

    assert not stale.exists()
    assert sorted(p.name for p in project.artifacts_dir.iterdir()) == [
        "ssh_add_with_pass_darwin_amd64.tar.gz",
        "ssh_add_with_pass_linux_amd64.apk",
        "ssh_add_with_pass_linux_amd64.deb",
        "ssh_add_with_pass_linux_amd64.rpm",
        "ssh_add_with_pass_linux_amd64.tar.gz",
        "ssh_add_with_pass_windows_amd64.zip",
    ]
    assert len(toolchain.commands("go")) == 3
    # one pull and three package runs, all for linux
    docker = toolchain.commands("docker")
    assert [args[1] for args in docker].count("pull") == 1
    assert [args[1] for args in docker].count("run") == 3


def test_build_success_lines_carry_component_prefix(project: ProjectConfig, release: ReleaseConfig) -> None:
    toolchain = FakeToolchain(project)
    with patch("shipbins.build.run_command", toolchain), patch("shipbins.build.log") as log:
        build_matrix(project, release)

    successes = {(call.args[0], call.args[2]) for call in log.call_args_list if call.args[1] == "success"}
    assert (f"built {project.dist_dir / 'ssh_add_with_pass_linux_amd64'}", "go build linux:") in successes
    assert (
        f"packaged {project.artifacts_dir / 'ssh_add_with_pass_windows_amd64.zip'}",
        "archive windows:",
    ) in successes
    assert ("packaged ssh_add_with_pass_linux_amd64.rpm", "nfpm(rpm):") in successes
    go_prefixes = {kwargs["prefix"] for args, kwargs in toolchain.calls if args[0] == "go"}
    assert go_prefixes == {"go build linux:", "go build darwin:", "go build windows:"}


@pytest.mark.parametrize(
    ("target", "entry"),
    [(LINUX, "ssh_add_with_pass"), (DARWIN, "ssh_add_with_pass"), (WINDOWS, "ssh_add_with_pass.exe")],
)
def test_archive_entries(
    project: ProjectConfig,
    release: ReleaseConfig,
    target: BuildTarget,
    entry: str,
) -> None:
    with patch("shipbins.build.run_command", FakeToolchain(project)):
        build_matrix(project, release)

    archive = project.artifacts_dir / target.archive_filename(project.project)
    assert sorted(list_archive_members(archive)) == sorted(
        ["README.md", "CHANGELOG.md", "LICENSE", entry],
    )


def test_build_order_does_not_matter(project: ProjectConfig, release: ReleaseConfig) -> None:
    """The artifact set is the same whatever order the targets finish in."""
    results = []
    for _ in range(3):
        with patch("shipbins.build.run_command", FakeToolchain(project, jitter=True)):
            build_matrix(project, release)
        results.append(sorted(p.name for p in project.artifacts_dir.iterdir()))
    assert results[0] == results[1] == results[2]


def test_build_failure_fails_matrix(project: ProjectConfig, release: ReleaseConfig) -> None:
    """A failing target fails the run while the other targets still complete."""
    toolchain = FakeToolchain(project, fail_on="'GOOS': 'windows'")
    with patch("shipbins.build.run_command", toolchain), pytest.raises(ReleaseError) as exc_info:
        build_matrix(project, release)

    assert set(exc_info.value.failures) == {"windows/amd64"}
    assert isinstance(exc_info.value.failures["windows/amd64"], CommandError)
    assert (project.artifacts_dir / "ssh_add_with_pass_darwin_amd64.tar.gz").exists()
    assert not (project.artifacts_dir / "ssh_add_with_pass_windows_amd64.zip").exists()


def test_native_package_failure_fails_matrix(project: ProjectConfig, release: ReleaseConfig) -> None:
    toolchain = FakeToolchain(project, fail_on="linux_amd64.deb")
    with patch("shipbins.build.run_command", toolchain), pytest.raises(ReleaseError) as exc_info:
        build_matrix(project, release)

    linux_failure = exc_info.value.failures["linux/amd64"]
    assert isinstance(linux_failure, ReleaseError)
    native_failure = linux_failure.failures["native packages linux"]
    assert set(native_failure.failures) == {"nfpm(deb)"}


def test_missing_readme_fails(project: ProjectConfig, release: ReleaseConfig) -> None:
    (project.project_dir / "README.md").unlink()
    with patch("shipbins.build.run_command", FakeToolchain(project)), pytest.raises(ReleaseError):
        build_matrix(project, release)
