"""Configuration for pytest fixtures used in shipbins tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from shipbins.config import ProjectConfig, ReleaseConfig

BREW_TEMPLATE = """class SshAddWithPass < Formula
    desc "Wrapper around ssh-add that uses expect to unlock the provided key."
    url "https://github.com/brad-jones/ssh-add-with-pass/releases/download/v${VERSION}/ssh_add_with_pass_darwin_amd64.tar.gz"
    version "${VERSION}"
    sha256 "${HASH}"
end
"""

SCOOP_TEMPLATE = """{
    "version": "${VERSION}",
    "url": "https://github.com/brad-jones/ssh-add-with-pass/releases/download/v${VERSION}/ssh_add_with_pass_windows_amd64.zip",
    "hash": "${HASH}"
}
"""


@pytest.fixture
def brew_template() -> str:
    return BREW_TEMPLATE


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A project checkout with the files that go into every archive."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "README.md").write_text("# ssh_add_with_pass\n")
    (root / "CHANGELOG.md").write_text("## 2.0.0\n")
    (root / "LICENSE").write_text("MIT\n")
    (root / "brew.rb").write_text(BREW_TEMPLATE)
    (root / "scoop.json").write_text(SCOOP_TEMPLATE)
    return root


@pytest.fixture
def project(project_dir: Path) -> ProjectConfig:
    return ProjectConfig(project_dir=project_dir)


@pytest.fixture
def release() -> ReleaseConfig:
    return ReleaseConfig(
        version="2.0.0",
        date="2020-01-02T03:04:05.678Z",
        commit_url="https://github.com/brad-jones/ssh-add-with-pass/commit/abc",
        github_token="s3cr3t",
        timeout=30,
    )


@pytest.fixture
def create_artifacts(project: ProjectConfig) -> Callable[[dict[str, bytes]], Path]:
    """Return a function that fills the artifacts directory with files."""

    def _create(files: dict[str, bytes]) -> Path:
        project.artifacts_dir.mkdir(parents=True, exist_ok=True)
        for name, content in files.items():
            (project.artifacts_dir / name).write_bytes(content)
        return project.artifacts_dir

    return _create
