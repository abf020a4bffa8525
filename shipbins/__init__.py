"""shipbins - CLI Binary Release Pipeline.

Cross-compiles a Go command-line binary for every target platform,
packages each build into archives and native packages (apk, rpm, deb),
writes a SHA-256 checksum manifest, renders package-manager manifests
(Homebrew formula, Scoop manifest) and pushes them to their repositories.
"""

from __future__ import annotations

__version__ = "0.1.0"

from . import archive, build, checksums, cli, config, publish, render, utils

# Re-export commonly used functions
from .build import build_matrix
from .checksums import write_checksum_manifest
from .cli import main
from .config import BuildTarget, ProjectConfig, PublishChannel, ReleaseConfig
from .publish import publish_channels
from .render import render_manifests, render_template
from .utils import nix_path, run_in_parallel, setup_logging

__all__ = [
    "BuildTarget",
    "ProjectConfig",
    "PublishChannel",
    "ReleaseConfig",
    "archive",
    "build",
    "build_matrix",
    "checksums",
    "cli",
    "config",
    "main",
    "nix_path",
    "publish",
    "publish_channels",
    "render",
    "render_manifests",
    "render_template",
    "run_in_parallel",
    "setup_logging",
    "utils",
]
