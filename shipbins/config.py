"""Configuration management for shipbins."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NamedTuple

import yaml

from .render import HASH_PLACEHOLDER
from .utils import log

DEFAULT_CONFIG_FILE = "shipbins.yaml"
DEFAULT_PROJECT = "ssh_add_with_pass"
DEFAULT_TIMEOUT = 600.0


class ConfigError(ValueError):
    """Invalid or incomplete configuration."""


def _now() -> str:
    """Current UTC time as ISO-8601 with millisecond precision, e.g. 2020-01-02T03:04:05.678Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ReleaseConfig:
    """Run-wide release parameters, resolved once at startup."""

    version: str = "0.0.0"
    date: str = field(default_factory=_now)
    commit_url: str = "https://github.com/owner/project/commit/hash"
    nfpm_version: str = "1.10.3"
    github_token: str | None = None
    timeout: float | None = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> ReleaseConfig:
        """Build from environment variables; explicit non-None overrides win."""
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name, var in (
            ("version", "VERSION_NO"),
            ("date", "DATE"),
            ("commit_url", "COMMIT_URL"),
            ("nfpm_version", "NFPM_VERSION"),
            ("github_token", "GITHUB_TOKEN"),
        ):
            if env.get(var):
                values[name] = env[var]
        if env.get("SHIPBINS_TIMEOUT"):
            values["timeout"] = float(env["SHIPBINS_TIMEOUT"])
        values.update({k: v for k, v in overrides.items() if v is not None})
        if values.get("timeout") == 0:
            values["timeout"] = None
        return cls(**values)


class BuildTarget(NamedTuple):
    """One operating-system/architecture combination."""

    os: str
    arch: str

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    @property
    def archive_format(self) -> str:
        return "zip" if self.is_windows else "tar.gz"

    @property
    def builds_native_packages(self) -> bool:
        return self.os == "linux"

    def binary_filename(self, project: str) -> str:
        """Name of the compiled binary under the dist directory."""
        suffix = ".exe" if self.is_windows else ""
        return f"{project}_{self.os}_{self.arch}{suffix}"

    def binary_entry_name(self, project: str) -> str:
        """Name of the binary inside the platform archive."""
        return f"{project}.exe" if self.is_windows else project

    def archive_filename(self, project: str) -> str:
        return f"{project}_{self.os}_{self.arch}.{self.archive_format}"

    def package_filename(self, project: str, kind: str) -> str:
        return f"{project}_{self.os}_{self.arch}.{kind}"

    def __str__(self) -> str:
        return f"{self.os}/{self.arch}"


class BotIdentity(NamedTuple):
    """Author and committer of release commits."""

    name: str = "semantic-release-bot"
    email: str = "semantic-release-bot@martynus.net"


class PublishChannel(NamedTuple):
    """A repository that receives one rendered distribution manifest."""

    name: str
    repo: str
    template: str
    manifest_path: str
    artifact: str
    download_url: str | None = None


def _default_targets() -> dict[str, list[str]]:
    return {"linux": ["amd64"], "darwin": ["amd64"], "windows": ["amd64"]}


def _default_channels() -> dict[str, dict[str, Any]]:
    project = DEFAULT_PROJECT
    return {
        "homebrew-tap": {
            "repo": "https://github.com/brad-jones/homebrew-tap.git",
            "template": "brew.rb",
            "manifest_path": f"Formula/{project}.rb",
            "artifact": f"{project}_darwin_amd64.tar.gz",
            "download_url": (
                "https://github.com/brad-jones/ssh-add-with-pass/releases/download/"
                f"v${{VERSION}}/{project}_darwin_amd64.tar.gz"
            ),
        },
        "scoop-bucket": {
            "repo": "https://github.com/brad-jones/scoop-bucket.git",
            "template": "scoop.json",
            "manifest_path": f"{project}.json",
            "artifact": f"{project}_windows_amd64.zip",
            "download_url": (
                "https://github.com/brad-jones/ssh-add-with-pass/releases/download/"
                f"v${{VERSION}}/{project}_windows_amd64.zip"
            ),
        },
    }


@dataclass(frozen=True)
class ProjectConfig:
    """Layout of the project being released and where its manifests go."""

    project: str = DEFAULT_PROJECT
    project_dir: Path = field(default_factory=Path.cwd)
    dist_dir: Path = Path("dist")
    downloads_dir: str = "github-downloads"
    checksum_file: str = "sha256_checksums.txt"
    targets: dict[str, list[str]] = field(default_factory=_default_targets)
    archive_files: list[str] = field(
        default_factory=lambda: ["README.md", "CHANGELOG.md", "LICENSE"],
    )
    native_packages: list[str] = field(default_factory=lambda: ["apk", "rpm", "deb"])
    nfpm_image: str = "goreleaser/nfpm"
    bot: BotIdentity = field(default_factory=BotIdentity)
    remote: str = "origin"
    branch: str = "master"
    channels: dict[str, dict[str, Any]] = field(default_factory=_default_channels)

    def __post_init__(self) -> None:
        project_dir = Path(self.project_dir).expanduser().resolve()
        dist_dir = Path(self.dist_dir).expanduser()
        if not dist_dir.is_absolute():
            dist_dir = project_dir / dist_dir
        # frozen dataclass: normalise paths in place
        object.__setattr__(self, "project_dir", project_dir)
        object.__setattr__(self, "dist_dir", dist_dir)
        if isinstance(self.bot, dict):
            object.__setattr__(self, "bot", BotIdentity(**self.bot))

    @property
    def artifacts_dir(self) -> Path:
        """Directory holding every distributable artifact."""
        return self.dist_dir / self.downloads_dir

    @property
    def checksum_path(self) -> Path:
        return self.artifacts_dir / self.checksum_file

    @property
    def build_targets(self) -> list[BuildTarget]:
        return [
            BuildTarget(os_name, arch)
            for os_name, architectures in self.targets.items()
            for arch in architectures
        ]

    @property
    def publish_channels(self) -> list[PublishChannel]:
        return [
            PublishChannel(name=name, **channel) for name, channel in self.channels.items()
        ]

    def channel_dir(self, channel: PublishChannel) -> Path:
        """Working directory of a channel: rendered manifest plus its clone."""
        return self.dist_dir / channel.name

    def rendered_manifest_path(self, channel: PublishChannel) -> Path:
        return self.channel_dir(channel) / Path(channel.manifest_path).name

    def clone_dir(self, channel: PublishChannel) -> Path:
        return self.channel_dir(channel) / "repo"

    def validate(self) -> None:
        """Validate the configuration."""
        if not self.build_targets:
            msg = "No build targets configured"
            raise ConfigError(msg)
        required_fields = ["repo", "template", "manifest_path", "artifact"]
        for name, channel in self.channels.items():
            missing = [f for f in required_fields if f not in channel]
            if missing:
                msg = f"Channel {name} is missing required field(s): {', '.join(missing)}"
                raise ConfigError(msg)
            unknown = set(channel) - set(PublishChannel._fields)
            if unknown:
                msg = f"Channel {name} has unknown field(s): {', '.join(sorted(unknown))}"
                raise ConfigError(msg)
            if HASH_PLACEHOLDER in (channel.get("download_url") or ""):
                msg = f"Channel {name}: download_url cannot use {HASH_PLACEHOLDER}, only ${{VERSION}}"
                raise ConfigError(msg)

    @classmethod
    def from_dict(cls, config_data: dict[str, Any], base_dir: Path | None = None) -> ProjectConfig:
        """Create a configuration from parsed YAML data."""
        known = set(cls.__dataclass_fields__)
        unknown = set(config_data) - known
        if unknown:
            msg = f"Unknown configuration key(s): {', '.join(sorted(unknown))}"
            raise ConfigError(msg)

        data = dict(config_data)
        # Relative project_dir is relative to the config file, not the cwd
        if base_dir is not None:
            project_dir = Path(os.path.expanduser(str(data.get("project_dir", "."))))
            data["project_dir"] = project_dir if project_dir.is_absolute() else base_dir / project_dir
        config = cls(**data)
        config.validate()
        return config

    @classmethod
    def load_from_file(cls, config_path: str | Path | None = None) -> ProjectConfig:
        """Load configuration from YAML file."""
        path = Path(config_path or DEFAULT_CONFIG_FILE)
        try:
            with open(path) as file:
                config_data = yaml.safe_load(file) or {}
        except FileNotFoundError:
            log(f"Configuration file not found: {path}, using defaults", "warning")
            config = cls()
            config.validate()
            return config
        except yaml.YAMLError as e:
            msg = f"Invalid YAML in configuration file {path}: {e}"
            raise ConfigError(msg) from e

        if not isinstance(config_data, dict):
            msg = f"Configuration file {path} must contain a mapping"
            raise ConfigError(msg)
        return cls.from_dict(config_data, base_dir=path.resolve().parent)
