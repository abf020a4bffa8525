"""Render distribution manifests (formulae, bucket manifests) from templates."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .checksums import lookup_digest
from .utils import log

if TYPE_CHECKING:
    from .config import ProjectConfig, PublishChannel, ReleaseConfig

VERSION_PLACEHOLDER = "${VERSION}"
HASH_PLACEHOLDER = "${HASH}"
PLACEHOLDERS = (VERSION_PLACEHOLDER, HASH_PLACEHOLDER)


class TemplateError(Exception):
    """A template could not be rendered completely."""


def render_template(template: str, version: str, digest: str = "") -> str:
    """Replace every ``${VERSION}`` and ``${HASH}`` occurrence in ``template``."""
    rendered = template.replace(VERSION_PLACEHOLDER, version)
    rendered = rendered.replace(HASH_PLACEHOLDER, digest)
    remaining = [p for p in PLACEHOLDERS if p in rendered]
    if remaining:
        msg = f"Template render incomplete, placeholders remain: {', '.join(remaining)}"
        raise TemplateError(msg)
    return rendered


def render_channel(
    channel: PublishChannel,
    project: ProjectConfig,
    release: ReleaseConfig,
) -> Path:
    """Render the manifest of one channel with the digest of its artifact."""
    prefix = f"{channel.name}:"
    template_path = project.project_dir / channel.template
    template = template_path.read_text(encoding="utf-8")
    digest = lookup_digest(project.checksum_path, channel.artifact)

    output = project.rendered_manifest_path(channel)
    output.parent.mkdir(parents=True, exist_ok=True)
    try:
        output.write_text(render_template(template, release.version, digest), encoding="utf-8")
    except TemplateError as e:
        msg = f"{template_path}: {e}"
        raise TemplateError(msg) from e
    log(f"written {output}", "success", prefix)
    return output


def render_manifests(project: ProjectConfig, release: ReleaseConfig) -> dict[str, Path]:
    """Render the manifest of every channel; returns channel name to output path."""
    return {
        channel.name: render_channel(channel, project, release)
        for channel in project.publish_channels
    }
