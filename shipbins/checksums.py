"""SHA-256 checksum manifest of the release artifacts."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import NamedTuple

from .utils import log, sha256_file

_LINE_RE = re.compile(r"^(?P<digest>[0-9a-f]{64})  (?P<filename>.+)$")


class ChecksumError(Exception):
    """Checksum manifest is missing, malformed or does not match the artifacts."""


class ChecksumEntry(NamedTuple):
    """Digest of one artifact."""

    filename: str
    digest: str

    def line(self) -> str:
        """Manifest line in ``sha256sum`` format: digest, two spaces, name."""
        return f"{self.digest}  {self.filename}\n"


def compute_checksums(directory: Path, exclude: tuple[str, ...] = ()) -> list[ChecksumEntry]:
    """Hash every regular file in ``directory``, in directory-listing order."""
    entries = []
    for name in os.listdir(directory):
        path = directory / name
        if name in exclude or not path.is_file():
            continue
        entries.append(ChecksumEntry(name, sha256_file(path)))
    return entries


def write_checksum_manifest(directory: Path, manifest_name: str = "sha256_checksums.txt") -> Path:
    """Write the checksum manifest for ``directory`` into that same directory.

    The manifest never lists itself, so rewriting it is stable.
    """
    entries = compute_checksums(directory, exclude=(manifest_name,))
    manifest = directory / manifest_name
    manifest.write_text("".join(entry.line() for entry in entries), encoding="utf-8")
    log(f"written {manifest} ({len(entries)} artifacts)", "success", "prepare:")
    return manifest


def parse_checksum_manifest(manifest: Path) -> list[ChecksumEntry]:
    """Read the entries of a checksum manifest."""
    try:
        text = manifest.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        msg = f"Checksum manifest not found: {manifest}"
        raise ChecksumError(msg) from e

    entries = []
    for number, line in enumerate(text.splitlines(), start=1):
        match = _LINE_RE.match(line)
        if not match:
            msg = f"{manifest}:{number}: malformed checksum line {line!r}"
            raise ChecksumError(msg)
        entries.append(ChecksumEntry(match["filename"], match["digest"]))
    return entries


def lookup_digest(manifest: Path, filename: str) -> str:
    """Digest recorded for ``filename`` in the manifest."""
    for entry in parse_checksum_manifest(manifest):
        if entry.filename == filename:
            return entry.digest
    msg = f"{filename} is not listed in {manifest}"
    raise ChecksumError(msg)


def verify_checksum_manifest(manifest: Path) -> list[str]:
    """Compare a manifest with the files next to it; return the problems found."""
    directory = manifest.parent
    recorded = parse_checksum_manifest(manifest)
    problems = []

    seen: set[str] = set()
    for entry in recorded:
        if entry.filename in seen:
            problems.append(f"duplicate entry for {entry.filename}")
            continue
        seen.add(entry.filename)
        path = directory / entry.filename
        if not path.is_file():
            problems.append(f"{entry.filename} is listed but missing")
        elif sha256_file(path) != entry.digest:
            problems.append(f"{entry.filename} does not match its checksum")

    for entry in compute_checksums(directory, exclude=(manifest.name,)):
        if entry.filename not in seen:
            problems.append(f"{entry.filename} is present but not listed")
    return problems
