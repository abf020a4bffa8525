"""Write and inspect release archives."""

from __future__ import annotations

import tarfile
import zipfile
from pathlib import Path

ARCHIVE_FORMATS = ("tar.gz", "zip")


class ArchiveError(Exception):
    """Error while writing or inspecting an archive."""


def _format_of(archive_path: Path) -> str:
    name = archive_path.name
    if name.endswith((".tar.gz", ".tgz")):
        return "tar.gz"
    if name.endswith(".zip"):
        return "zip"
    msg = f"Unsupported archive format: {archive_path}"
    raise ArchiveError(msg)


def write_archive(
    archive_path: Path,
    entries: list[tuple[str, Path]],
    archive_format: str | None = None,
) -> Path:
    """Write ``entries`` (archive name, source file) into a new archive.

    The format is taken from ``archive_format`` or the file extension.
    File modes are preserved, so executables stay executable.
    """
    archive_format = archive_format or _format_of(archive_path)
    if archive_format not in ARCHIVE_FORMATS:
        msg = f"Unsupported archive format: {archive_format}"
        raise ArchiveError(msg)

    for _, source in entries:
        if not source.is_file():
            msg = f"Cannot archive {source}: file not found"
            raise ArchiveError(msg)

    archive_path.parent.mkdir(parents=True, exist_ok=True)
    if archive_format == "zip":
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for name, source in entries:
                zf.write(source, arcname=name)
    else:
        with tarfile.open(archive_path, "w:gz") as tar:
            for name, source in entries:
                tar.add(source, arcname=name, recursive=False)
    return archive_path


def list_archive_members(archive_path: Path) -> list[str]:
    """Names of the regular files stored in an archive."""
    archive_format = _format_of(archive_path)
    try:
        if archive_format == "zip":
            with zipfile.ZipFile(archive_path) as zf:
                return [info.filename for info in zf.infolist() if not info.is_dir()]
        with tarfile.open(archive_path, "r:gz") as tar:
            return [member.name for member in tar.getmembers() if member.isfile()]
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        msg = f"Failed to read {archive_path}: {e}"
        raise ArchiveError(msg) from e


def verify_archive(archive_path: Path, expected: list[str]) -> None:
    """Check that an archive holds exactly the ``expected`` entries."""
    members = list_archive_members(archive_path)
    if sorted(members) != sorted(expected):
        missing = sorted(set(expected) - set(members))
        extra = sorted(set(members) - set(expected))
        msg = f"{archive_path.name}: missing {missing or 'nothing'}, unexpected {extra or 'nothing'}"
        raise ArchiveError(msg)
