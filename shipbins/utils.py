"""Utility functions for shipbins."""

from __future__ import annotations

import concurrent.futures
import hashlib
import os
import subprocess
import threading
from pathlib import Path
from typing import IO, Callable

from rich.console import Console
from rich.markup import escape

# Initialize rich console
console = Console()

_LEVELS = {
    "info": ("🔄", "blue"),
    "success": ("✅", "green"),
    "warning": ("⚠️", "yellow"),
    "error": ("❌", "bold red"),
    "debug": ("🔍", "dim"),
}
_verbose = False


class CommandError(Exception):
    """A subprocess failed or timed out."""

    def __init__(self, message: str, command: str, returncode: int | None = None) -> None:
        """Initialize the CommandError."""
        self.command = command
        self.returncode = returncode
        super().__init__(message)


class ReleaseError(Exception):
    """One or more units of a parallel group failed."""

    def __init__(self, message: str, failures: dict[str, BaseException] | None = None) -> None:
        """Initialize the ReleaseError."""
        self.message = message
        self.failures = failures or {}
        super().__init__(message)


def setup_logging(verbose: bool = False) -> None:  # noqa: FBT001, FBT002
    """Configure logging level based on verbosity."""
    global _verbose  # noqa: PLW0603
    _verbose = verbose


def log(message: str, level: str = "info", prefix: str | None = None) -> None:
    """Print a message to the shared console at the given level."""
    if level == "debug" and not _verbose:
        return
    emoji, style = _LEVELS[level]
    text = escape(f"{prefix} {message}" if prefix else message)
    console.print(f"{emoji} [{style}]{text}[/{style}]")


def run_command(
    args: list[str],
    *,
    prefix: str,
    display: str | None = None,
    env: dict[str, str] | None = None,
    cwd: Path | None = None,
    timeout: float | None = None,
) -> subprocess.CompletedProcess:
    """Run a subprocess and relay its output through the logger line by line.

    ``env`` extends the current environment. ``display`` replaces the
    command line in error messages, for commands that carry credentials.
    Undecodable bytes in the output are replaced, never fatal.
    """
    shown = display or " ".join(args)
    log(f"$ {shown}", "debug", prefix)
    proc = subprocess.Popen(
        args,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        encoding="utf-8",
        errors="replace",
        env={**os.environ, **env} if env else None,
        cwd=cwd,
    )
    stdout: list[str] = []
    stderr: list[str] = []
    readers = [
        threading.Thread(target=_relay, args=(proc.stdout, stdout, "info", prefix), daemon=True),
        threading.Thread(target=_relay, args=(proc.stderr, stderr, "warning", prefix), daemon=True),
    ]
    for reader in readers:
        reader.start()

    try:
        returncode = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        proc.kill()
        proc.wait()
        msg = f"{prefix} `{shown}` timed out after {timeout}s"
        raise CommandError(msg, shown) from e
    finally:
        for reader in readers:
            reader.join()

    if returncode != 0:
        msg = f"{prefix} `{shown}` exited with status {returncode}"
        raise CommandError(msg, shown, returncode)
    return subprocess.CompletedProcess(
        args,
        returncode,
        "".join(f"{line}\n" for line in stdout),
        "".join(f"{line}\n" for line in stderr),
    )


def _relay(stream: IO[str], sink: list[str], level: str, prefix: str) -> None:
    """Log each line of a subprocess stream as soon as it is read."""
    with stream:
        for line in stream:
            line = line.rstrip("\r\n")
            sink.append(line)
            log(line, level, prefix)


def nix_path(path: str | Path) -> str:
    """Convert a host path into a *nix path usable as a container mount point."""
    output = str(path)
    if output[1:3] == ":\\":
        output = output[2:]
    return output.replace("\\", "/")


def unlink_if_exists(path: Path, prefix: str | None = None) -> bool:
    """Delete a file, treating an already absent file as success."""
    try:
        path.unlink()
    except FileNotFoundError:
        log(f"{path} does not exist, nothing to delete", "info", prefix)
        return False
    log(f"deleted {path}", "info", prefix)
    return True


def sha256_file(path: Path) -> str:
    """Hex encoded SHA-256 digest of a file's contents."""
    hasher = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def run_in_parallel(
    jobs: dict[str, Callable[[], object]],
    description: str = "jobs",
) -> None:
    """Run independent jobs concurrently and wait for all of them.

    Every job runs to completion. Failures are collected per label and
    raised together as a ReleaseError once the whole group has finished.
    """
    if not jobs:
        return
    failures: dict[str, BaseException] = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=len(jobs)) as executor:
        future_to_label = {executor.submit(job): label for label, job in jobs.items()}
        for future in concurrent.futures.as_completed(future_to_label):
            label = future_to_label[future]
            exc = future.exception()
            if exc is not None:
                log(f"failed: {exc}", "error", f"{label}:")
                failures[label] = exc

    if failures:
        msg = f"{len(failures)} of {len(jobs)} {description} failed: {', '.join(sorted(failures))}"
        raise ReleaseError(msg, failures)
