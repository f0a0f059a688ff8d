"""
Container runtime detection and abstraction.

Handles detection of available container runtimes (Docker vs Podman).
Both accept the same CLI for everything the toolchain container needs
(pull, inspect, create, start, exec, cp, stop).
"""

from __future__ import annotations

import shutil
import subprocess
import logging
from enum import Enum
from typing import Optional

from rbegen.exceptions import RbegenConfigError, SandboxUnavailable

logger = logging.getLogger(__name__)


class ContainerRuntime(Enum):
    DOCKER = "docker"
    PODMAN = "podman"


def _check_runtime_works(command: str) -> bool:
    """Verify the runtime CLI is actually usable."""
    try:
        subprocess.run([command, "info"], capture_output=True, check=True, timeout=10)
        return True
    except (subprocess.SubprocessError, OSError):
        return False


def detect_runtime(preferred: Optional[str] = None) -> ContainerRuntime:
    """
    Detect available container runtime.

    Priority:
    1. The explicitly preferred runtime, if given (no probing)
    2. Docker
    3. Podman

    Raises:
        SandboxUnavailable: If no supported runtime is found/working.
    """
    if preferred:
        try:
            return ContainerRuntime(preferred)
        except ValueError:
            raise RbegenConfigError(
                f"Unsupported container runtime {preferred!r}, want docker or podman."
            ) from None

    for runtime in (ContainerRuntime.DOCKER, ContainerRuntime.PODMAN):
        if shutil.which(runtime.value) and _check_runtime_works(runtime.value):
            logger.info("Detected container runtime: %s", runtime.value)
            return runtime

    raise SandboxUnavailable(
        "No container runtime available. Please install Docker or Podman."
    )


def get_runtime_command(runtime: ContainerRuntime) -> str:
    """Return the CLI command for the runtime."""
    return runtime.value
