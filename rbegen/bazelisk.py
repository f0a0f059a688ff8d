"""
Bazelisk download and installation into the toolchain container.

Bazelisk is fetched on the host (the toolchain image may not have network
tools) and copied into the container's working directory.
"""

from __future__ import annotations

import logging
import os
import posixpath
from typing import Dict, Optional, Tuple

import httpx

from rbegen.config import get_settings
from rbegen.exceptions import CommandFailed, IOFailure, RbegenConfigError
from rbegen.models import OS_LINUX, OS_WINDOWS
from rbegen.sandbox import ToolchainContainer

logger = logging.getLogger(__name__)

# exec OS -> (release asset name, file name to install as)
_BAZELISK_ASSETS: Dict[str, Tuple[str, str]] = {
    OS_LINUX: ("bazelisk-linux-amd64", "bazelisk"),
    OS_WINDOWS: ("bazelisk-windows-amd64.exe", "bazelisk.exe"),
}

_WORKDIRS: Dict[str, str] = {
    OS_LINUX: "/workdir",
    OS_WINDOWS: "C:/workdir",
}


def workdir(exec_os: str) -> str:
    """Root working directory inside a toolchain container of the given OS."""
    try:
        return _WORKDIRS[exec_os]
    except KeyError:
        raise RbegenConfigError(f"Invalid OS: {exec_os!r}") from None


def bazelisk_download_info(exec_os: str) -> Tuple[str, str]:
    """Return (download URL, local file name) of Bazelisk for the given OS."""
    try:
        asset, filename = _BAZELISK_ASSETS[exec_os]
    except KeyError:
        raise RbegenConfigError(f"Invalid OS: {exec_os!r}") from None
    settings = get_settings()
    url = f"{settings.bazelisk_base_url}/{settings.bazelisk_version}/{asset}"
    return url, filename


def download_bazelisk(
    exec_os: str,
    download_dir: str,
    client: Optional[httpx.Client] = None,
) -> str:
    """
    Download Bazelisk for the given OS into download_dir.

    Returns:
        Local path of the downloaded binary.

    Raises:
        IOFailure: On network/HTTP errors or if the file can't be written.
    """
    url, filename = bazelisk_download_info(exec_os)
    local_path = os.path.join(download_dir, filename)
    owns_client = client is None
    if client is None:
        client = httpx.Client(
            follow_redirects=True,
            timeout=get_settings().download_timeout_seconds,
        )
    logger.info("Downloading Bazelisk from %s to %s.", url, local_path)
    try:
        with client.stream("GET", url) as resp:
            resp.raise_for_status()
            with open(local_path, "wb") as out:
                for chunk in resp.iter_bytes():
                    out.write(chunk)
    except httpx.HTTPError as exc:
        raise IOFailure(
            f"Unable to download Bazelisk from {url}: {exc}",
            path=url,
        ) from exc
    except OSError as exc:
        raise IOFailure(
            f"Error while downloading Bazelisk to {local_path}: {exc}",
            path=local_path,
        ) from exc
    finally:
        if owns_client:
            client.close()
    return local_path


def install_bazelisk(
    container: ToolchainContainer,
    download_dir: str,
    exec_os: str,
    client: Optional[httpx.Client] = None,
) -> str:
    """
    Download Bazelisk and copy it into the container's working directory.

    Returns:
        Path of the executable Bazelisk binary inside the container.
    """
    local_path = download_bazelisk(exec_os, download_dir, client=client)
    container_path = posixpath.join(container.context.workdir, os.path.basename(local_path))
    try:
        container.copy_in(local_path, container_path)
    except CommandFailed as exc:
        raise IOFailure(
            "Failed to copy the downloaded Bazelisk binary into the container",
            path=local_path,
        ) from exc
    try:
        container.exec("chmod", "+x", container_path)
    except CommandFailed as exc:
        raise IOFailure(
            "Failed to mark the Bazelisk binary as executable inside the container",
            path=container_path,
        ) from exc
    return container_path
