"""
Output manifest: a Key=Value record of what a generation run produced.

    BazelVersion=<bazel version>
    ToolchainContainer=<image as given>
    ImageDigest=<64 hex sha256 of the resolved image>
    ExecPlatformOS=<OS family>
    ConfigsTarballDigest=<sha256 of the output tarball, only if one was produced>
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import List, Optional, Tuple

from rbegen.exceptions import DigestExtractionFailed, IOFailure

logger = logging.getLogger(__name__)

IMAGE_DIGEST_RE = re.compile(r"sha256:([a-f0-9]{64})$")

_CHUNK_SIZE = 1024 * 1024


def image_digest(resolved_image: str) -> str:
    """
    Extract the sha256 hex digest from an image referenced by digest.

    Raises:
        DigestExtractionFailed: If the reference doesn't end in sha256:<64 hex>.
    """
    match = IMAGE_DIGEST_RE.search(resolved_image)
    if match is None:
        raise DigestExtractionFailed(
            f"Failed to extract sha256 digest from image name {resolved_image!r}",
            details={"image": resolved_image},
        )
    return match.group(1)


def digest_file(path: str) -> str:
    """sha256 hex digest of the full contents of a file."""
    h = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                h.update(chunk)
    except OSError as exc:
        raise IOFailure(
            f"Error while hashing the contents of {path!r}: {exc}", path=path
        ) from exc
    return h.hexdigest()


def manifest_entries(
    *,
    bazel_version: str,
    toolchain_container: str,
    resolved_image: str,
    os_family: str,
    output_tarball: Optional[str] = None,
) -> List[Tuple[str, str]]:
    """Compute the manifest entries in their fixed order."""
    entries = [
        ("BazelVersion", bazel_version),
        ("ToolchainContainer", toolchain_container),
        ("ImageDigest", image_digest(resolved_image)),
        ("ExecPlatformOS", os_family),
    ]
    if output_tarball:
        entries.append(("ConfigsTarballDigest", digest_file(output_tarball)))
    return entries


def write_manifest(path: str, entries: List[Tuple[str, str]]) -> None:
    try:
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            for key, value in entries:
                f.write(f"{key}={value}\n")
    except OSError as exc:
        raise IOFailure(
            f"Unable to write manifest to {path!r}: {exc}", path=path
        ) from exc
    logger.info("Wrote output manifest to %r.", path)


def create_manifest(
    path: Optional[str],
    *,
    bazel_version: str,
    toolchain_container: str,
    resolved_image: str,
    os_family: str,
    output_tarball: Optional[str] = None,
) -> Optional[List[Tuple[str, str]]]:
    """
    Write the manifest if a path was requested.

    Every entry is computed before the file is opened, so a failed digest
    never leaves a partial manifest behind. Returns the entries written,
    or None when no manifest was requested.
    """
    if not path:
        return None
    entries = manifest_entries(
        bazel_version=bazel_version,
        toolchain_container=toolchain_container,
        resolved_image=resolved_image,
        os_family=os_family,
        output_tarball=output_tarball,
    )
    write_manifest(path, entries)
    return entries
