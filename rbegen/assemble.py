"""
Assembly of the generated configs into the requested outputs.

Output layout (tarball entries and directory tree alike):
    cc/...        C++ configs from the container tarball
    java/BUILD    Java runtime definition (if Java generation is enabled)
    config/BUILD  Toolchain entrypoint & default platform

The tarball is byte-for-byte reproducible: entries are written in a fixed
order with mtime 0 and no extended headers carried over from the
container tarball. The tarball and the directory are each built from the
same inputs. Neither is derived from the other.
"""

from __future__ import annotations

import io
import logging
import os
import posixpath
import shutil
import tarfile
from typing import IO, Optional

from rbegen.exceptions import IOFailure
from rbegen.models import GeneratedFile, Options, OutputConfigs

logger = logging.getLogger(__name__)

CC_PREFIX = "cc"
NORMALIZED_MTIME = 0
GENERATED_FILE_MODE = 0o777
WORKSPACE_MARKER = "WORKSPACE"


def _member_path(name: str) -> Optional[str]:
    """
    Normalize an entry name from the C++ configs tarball.

    Returns None for the archive root itself. Names that are absolute or
    escape the root are rejected.
    """
    rel = posixpath.normpath(name)
    if rel in (".", ""):
        return None
    if rel.startswith("/") or rel == ".." or rel.startswith("../"):
        raise IOFailure(f"Tarball entry {name!r} escapes the output root", path=name)
    return rel


def _is_workspace_marker(rel: str) -> bool:
    return rel.endswith(WORKSPACE_MARKER)


def copy_cpp_configs_to_tarball(in_tar_path: str, out_tar: tarfile.TarFile) -> None:
    """
    Copy regular files from the C++ configs tarball into out_tar under cc/.

    Directory entries and the WORKSPACE marker are dropped. Any other entry
    type is an error since symlinks were hardened before archiving.
    """
    try:
        in_tar = tarfile.open(in_tar_path, "r")
    except (OSError, tarfile.TarError) as exc:
        raise IOFailure(
            f"Unable to open input tarball {in_tar_path!r} for reading: {exc}",
            path=in_tar_path,
        ) from exc
    with in_tar:
        try:
            for member in in_tar:
                if member.isdir():
                    continue
                if not member.isreg():
                    raise IOFailure(
                        f"Got unexpected entry with name {member.name!r} of type "
                        f"{member.type!r} in tarball {in_tar_path!r}",
                        path=in_tar_path,
                    )
                rel = _member_path(member.name)
                if rel is None or _is_workspace_marker(rel):
                    continue
                # Fresh header: keeps ownership & mode, drops pax extras and mtime.
                info = tarfile.TarInfo(posixpath.join(CC_PREFIX, rel))
                info.size = member.size
                info.mode = member.mode
                info.uid = member.uid
                info.gid = member.gid
                info.uname = member.uname
                info.gname = member.gname
                info.mtime = NORMALIZED_MTIME
                out_tar.addfile(info, in_tar.extractfile(member))
        except tarfile.TarError as exc:
            raise IOFailure(
                f"Error while reading input tarball {in_tar_path!r}: {exc}",
                path=in_tar_path,
            ) from exc


def write_generated_file_to_tarball(g: GeneratedFile, out_tar: tarfile.TarFile) -> None:
    info = tarfile.TarInfo(g.name)
    info.size = len(g.contents)
    info.mode = GENERATED_FILE_MODE
    info.mtime = NORMALIZED_MTIME
    out_tar.addfile(info, io.BytesIO(g.contents))


def assemble_config_tarball(output_tarball: str, oc: OutputConfigs) -> None:
    """
    Write the merged configs tarball.

    The tarball is written next to its destination and renamed into place
    once complete, so a failure never leaves a truncated tarball behind.
    """
    tmp_path = output_tarball + ".partial"
    try:
        with tarfile.open(tmp_path, "w", format=tarfile.PAX_FORMAT) as out_tar:
            if oc.cpp_configs_tarball:
                copy_cpp_configs_to_tarball(oc.cpp_configs_tarball, out_tar)
            if oc.java_build is not None:
                write_generated_file_to_tarball(oc.java_build, out_tar)
            write_generated_file_to_tarball(oc.config_build, out_tar)
        os.replace(tmp_path, output_tarball)
    except OSError as exc:
        raise IOFailure(
            f"Unable to write output tarball {output_tarball!r}: {exc}",
            path=output_tarball,
        ) from exc
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
    logger.info("Generated Bazel toolchain configs output tarball %r.", output_tarball)


def _write_stream(path: str, src: IO[bytes]) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as out:
        shutil.copyfileobj(src, out)


def copy_cpp_configs_to_output_dir(out_dir: str, cpp_configs_tarball: str) -> None:
    """
    Extract the C++ configs tarball into out_dir/cc.

    Only regular files are extracted. Directories, links and other entry
    types are skipped, as is the WORKSPACE marker.
    """
    cc_dir = os.path.join(out_dir, CC_PREFIX)
    try:
        with tarfile.open(cpp_configs_tarball, "r") as in_tar:
            for member in in_tar:
                if not member.isreg():
                    continue
                rel = _member_path(member.name)
                if rel is None or _is_workspace_marker(rel):
                    continue
                src = in_tar.extractfile(member)
                if src is None:
                    continue
                with src:
                    _write_stream(os.path.join(cc_dir, *rel.split("/")), src)
    except (OSError, tarfile.TarError) as exc:
        raise IOFailure(
            f"Unable to extract C++ configs from {cpp_configs_tarball!r} into {cc_dir!r}: {exc}",
            path=cpp_configs_tarball,
        ) from exc


def write_generated_file(out_dir: str, g: GeneratedFile) -> None:
    full_path = os.path.join(out_dir, *g.name.split("/"))
    try:
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as out:
            out.write(g.contents)
    except OSError as exc:
        raise IOFailure(f"Unable to write file {full_path!r}: {exc}", path=full_path) from exc


def copy_configs_to_output_dir(configs_root: str, oc: OutputConfigs) -> None:
    """Write all configs as real files under configs_root."""
    try:
        os.makedirs(configs_root, exist_ok=True)
    except OSError as exc:
        raise IOFailure(
            f"Unable to create directory {configs_root!r} for writing configs: {exc}",
            path=configs_root,
        ) from exc
    if oc.cpp_configs_tarball:
        copy_cpp_configs_to_output_dir(configs_root, oc.cpp_configs_tarball)
    if oc.java_build is not None:
        write_generated_file(configs_root, oc.java_build)
    write_generated_file(configs_root, oc.config_build)
    logger.info("Copied generated configs to directory %r.", configs_root)


def configs_root_dir(options: Options) -> Optional[str]:
    if not options.output_src_root:
        return None
    return os.path.join(options.output_src_root, options.output_config_path)


def assemble_configs(options: Options, oc: OutputConfigs) -> None:
    """
    Produce every requested output from the same inputs.

    1. A single output tarball, if output_tarball is set.
    2. A directory tree, if output_src_root is set.
    """
    if options.output_tarball:
        assemble_config_tarball(options.output_tarball, oc)
    root = configs_root_dir(options)
    if root is not None:
        copy_configs_to_output_dir(root, oc)
