"""
C++ config extraction.

Runs Bazel's C++ toolchain auto-detection inside the toolchain container
from a blank workspace, hardens the symlinks in the generated external
repository and copies it out as a tarball.
"""

from __future__ import annotations

import json
import logging
import os
import posixpath
from typing import Dict, List, Optional, Tuple

from rbegen.exceptions import BuildFailed, CommandFailed, IOFailure, RbegenConfigError
from rbegen.models import Options
from rbegen.sandbox import ToolchainContainer

logger = logging.getLogger(__name__)

CPP_PROJECT_DIR = "cpp_configs_project"
CPP_CONFIGS_TARBALL = "cpp_configs.tar"


def load_env_json(path: str) -> Dict[str, str]:
    """Read a JSON file holding a string -> string dictionary."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as exc:
        raise IOFailure(
            f"Unable to read JSON file {path!r} to read C++ config generation "
            f"environment variables from: {exc}",
            path=path,
        ) from exc
    except json.JSONDecodeError as exc:
        raise RbegenConfigError(
            f"Unable to parse file {path!r} as JSON: {exc}",
            details={"path": path},
        ) from exc
    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise RbegenConfigError(
            f"File {path!r} must contain a JSON string -> string dictionary.",
            details={"path": path},
        )
    return data


def cpp_generation_env(options: Options) -> List[Tuple[str, str]]:
    """
    Environment for the C++ config generation build.

    USE_BAZEL_VERSION first, then the inline variables, then the JSON file
    variables. Later entries win on duplicate keys.
    """
    env: List[Tuple[str, str]] = [("USE_BAZEL_VERSION", options.bazel_version)]
    env.extend(options.cpp_gen_env.items())
    if options.cpp_gen_env_json:
        env.extend(load_env_json(options.cpp_gen_env_json).items())
    return env


def harden_symlinks(container: ToolchainContainer, directory: str) -> int:
    """
    Replace every symlink under directory with a copy of its final target.

    Link chains are followed to the last non-link target. Running this on
    an already hardened directory finds no links and changes nothing.

    Returns:
        Number of links replaced.
    """
    try:
        out = container.exec("find", directory, "-type", "l")
    except CommandFailed as exc:
        raise IOFailure(
            f"Unable to list symlinks in {directory!r} in the toolchain container",
            path=directory,
        ) from exc
    links = [line.strip() for line in out.splitlines() if line.strip()]
    for link in links:
        try:
            resolved = container.exec("readlink", "-f", link)
        except CommandFailed as exc:
            raise IOFailure(
                f"Unable to determine what the symlink {link!r} in {directory!r} points to",
                path=link,
            ) from exc
        try:
            container.exec("cp", "--remove-destination", resolved, link)
        except CommandFailed as exc:
            raise IOFailure(
                f"Failed to harden symlink {link!r} in {directory!r} pointing to {resolved!r}",
                path=link,
            ) from exc
    if links:
        logger.info("Hardened %d symlinks in %s.", len(links), directory)
    return len(links)


def gen_cpp_configs(
    container: ToolchainContainer,
    options: Options,
    bazelisk_path: str,
) -> Optional[str]:
    """
    Generate C++ configs inside the container and copy them out.

    Returns:
        Local path of the C++ configs tarball, or None when C++ generation
        is disabled.

    Raises:
        BuildFailed: If Bazel fails to build the generation targets or to
            report its output base.
        IOFailure: If preparing, hardening, archiving or copying fails.
    """
    if not options.gen_cpp_configs:
        return None

    proj_dir = posixpath.join(container.context.workdir, CPP_PROJECT_DIR)
    try:
        container.exec("mkdir", proj_dir)
    except CommandFailed as exc:
        raise IOFailure(
            f"Failed to create empty directory {proj_dir!r} inside the toolchain container",
            path=proj_dir,
        ) from exc

    with container.scoped(workdir=proj_dir):
        try:
            container.exec("touch", "WORKSPACE", "BUILD.bazel")
        except CommandFailed as exc:
            raise IOFailure(
                "Failed to create empty build & workspace files in the container to "
                "initialize a blank Bazel repository",
                path=proj_dir,
            ) from exc

        bazelisk_env = {"USE_BAZEL_VERSION": options.bazel_version}
        generation_env = dict(cpp_generation_env(options))

        with container.scoped(env=generation_env):
            try:
                container.exec(bazelisk_path, options.cpp_bazel_cmd, *options.cpp_config_targets)
            except CommandFailed as exc:
                raise BuildFailed(
                    "Bazel was unable to build the C++ config generation targets in the "
                    "toolchain container",
                    output=exc.output,
                ) from exc

        # Only USE_BAZEL_VERSION is needed from here; the generation variables are noise.
        with container.scoped(env=bazelisk_env):
            try:
                output_base = container.exec(bazelisk_path, "info", "output_base")
            except CommandFailed as exc:
                raise BuildFailed(
                    "Unable to determine the build output directory where Bazel produced "
                    "C++ configs in the toolchain container",
                    output=exc.output,
                ) from exc

        cpp_config_dir = posixpath.join(output_base, "external", options.cpp_config_repo)
        logger.info(
            "Extracting C++ config files generated by Bazel at %r from the toolchain container.",
            cpp_config_dir,
        )

        harden_symlinks(container, cpp_config_dir)

        # Absolute paths on both sides so the working directory doesn't matter.
        tarball_container_path = posixpath.join(proj_dir, CPP_CONFIGS_TARBALL)
        tarball_path = os.path.join(options.temp_work_dir or "", CPP_CONFIGS_TARBALL)
        try:
            container.exec("tar", "-cf", tarball_container_path, "-C", cpp_config_dir, ".")
        except CommandFailed as exc:
            raise IOFailure(
                "Failed to archive the C++ configs into a tarball inside the toolchain container",
                path=tarball_container_path,
            ) from exc
        try:
            container.copy_out(tarball_container_path, tarball_path)
        except CommandFailed as exc:
            raise IOFailure(
                "Failed to copy the C++ config tarball out of the toolchain container",
                path=tarball_path,
            ) from exc

    logger.info("Generated C++ configs at %s.", tarball_path)
    return tarball_path
