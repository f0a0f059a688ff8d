"""
End-to-end config generation.

acquire container -> install Bazelisk -> C++ configs -> Java configs ->
config/BUILD -> assemble outputs -> manifest -> release container

Each step either succeeds or raises, which aborts every later step. The
container is released on every exit path.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from typing import Optional

import httpx

from rbegen.assemble import assemble_configs, configs_root_dir
from rbegen.bazelisk import install_bazelisk, workdir
from rbegen.config import get_settings
from rbegen.config_build import gen_config_build
from rbegen.cpp import gen_cpp_configs
from rbegen.exceptions import CommandFailed, IOFailure, RbegenConfigError
from rbegen.java import gen_java_configs
from rbegen.manifest import create_manifest
from rbegen.models import GenerationResult, Options, OutputConfigs
from rbegen.sandbox import detect_runtime, get_runtime_command, toolchain_container

logger = logging.getLogger(__name__)


def prepare_temp_dir(options: Options) -> str:
    """Validate the given temp work dir or create a fresh one."""
    if options.temp_work_dir:
        if not os.path.exists(options.temp_work_dir):
            raise RbegenConfigError(
                f"Got {options.temp_work_dir!r} as the temp work dir but the path doesn't exist."
            )
        if not os.path.isdir(options.temp_work_dir):
            raise RbegenConfigError(
                f"Got {options.temp_work_dir!r} as the temp work dir but the path doesn't "
                "point to a directory."
            )
        return options.temp_work_dir
    try:
        return tempfile.mkdtemp(prefix="rbegen_")
    except OSError as exc:
        raise IOFailure(
            f"Failed to create a temporary local directory to write intermediate files: {exc}"
        ) from exc


def run(options: Options, *, http_client: Optional[httpx.Client] = None) -> GenerationResult:
    """
    Generate Bazel toolchain configs as requested by options.

    Raises:
        RbegenError: Any failure. Nothing produced before the failure should
            be considered valid.
    """
    runtime_cmd = get_runtime_command(
        detect_runtime(options.runtime or get_settings().container_runtime)
    )
    created_temp_dir = not options.temp_work_dir
    temp_dir = prepare_temp_dir(options)
    options = options.model_copy(update={"temp_work_dir": temp_dir})

    try:
        result = _generate(options, runtime_cmd, http_client)
    finally:
        # A caller-provided temp work dir is never deleted.
        if options.cleanup and created_temp_dir:
            _remove_temp_dir(temp_dir)
    return result


def _generate(
    options: Options,
    runtime_cmd: str,
    http_client: Optional[httpx.Client],
) -> GenerationResult:
    with toolchain_container(
        options.toolchain_container,
        stop_on_release=options.cleanup,
        runtime_cmd=runtime_cmd,
    ) as container:
        root = workdir(options.exec_os)
        try:
            container.exec("mkdir", root)
        except CommandFailed as exc:
            raise IOFailure(
                "Failed to create an empty working directory in the container", path=root
            ) from exc

        with container.scoped(workdir=root):
            bazelisk_path = install_bazelisk(
                container, options.temp_work_dir or "", options.exec_os, client=http_client
            )
            cpp_configs_tarball = gen_cpp_configs(container, options, bazelisk_path)
            java_build = gen_java_configs(container, options)

        resolved_image = container.resolved_image
        config_build = gen_config_build(options, resolved_image)
        oc = OutputConfigs(
            config_build=config_build,
            cpp_configs_tarball=cpp_configs_tarball,
            java_build=java_build,
        )
        assemble_configs(options, oc)

        # Written last so it describes exactly what was produced.
        entries = create_manifest(
            options.output_manifest,
            bazel_version=options.bazel_version,
            toolchain_container=options.toolchain_container,
            resolved_image=resolved_image,
            os_family=options.platform_params.os_family,
            output_tarball=options.output_tarball,
        )
    tarball_digest = dict(entries).get("ConfigsTarballDigest") if entries else None

    return GenerationResult(
        resolved_image=resolved_image,
        output_tarball=options.output_tarball,
        output_dir=configs_root_dir(options),
        manifest=options.output_manifest,
        tarball_digest=tarball_digest,
    )


def _remove_temp_dir(path: str) -> None:
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.warning("Unable to delete temporary working directory %r: %s", path, exc)
