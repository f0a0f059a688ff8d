"""Toolchain entrypoint & default platform BUILD file."""

from __future__ import annotations

import logging
import posixpath

from rbegen.models import GeneratedFile, Options
from rbegen.templates import render_platform_build

logger = logging.getLogger(__name__)

CONFIG_BUILD_PATH = "config/BUILD"
CPP_TOOLCHAIN_TARGET = "//cc:cc-compiler-k8"


def cpp_toolchain_target(options: Options) -> str:
    """
    Label of the C++ toolchain generated by Bazel, as seen from the output root.

    Empty when C++ generation is disabled. Rooted under output_config_path
    when the configs are placed in a subdirectory of the source tree.
    """
    if not options.gen_cpp_configs:
        return ""
    if options.output_config_path:
        return f"//{posixpath.normpath(options.output_config_path)}/cc:cc-compiler-k8"
    return CPP_TOOLCHAIN_TARGET


def gen_config_build(options: Options, resolved_image: str) -> GeneratedFile:
    """Render config/BUILD for the digest-resolved toolchain image."""
    target = cpp_toolchain_target(options)
    if not target:
        logger.info(
            "Not generating a toolchain target to be used for the C++ Crosstool top because "
            "C++ config generation is disabled."
        )
    params = options.platform_params.model_copy(
        update={"cpp_toolchain_target": target, "toolchain_container": resolved_image}
    )
    logger.info("Fully resolved platform params=%s", params.model_dump())
    contents = render_platform_build(
        exec_constraints=params.exec_constraints,
        target_constraints=params.target_constraints,
        cpp_toolchain_target=params.cpp_toolchain_target,
        toolchain_container=params.toolchain_container,
        os_family=params.os_family,
    )
    return GeneratedFile(name=CONFIG_BUILD_PATH, contents=contents.encode("utf-8"))
