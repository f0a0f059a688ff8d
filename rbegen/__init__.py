"""
rbegen - Bazel remote execution toolchain configs, probed from a container.

Spins up the toolchain container, lets Bazel auto-detect the C++ toolchain
inside it, probes the installed JDK and packages the result into a
reproducible tarball and/or directory tree plus a manifest.

Usage:
    from rbegen import build_options, run

    options = build_options(
        bazel_version="4.2.0",
        toolchain_container="l.gcr.io/google/rbe-ubuntu16-04:latest",
        output_tarball="/tmp/configs.tar",
        output_manifest="/tmp/manifest.txt",
    )
    result = run(options)
    print(result.resolved_image, result.tarball_digest)

Command line:
    rbegen --bazel_version=4.2.0 --toolchain_container=<image> --output_tarball=configs.tar
"""

from rbegen.exceptions import (  # noqa: F401
    BuildFailed,
    CommandFailed,
    ConfigurationMissing,
    DigestExtractionFailed,
    IOFailure,
    ProtocolViolation,
    RbegenConfigError,
    RbegenError,
    SandboxUnavailable,
    VersionUndetermined,
)
from rbegen.models import (  # noqa: F401
    GeneratedFile,
    GenerationResult,
    Options,
    PlatformParams,
    build_options,
)
from rbegen.pipeline import run  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "run",
    "build_options",
    "Options",
    "PlatformParams",
    "GeneratedFile",
    "GenerationResult",
    "RbegenError",
    "RbegenConfigError",
    "SandboxUnavailable",
    "ProtocolViolation",
    "CommandFailed",
    "BuildFailed",
    "ConfigurationMissing",
    "VersionUndetermined",
    "DigestExtractionFailed",
    "IOFailure",
]
