"""
Java runtime probing.

Reads JAVA_HOME from the toolchain image config and asks the java binary
under it for its version, then renders the Java runtime BUILD file.
"""

from __future__ import annotations

import logging
import posixpath
from typing import Iterable, Optional

from rbegen.exceptions import CommandFailed, ConfigurationMissing, VersionUndetermined
from rbegen.models import GeneratedFile, Options
from rbegen.sandbox import ToolchainContainer
from rbegen.templates import select_java_template

logger = logging.getLogger(__name__)

JAVA_BUILD_PATH = "java/BUILD"
JAVA_VERSION_PROPERTY = "java.version"


def parse_java_version(lines: Iterable[str]) -> str:
    """
    Extract the value of a `java.version = <version>` line.

    Lines that aren't `key = value` pairs or have another key are skipped.
    If several lines match the last one wins.

    Raises:
        VersionUndetermined: If no line carried a non-empty java.version.
    """
    version = ""
    for line in lines:
        key, sep, value = line.partition("=")
        if not sep or key.strip() != JAVA_VERSION_PROPERTY:
            continue
        version = value.strip()
    if not version:
        raise VersionUndetermined(
            "Unable to determine the java version installed in the container by running "
            "'java -XshowSettings:properties' because it didn't return a line that looked "
            "like java.version = <version>"
        )
    return version


def probe_java_version(container: ToolchainContainer, java_home: str) -> str:
    """Run the JDK's java binary with a deterministic properties dump."""
    java_bin = posixpath.join(java_home, "bin/java")
    # -XshowSettings:properties produces the parseable output; -version just
    # keeps java from erroring out for lack of a main class.
    try:
        out = container.exec(java_bin, "-XshowSettings:properties", "-version")
    except CommandFailed as exc:
        raise VersionUndetermined(
            f"Unable to determine the Java version installed in the toolchain container "
            f"by running {java_bin!r}",
            details={"output": exc.output[-2000:]},
        ) from exc
    return parse_java_version(out.splitlines())


def gen_java_configs(container: ToolchainContainer, options: Options) -> Optional[GeneratedFile]:
    """
    Generate the Java runtime BUILD file.

    Returns None when Java generation is disabled.

    Raises:
        ConfigurationMissing: If the image doesn't declare a non-empty JAVA_HOME.
        VersionUndetermined: If the java version can't be probed.
    """
    if not options.gen_java_configs:
        return None

    try:
        image_env = container.read_env()
    except CommandFailed as exc:
        raise ConfigurationMissing(
            "Unable to get the environment of the toolchain image to determine JAVA_HOME"
        ) from exc
    if "JAVA_HOME" not in image_env:
        raise ConfigurationMissing("Toolchain image didn't specify environment value JAVA_HOME")
    java_home = image_env["JAVA_HOME"]
    if not java_home:
        raise ConfigurationMissing(
            "The value of the JAVA_HOME environment variable was blank in the toolchain image"
        )
    logger.info("JAVA_HOME was %r.", java_home)

    java_version = probe_java_version(container, java_home)
    logger.info("Java version: %r.", java_version)

    template = select_java_template(options.bazel_version)
    logger.info(
        "Using the %s Java BUILD template for Bazel %s.", template.value, options.bazel_version
    )
    contents = template.render(java_home=java_home, java_version=java_version)
    return GeneratedFile(name=JAVA_BUILD_PATH, contents=contents.encode("utf-8"))
