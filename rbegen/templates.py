"""
BUILD file templates for the generated configs.

Rendering is plain text substitution. The only conditionals are whether
the C++ toolchain stanza is included and which Java template variant is
used for the requested Bazel version.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Iterable

from semver import Version

from rbegen.exceptions import RbegenConfigError

BUILD_HEADER = """\
# Copyright 2020 The Bazel Authors. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# This file is auto-generated by rbegen
# and should not be modified directly.
"""

PACKAGE_STANZA = """
package(default_visibility = ["//visibility:public"])

"""

CC_TOOLCHAIN_TEMPLATE = """
toolchain(
    name = "cc-toolchain",
    exec_compatible_with = [
{exec_constraints}    ],
    target_compatible_with = [
{target_constraints}    ],
    toolchain = "{cpp_toolchain_target}",
    toolchain_type = "@bazel_tools//tools/cpp:toolchain_type",
)"""

PLATFORM_TEMPLATE = """

platform(
    name = "platform",
    parents = ["@local_config_platform//:host"],
    constraint_values = [
{exec_constraints}    ],
    exec_properties = {{
        "container-image": "docker://{toolchain_container}",
        "OSFamily": "{os_family}",
    }},
)
"""

LEGACY_JAVA_TEMPLATE = BUILD_HEADER + """
package(default_visibility = ["//visibility:public"])

java_runtime(
    name = "jdk",
    srcs = [],
    java_home = "{java_home}",
)
"""

JAVA_TEMPLATE = BUILD_HEADER + """
load("@bazel_tools//tools/jdk:local_java_repository.bzl", "local_java_runtime")

package(default_visibility = ["//visibility:public"])

alias(
    name = "jdk",
    actual = "rbe_jdk",
)

local_java_runtime(
    name = "rbe_jdk",
    java_home = "{java_home}",
    version = "{java_version}",
)
"""

# First Bazel version whose Java BUILD uses local_java_runtime.
JAVA_TEMPLATE_THRESHOLD = Version.parse("4.1.0")

# Bazel tags release candidates as "4.1.0rc1"; semver spells it "4.1.0-rc1".
_BAZEL_RC_SUFFIX = re.compile(r"^(\d+\.\d+\.\d+)(rc\d+)$")


class JavaTemplate(Enum):
    """Java runtime BUILD file variants."""

    # Bazel < 4.1.0: a single java_runtime target, no external macro.
    LEGACY = "legacy"
    # Bazel >= 4.1.0: alias to a local_java_runtime with an explicit version.
    CURRENT = "current"

    @property
    def text(self) -> str:
        return LEGACY_JAVA_TEMPLATE if self is JavaTemplate.LEGACY else JAVA_TEMPLATE

    def render(self, *, java_home: str, java_version: str) -> str:
        # The legacy template has no version placeholder; format ignores it.
        return self.text.format(java_home=java_home, java_version=java_version)


def parse_bazel_version(bazel_version: str) -> Version:
    """
    Parse a Bazel version as a semver, pre-releases included.

    Raises:
        RbegenConfigError: If the version isn't a valid semver.
    """
    normalized = _BAZEL_RC_SUFFIX.sub(r"\1-\2", bazel_version.strip())
    try:
        return Version.parse(normalized)
    except ValueError as exc:
        raise RbegenConfigError(
            f"Unable to parse Bazel version {bazel_version!r} as a semver: {exc}",
            details={"bazel_version": bazel_version},
        ) from exc


def select_java_template(bazel_version: str) -> JavaTemplate:
    """Pick the Java BUILD template for a Bazel version (strict threshold at 4.1.0)."""
    if parse_bazel_version(bazel_version) < JAVA_TEMPLATE_THRESHOLD:
        return JavaTemplate.LEGACY
    return JavaTemplate.CURRENT


def _string_list(values: Iterable[str]) -> str:
    return "".join(f'        "{v}",\n' for v in values)


def render_platform_build(
    *,
    exec_constraints: Iterable[str],
    target_constraints: Iterable[str],
    cpp_toolchain_target: str,
    toolchain_container: str,
    os_family: str,
) -> str:
    """
    Render the toolchain entrypoint & platform BUILD file.

    The cc-toolchain stanza is omitted when cpp_toolchain_target is empty.
    """
    exec_constraints = list(exec_constraints)
    parts = [BUILD_HEADER, PACKAGE_STANZA]
    if cpp_toolchain_target:
        parts.append(
            CC_TOOLCHAIN_TEMPLATE.format(
                exec_constraints=_string_list(exec_constraints),
                target_constraints=_string_list(target_constraints),
                cpp_toolchain_target=cpp_toolchain_target,
            )
        )
    parts.append(
        PLATFORM_TEMPLATE.format(
            exec_constraints=_string_list(exec_constraints),
            toolchain_container=toolchain_container,
            os_family=os_family,
        )
    )
    return "".join(parts)
