from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from rbegen.exceptions import RbegenConfigError

OS_LINUX = "linux"
OS_WINDOWS = "windows"

ExecOS = Literal["linux", "windows"]

# OS-dependent defaults applied when the caller leaves a field unset.
_OS_DEFAULTS: Dict[str, Dict[str, Any]] = {
    OS_LINUX: {
        "cpp_config_targets": ["@local_config_cc//:toolchain"],
        "cpp_config_repo": "local_config_cc",
        "cpp_bazel_cmd": "build",
        "exec_constraints": [
            "@platforms//os:linux",
            "@platforms//cpu:x86_64",
            "@bazel_tools//tools/cpp:clang",
        ],
        "target_constraints": [
            "@platforms//os:linux",
            "@platforms//cpu:x86_64",
        ],
        "os_family": "Linux",
    },
    OS_WINDOWS: {
        "cpp_config_targets": ["@local_config_cc//..."],
        "cpp_config_repo": "local_config_cc",
        "cpp_bazel_cmd": "query",
        "exec_constraints": [
            "@platforms//os:windows",
            "@platforms//cpu:x86_64",
        ],
        "target_constraints": [
            "@platforms//os:windows",
            "@platforms//cpu:x86_64",
        ],
        "os_family": "Windows",
    },
}


class PlatformParams(BaseModel):
    """
    Inputs to the toolchain entrypoint & platform BUILD file.

    toolchain_container is the digest-qualified image reference, filled in
    by the pipeline once the container is up. cpp_toolchain_target is only
    set when C++ configs are generated.
    """

    model_config = ConfigDict(extra="forbid")

    exec_constraints: List[str] = Field(default_factory=list)
    target_constraints: List[str] = Field(default_factory=list)
    cpp_toolchain_target: str = ""
    toolchain_container: str = ""
    os_family: str = ""


class Options(BaseModel):
    """
    Everything needed for one config generation run.

    Output layout under the configs root:
        cc/      C++ configs as generated by Bazel's toolchain detection
        config/  Toolchain entrypoint target & the default platform
        java/    Java runtime definition

    Attributes:
        bazel_version: Bazel version passed to Bazelisk (also selects the Java template).
        toolchain_container: Image to probe, tagged or by digest.
        exec_os: OS of the toolchain container ("linux" or "windows").
        output_tarball: Path to write the merged configs tarball to.
        output_src_root: Directory root to extract configs into.
        output_config_path: Subdirectory of output_src_root for the configs.
        output_manifest: Path to write the manifest to.
        cleanup: Stop the container and delete the temp work dir at the end.
    """

    model_config = ConfigDict(extra="forbid")

    bazel_version: str
    toolchain_container: str
    exec_os: ExecOS = OS_LINUX
    target_os: ExecOS = OS_LINUX

    output_tarball: Optional[str] = None
    output_src_root: Optional[str] = None
    output_config_path: str = ""
    output_manifest: Optional[str] = None

    gen_cpp_configs: bool = True
    cpp_gen_env: Dict[str, str] = Field(default_factory=dict)
    cpp_gen_env_json: Optional[str] = None
    cpp_config_targets: List[str] = Field(default_factory=list)
    cpp_config_repo: str = ""
    cpp_bazel_cmd: str = ""

    gen_java_configs: bool = True

    temp_work_dir: Optional[str] = None
    cleanup: bool = True
    runtime: Optional[Literal["docker", "podman"]] = None

    platform_params: PlatformParams = Field(default_factory=PlatformParams)

    @model_validator(mode="after")
    def apply_defaults(self) -> "Options":
        defaults = _OS_DEFAULTS[self.exec_os]
        if not self.cpp_config_targets:
            self.cpp_config_targets = list(defaults["cpp_config_targets"])
        if not self.cpp_config_repo:
            self.cpp_config_repo = defaults["cpp_config_repo"]
        if not self.cpp_bazel_cmd:
            self.cpp_bazel_cmd = defaults["cpp_bazel_cmd"]

        params = self.platform_params
        update: Dict[str, Any] = {}
        if not params.exec_constraints:
            update["exec_constraints"] = list(defaults["exec_constraints"])
        if not params.target_constraints:
            update["target_constraints"] = list(_OS_DEFAULTS[self.target_os]["target_constraints"])
        if not params.os_family:
            update["os_family"] = defaults["os_family"]
        # A caller-supplied PlatformParams instance is not copied by validation.
        self.platform_params = params.model_copy(update=update, deep=True)
        return self

    @model_validator(mode="after")
    def validate_request(self) -> "Options":
        if not self.toolchain_container:
            raise ValueError("toolchain_container must be specified.")
        if not self.bazel_version:
            raise ValueError("bazel_version must be specified.")
        if not self.output_tarball and not self.output_src_root:
            raise ValueError(
                "At least one of output_tarball or output_src_root must be specified."
            )
        if self.output_config_path and not self.output_src_root:
            raise ValueError("output_config_path requires output_src_root.")
        if self.cpp_gen_env_json and not self.gen_cpp_configs:
            raise ValueError("cpp_gen_env_json requires C++ config generation.")
        if self.platform_params.cpp_toolchain_target:
            raise ValueError(
                "platform_params.cpp_toolchain_target is computed and must not be set."
            )
        return self


def build_options(**values: Any) -> Options:
    """Build Options, reporting validation failures as RbegenConfigError."""
    try:
        return Options(**values)
    except ValidationError as exc:
        raise RbegenConfigError(
            f"Invalid options: {exc}",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


@dataclass(frozen=True)
class GeneratedFile:
    """One file of the output configs: logical path + contents."""

    name: str
    contents: bytes


@dataclass
class OutputConfigs:
    """
    Inputs to the assembler.

    cpp_configs_tarball is the local path of the tarball copied out of the
    container (None when C++ generation is off). java_build is None when
    Java generation is off.
    """

    config_build: GeneratedFile
    cpp_configs_tarball: Optional[str] = None
    java_build: Optional[GeneratedFile] = None


@dataclass
class GenerationResult:
    """What a run produced, for programmatic callers."""

    resolved_image: str
    output_tarball: Optional[str] = None
    output_dir: Optional[str] = None
    manifest: Optional[str] = None
    tarball_digest: Optional[str] = None
