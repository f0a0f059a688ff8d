"""
Toolchain container lifecycle.

Provides:
- ToolchainContainer: One running container (acquire, exec, cp, read_env, release)
- ExecContext: Immutable working directory + environment overlay for exec calls
- toolchain_container: Context manager guaranteeing release on every exit path
- detect_runtime: Pick Docker or Podman

Usage:
    from rbegen.sandbox import toolchain_container

    with toolchain_container("ubuntu:20.04") as container:
        print(container.resolved_image)
        print(container.read_env().get("PATH"))
"""
from rbegen.sandbox.container import (
    CONTAINER_ID_LENGTH,
    ExecContext,
    ToolchainContainer,
    parse_env,
    run_cmd,
    toolchain_container,
)
from rbegen.sandbox.runtime import ContainerRuntime, detect_runtime, get_runtime_command

__all__ = [
    "CONTAINER_ID_LENGTH",
    "ExecContext",
    "ToolchainContainer",
    "parse_env",
    "run_cmd",
    "toolchain_container",
    "ContainerRuntime",
    "detect_runtime",
    "get_runtime_command",
]
