"""
Long-lived toolchain container driven through the container engine CLI.

The container is created from the digest-resolved image running
`sleep infinity`, so commands can be dispatched into it on demand via
`<engine> exec`. Files cross the boundary with `<engine> cp`.

Usage:
    with toolchain_container("gcr.io/my/image:latest") as container:
        container.exec("mkdir", "/workdir")
        with container.scoped(workdir="/workdir", env={"USE_BAZEL_VERSION": "4.2.0"}):
            container.exec("bazelisk", "info", "output_base")

The working directory and environment overlay live in an immutable
ExecContext. scoped() swaps in a derived context and always restores the
previous one on exit, so a stage can never leak its overrides.
"""

from __future__ import annotations

import logging
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

from rbegen.exceptions import CommandFailed, ProtocolViolation, SandboxUnavailable

logger = logging.getLogger(__name__)

CONTAINER_ID_LENGTH = 64

_HEX_DIGITS = frozenset("0123456789abcdef")


def run_cmd(args: Sequence[str]) -> str:
    """
    Run a command, log the exact invocation and return combined stdout/stderr.

    Raises:
        CommandFailed: If the command couldn't be started or exited non-zero.
            The combined output is logged and attached to the error.
    """
    cmd_str = "'%s'" % " ".join(args)
    logger.info("Running: %s", cmd_str)
    try:
        proc = subprocess.run(
            list(args),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise CommandFailed(
            f"Unable to run {cmd_str}: {exc}",
            argv=args,
        ) from exc
    if proc.returncode != 0:
        logger.info("Output: %s", proc.stdout)
        raise CommandFailed(
            f"Command {cmd_str} exited with status {proc.returncode}",
            argv=args,
            output=proc.stdout or "",
            returncode=proc.returncode,
        )
    return proc.stdout or ""


def parse_env(raw: str) -> Dict[str, str]:
    """
    Parse one KEY=VALUE declaration per line into a mapping.

    Later declarations of a key supersede earlier ones. A line without '='
    declares the key with an empty value. Blank lines and lines with an
    empty key are ignored.
    """
    result: Dict[str, str] = {}
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        key, _, value = line.partition("=")
        if not key:
            continue
        result[key] = value
    return result


@dataclass(frozen=True)
class ExecContext:
    """
    Working directory and environment overlay for `exec` calls.

    env holds KEY=VALUE pairs in the order they were added. When a key
    appears more than once the last value wins.
    """

    workdir: str = ""
    env: Tuple[Tuple[str, str], ...] = ()

    def with_workdir(self, workdir: str) -> "ExecContext":
        return replace(self, workdir=workdir)

    def with_env(self, env: Iterable[Tuple[str, str]]) -> "ExecContext":
        """Replace the environment overlay."""
        return replace(self, env=tuple(env))

    def effective_env(self) -> Dict[str, str]:
        # Dict insertion keeps first-seen order; assignment keeps the last value.
        merged: Dict[str, str] = {}
        for key, value in self.env:
            merged[key] = value
        return merged

    def exec_args(self) -> list[str]:
        """Engine `exec` flags for this context."""
        args: list[str] = []
        if self.workdir:
            args.extend(["-w", self.workdir])
        for key, value in self.effective_env().items():
            args.extend(["-e", f"{key}={value}"])
        return args


class ToolchainContainer:
    """
    A running toolchain container.

    The resolved image and container ID are set once by acquire() and are
    read-only afterwards. The exec context is the only mutable state and
    is changed through scoped().
    """

    def __init__(
        self,
        image: str,
        *,
        stop_on_release: bool = True,
        runtime_cmd: str = "docker",
    ) -> None:
        self._image = image
        self._stop_on_release = stop_on_release
        self._runtime_cmd = runtime_cmd
        self._resolved_image: Optional[str] = None
        self._container_id: Optional[str] = None
        self._context = ExecContext()
        self._released = False

    @property
    def image(self) -> str:
        return self._image

    @property
    def resolved_image(self) -> str:
        if self._resolved_image is None:
            raise RuntimeError("Container image has not been resolved yet.")
        return self._resolved_image

    @property
    def container_id(self) -> str:
        if self._container_id is None:
            raise RuntimeError("Container has not been created yet.")
        return self._container_id

    @property
    def context(self) -> ExecContext:
        return self._context

    @property
    def runtime_cmd(self) -> str:
        return self._runtime_cmd

    @classmethod
    def acquire(
        cls,
        image: str,
        *,
        stop_on_release: bool = True,
        runtime_cmd: str = "docker",
    ) -> "ToolchainContainer":
        """
        Pull the image, resolve it by digest, then create and start a container.

        Raises:
            SandboxUnavailable: If any of pull/inspect/create/start fails or the
                image can't be resolved to a digest-qualified reference.
            ProtocolViolation: If the engine returned a malformed container ID.
        """
        if not image:
            raise SandboxUnavailable("Toolchain container image was not specified.")
        container = cls(image, stop_on_release=stop_on_release, runtime_cmd=runtime_cmd)
        container._start()
        return container

    def _start(self) -> None:
        cmd = self._runtime_cmd
        try:
            run_cmd([cmd, "pull", self._image])
        except CommandFailed as exc:
            raise SandboxUnavailable(
                f"{cmd} was unable to pull the toolchain container image {self._image!r}",
                image=self._image,
            ) from exc

        try:
            resolved = run_cmd(
                [cmd, "inspect", "--format={{index .RepoDigests 0}}", self._image]
            ).strip()
        except CommandFailed as exc:
            raise SandboxUnavailable(
                f"Failed to convert toolchain container image {self._image!r} into a "
                "fully qualified image name by digest",
                image=self._image,
            ) from exc
        if "@" not in resolved:
            raise SandboxUnavailable(
                f"Toolchain container image {self._image!r} resolved to {resolved!r}, "
                "which is not a digest-qualified reference",
                image=self._image,
            )
        logger.info(
            "Resolved toolchain image %r to fully qualified reference %r.",
            self._image,
            resolved,
        )
        self._resolved_image = resolved

        try:
            cid = run_cmd([cmd, "create", "--rm", resolved, "sleep", "infinity"]).strip()
        except CommandFailed as exc:
            raise SandboxUnavailable(
                "Failed to create a container with the toolchain container image",
                image=resolved,
            ) from exc
        if len(cid) != CONTAINER_ID_LENGTH or not set(cid) <= _HEX_DIGITS:
            raise ProtocolViolation(
                f"Container ID {cid!r} extracted from the stdout of the container create "
                f"command is malformed, got length {len(cid)}, want {CONTAINER_ID_LENGTH} "
                "hex digits",
                details={"container_id": cid},
            )
        self._container_id = cid
        logger.info("Created container ID %s for toolchain container image %s.", cid, resolved)

        try:
            run_cmd([cmd, "start", cid])
        except CommandFailed as exc:
            self._remove_quietly()
            raise SandboxUnavailable(
                "Failed to run the toolchain container",
                image=resolved,
            ) from exc

    def _remove_quietly(self) -> None:
        try:
            run_cmd([self._runtime_cmd, "rm", "-f", self.container_id])
        except CommandFailed as exc:
            logger.warning("Failed to remove container %s: %s", self.container_id, exc)

    def exec(self, *args: str) -> str:
        """
        Run a command inside the container with the current exec context.

        Returns the combined output with surrounding whitespace trimmed.

        Raises:
            CommandFailed: If the command exits non-zero. The error carries the
                captured output.
        """
        argv = [self._runtime_cmd, "exec", *self._context.exec_args(), self.container_id]
        argv.extend(args)
        return run_cmd(argv).strip()

    @contextmanager
    def scoped(
        self,
        *,
        workdir: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> Iterator["ToolchainContainer"]:
        """
        Temporarily override the working directory and/or environment overlay.

        env replaces the overlay for the duration of the block. The previous
        context is restored on exit, whether or not the block raised.
        """
        previous = self._context
        context = previous
        if workdir is not None:
            context = context.with_workdir(workdir)
        if env is not None:
            context = context.with_env(env.items())
        self._context = context
        try:
            yield self
        finally:
            self._context = previous

    def copy_in(self, src: str, dst: str) -> None:
        """Copy local file src to absolute path dst inside the container."""
        run_cmd([self._runtime_cmd, "cp", src, f"{self.container_id}:{dst}"])

    def copy_out(self, src: str, dst: str) -> None:
        """Copy absolute path src inside the container to local path dst."""
        run_cmd([self._runtime_cmd, "cp", f"{self.container_id}:{src}", dst])

    def read_env(self) -> Dict[str, str]:
        """
        Environment declared by the image config.

        Variables set or changed by commands run after the container started
        are not reflected here.
        """
        raw = run_cmd(
            [
                self._runtime_cmd,
                "inspect",
                "-f",
                "{{range $i, $v := .Config.Env}}{{println $v}}{{end}}",
                self.resolved_image,
            ]
        )
        return parse_env(raw)

    def release(self) -> None:
        """Stop the container unless it was asked to be kept. Never raises."""
        if self._released or self._container_id is None:
            return
        self._released = True
        if not self._stop_on_release:
            logger.info(
                "Not stopping container %s of image %s because cleanup was disabled.",
                self._container_id,
                self._resolved_image,
            )
            return
        try:
            run_cmd([self._runtime_cmd, "stop", "-t", "0", self._container_id])
        except CommandFailed as exc:
            logger.warning(
                "Failed to stop container %s of toolchain image %s but it's ok to ignore "
                "this error if config generation & extraction succeeded: %s",
                self._container_id,
                self._resolved_image,
                exc,
            )


@contextmanager
def toolchain_container(
    image: str,
    *,
    stop_on_release: bool = True,
    runtime_cmd: str = "docker",
) -> Iterator[ToolchainContainer]:
    """Acquire a toolchain container and release it on every exit path."""
    container = ToolchainContainer.acquire(
        image, stop_on_release=stop_on_release, runtime_cmd=runtime_cmd
    )
    try:
        yield container
    finally:
        container.release()
