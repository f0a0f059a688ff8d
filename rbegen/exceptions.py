"""
Typed exceptions for rbegen.

Provides structured error handling with:
- RbegenError: Base exception for all rbegen errors
- RbegenConfigError: Invalid or inconsistent generation options
- SandboxUnavailable: The toolchain container could not be pulled, resolved or started
- ProtocolViolation: The container engine returned something malformed
- CommandFailed: A container engine command exited non-zero
- BuildFailed: Bazel failed to build the C++ config generation targets
- ConfigurationMissing: The toolchain image lacks a required fact (e.g. JAVA_HOME)
- VersionUndetermined: The runtime probe never reported a version
- DigestExtractionFailed: The resolved image is not referenced by sha256 digest
- IOFailure: Local filesystem or network errors while producing artifacts

Every error aborts the pipeline. None of them are retried.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class RbegenError(Exception):
    """Base exception for all rbegen errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class RbegenConfigError(RbegenError):
    """Invalid generation options.

    Raised when:
    - No output (tarball or directory) was requested
    - The Bazel version is not a parseable version
    - A temp work dir was given but doesn't exist
    """

    pass


class SandboxUnavailable(RbegenError):
    """The toolchain container could not be brought up.

    Attributes:
        image: The image reference that was being pulled/started
    """

    def __init__(
        self,
        message: str,
        *,
        image: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if image:
            details["image"] = image
        self.image = image
        super().__init__(message, code=code, details=details)


class ProtocolViolation(RbegenError):
    """The container engine returned a malformed identifier."""

    pass


class CommandFailed(RbegenError):
    """A container engine command exited with a non-zero status.

    Attributes:
        argv: The argv that was run
        output: Combined stdout/stderr of the command
        returncode: Exit status (None if the binary couldn't be started)
    """

    def __init__(
        self,
        message: str,
        *,
        argv: Sequence[str] = (),
        output: str = "",
        returncode: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["argv"] = list(argv)
        if output:
            details["output"] = output[-2000:]
        if returncode is not None:
            details["returncode"] = returncode

        self.argv: List[str] = list(argv)
        self.output = output
        self.returncode = returncode

        super().__init__(message, code=code, details=details)


class BuildFailed(RbegenError):
    """Bazel exited non-zero while generating C++ configs.

    Attributes:
        output: Captured Bazel output for diagnosis
    """

    def __init__(
        self,
        message: str,
        *,
        output: str = "",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if output:
            details["output"] = output[-2000:]
        self.output = output
        super().__init__(message, code=code, details=details)


class ConfigurationMissing(RbegenError):
    """A required environment fact is absent from the toolchain image."""

    pass


class VersionUndetermined(RbegenError):
    """The runtime probe output had no version line."""

    pass


class DigestExtractionFailed(RbegenError):
    """The resolved image reference isn't qualified by a sha256 digest."""

    pass


class IOFailure(RbegenError):
    """Local filesystem or network error while reading or writing artifacts.

    Attributes:
        path: The local path or URL involved, if any
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if path:
            details["path"] = path
        self.path = path
        super().__init__(message, code=code, details=details)


__all__ = [
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
