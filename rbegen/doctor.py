"""
rbegen doctor - Environment validation and diagnostics.

Checks:
1. Python version compatibility
2. Required dependencies installed
3. Container runtime (Docker or Podman) availability
4. Bazelisk download URL configured for each exec OS

Usage:
    rbegen-doctor
    rbegen-doctor --verbose
    rbegen-doctor --json
"""
from __future__ import annotations

import sys
import json
import importlib.util
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from rbegen.exceptions import RbegenError

REQUIRED_MODULES = ("pydantic", "httpx", "semver", "dotenv")


@dataclass
class CheckResult:
    """Outcome of one check. A failed "warning" check doesn't fail the report."""
    name: str
    passed: bool
    message: str
    details: Optional[Dict[str, Any]] = None
    severity: str = "error"  # "error", "warning", "info"


@dataclass
class DoctorReport:
    checks: List[CheckResult] = field(default_factory=list)

    def _failed(self, severity: str) -> int:
        return sum(1 for c in self.checks if not c.passed and c.severity == severity)

    @property
    def errors(self) -> int:
        return self._failed("error")

    @property
    def warnings(self) -> int:
        return self._failed("warning")

    @property
    def passed(self) -> bool:
        return self.errors == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "errors": self.errors,
            "warnings": self.warnings,
            "checks": [asdict(c) for c in self.checks],
        }


def check_python_version() -> CheckResult:
    """Check Python version is 3.9+."""
    version = ".".join(str(part) for part in sys.version_info[:3])
    ok = sys.version_info >= (3, 9)
    return CheckResult(
        name="python_version",
        passed=ok,
        message=f"Python {version}" if ok else f"Python {version} (requires 3.9+)",
        details={"version": version},
    )


def check_required_deps() -> CheckResult:
    """Check required dependencies are importable."""
    missing = [m for m in REQUIRED_MODULES if importlib.util.find_spec(m) is None]
    if missing:
        return CheckResult(
            name="required_dependencies",
            passed=False,
            message=f"Missing: {', '.join(missing)}",
            details={"missing": missing},
        )
    return CheckResult(
        name="required_dependencies",
        passed=True,
        message=f"All {len(REQUIRED_MODULES)} required packages installed",
        details={"packages": list(REQUIRED_MODULES)},
    )


def check_container_runtime(preferred: Optional[str] = None) -> CheckResult:
    """Check a container runtime is available to run the toolchain container."""
    from rbegen.sandbox.runtime import detect_runtime

    try:
        runtime = detect_runtime(preferred)
    except RbegenError as exc:
        return CheckResult(name="container_runtime", passed=False, message=exc.message)
    return CheckResult(
        name="container_runtime",
        passed=True,
        message=f"{runtime.value} available for toolchain containers",
        details={"runtime": runtime.value},
        severity="info",
    )


def check_bazelisk_urls() -> CheckResult:
    """Check a Bazelisk download URL resolves for every exec OS."""
    from rbegen.bazelisk import bazelisk_download_info
    from rbegen.models import OS_LINUX, OS_WINDOWS

    urls = {exec_os: bazelisk_download_info(exec_os)[0] for exec_os in (OS_LINUX, OS_WINDOWS)}
    insecure = [url for url in urls.values() if not url.startswith("https://")]
    if insecure:
        return CheckResult(
            name="bazelisk",
            passed=False,
            message="Bazelisk would be downloaded over plain HTTP",
            details={"urls": urls},
            severity="warning",
        )
    return CheckResult(
        name="bazelisk",
        passed=True,
        message="Bazelisk download URLs configured",
        details={"urls": urls},
        severity="info",
    )


def run_doctor() -> DoctorReport:
    """Run all diagnostic checks."""
    from rbegen.config import get_settings

    report = DoctorReport()
    report.checks.append(check_python_version())
    report.checks.append(check_required_deps())
    report.checks.append(check_container_runtime(get_settings().container_runtime))
    report.checks.append(check_bazelisk_urls())
    return report


def _icon(check: CheckResult) -> str:
    if check.passed:
        return "OK"
    return "WARN" if check.severity == "warning" else "FAIL"


def print_report(report: DoctorReport, verbose: bool = False) -> None:
    """Print the doctor report to stdout."""
    width = max((len(c.name) for c in report.checks), default=0)
    print("rbegen doctor")
    for check in report.checks:
        print(f"  [{_icon(check):>4}] {check.name:<{width}}  {check.message}")
        if verbose and check.details:
            for key, value in check.details.items():
                if isinstance(value, dict):
                    for k, v in value.items():
                        print(f"{'':>10}{k}: {v}")
                else:
                    print(f"{'':>10}{key}: {value}")
    summary = "OK" if report.passed else f"FAILED ({report.errors} errors)"
    print(f"Status: {summary}, {report.warnings} warnings")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point for `rbegen-doctor`."""
    import argparse

    parser = argparse.ArgumentParser(description="Check rbegen environment")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed output")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    args = parser.parse_args(argv)

    report = run_doctor()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report, verbose=args.verbose)

    return 0 if report.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
