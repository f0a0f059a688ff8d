from __future__ import annotations

import json

from rbegen import doctor
from rbegen.doctor import CheckResult, DoctorReport


def test_report_counts_only_failed_checks() -> None:
    report = DoctorReport(
        checks=[
            CheckResult("a", True, "fine"),
            CheckResult("b", False, "meh", severity="warning"),
            CheckResult("c", False, "broken"),
        ]
    )
    assert report.errors == 1
    assert report.warnings == 1
    assert report.passed is False


def test_report_passes_with_warnings_only() -> None:
    report = DoctorReport(checks=[CheckResult("b", False, "meh", severity="warning")])
    assert report.passed is True


def test_required_deps_installed() -> None:
    result = doctor.check_required_deps()
    assert result.passed
    assert result.details["packages"] == list(doctor.REQUIRED_MODULES)


def test_container_runtime_check_reports_detection_failure(monkeypatch) -> None:
    monkeypatch.setattr("rbegen.sandbox.runtime.shutil.which", lambda cmd: None)
    result = doctor.check_container_runtime()
    assert result.passed is False
    assert "Docker or Podman" in result.message


def test_container_runtime_check_preferred() -> None:
    result = doctor.check_container_runtime("podman")
    assert result.passed
    assert result.details == {"runtime": "podman"}


def test_bazelisk_urls_warn_on_plain_http(monkeypatch) -> None:
    from rbegen.config import reset_settings

    monkeypatch.setenv("RBEGEN_BAZELISK_BASE_URL", "http://mirror.internal/bazelisk")
    reset_settings()

    result = doctor.check_bazelisk_urls()
    assert result.passed is False
    assert result.severity == "warning"


def test_main_json(monkeypatch, capsys) -> None:
    monkeypatch.setenv("RBEGEN_CONTAINER_RUNTIME", "docker")

    code = doctor.main(["--json"])

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert payload["passed"] is True
    assert [c["name"] for c in payload["checks"]] == [
        "python_version",
        "required_dependencies",
        "container_runtime",
        "bazelisk",
    ]


def test_main_text_verbose(monkeypatch, capsys) -> None:
    monkeypatch.setattr("rbegen.sandbox.runtime.shutil.which", lambda cmd: None)

    code = doctor.main(["--verbose"])

    out = capsys.readouterr().out
    assert code == 1
    assert "[FAIL] container_runtime" in out
    assert "bazelisk-linux-amd64" in out
    assert "Status: FAILED (1 errors)" in out
