from __future__ import annotations

import pytest

from rbegen.exceptions import ConfigurationMissing, RbegenConfigError, VersionUndetermined
from rbegen.java import JAVA_BUILD_PATH, gen_java_configs, parse_java_version
from rbegen.models import build_options
from rbegen.sandbox import ToolchainContainer
from tests.fakes import FakeEngine

IMAGE = "gcr.io/test/toolchain:latest"


def _options(bazel_version: str = "4.2.0", **overrides):
    values = dict(
        bazel_version=bazel_version,
        toolchain_container=IMAGE,
        output_tarball="/tmp/unused.tar",
    )
    values.update(overrides)
    return build_options(**values)


def _acquire(tmp_path, monkeypatch, **engine_kwargs) -> ToolchainContainer:
    fake = FakeEngine(tmp_path, **engine_kwargs)
    monkeypatch.setattr("rbegen.sandbox.container.run_cmd", fake)
    return ToolchainContainer.acquire(IMAGE)


# -- parse_java_version -------------------------------------------------------


def test_parse_java_version_from_properties_dump() -> None:
    lines = [
        "Property settings:",
        "    java.home = /usr/lib/jvm/java-17",
        "    java.version = 17.0.2",
        "    java.version.date = 2022-01-18",
        'openjdk version "17.0.2" 2022-01-18',
    ]
    assert parse_java_version(lines) == "17.0.2"


def test_parse_java_version_last_match_wins() -> None:
    assert parse_java_version(["java.version = 1.8.0", "java.version=11.0.1"]) == "11.0.1"


def test_parse_java_version_ignores_lookalike_keys() -> None:
    lines = ["java.version.date = 2022-01-18", "java.vm.version = 17.0.2+8"]
    with pytest.raises(VersionUndetermined):
        parse_java_version(lines)


def test_parse_java_version_empty_value_is_absent() -> None:
    with pytest.raises(VersionUndetermined):
        parse_java_version(["java.version = "])


def test_parse_java_version_no_output() -> None:
    with pytest.raises(VersionUndetermined):
        parse_java_version([])


# -- gen_java_configs ---------------------------------------------------------


def test_gen_java_configs_disabled(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch)
    assert gen_java_configs(container, _options(gen_java_configs=False)) is None


def test_gen_java_configs_current_template(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch)

    generated = gen_java_configs(container, _options("4.2.0"))

    assert generated.name == JAVA_BUILD_PATH
    text = generated.contents.decode("utf-8")
    assert 'java_home = "/usr/lib/jvm/java-11"' in text
    assert 'version = "11.0.12"' in text
    assert "local_java_runtime(" in text
    assert 'actual = "rbe_jdk"' in text


def test_gen_java_configs_legacy_template(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch)

    text = gen_java_configs(container, _options("4.0.0")).contents.decode("utf-8")

    assert "java_runtime(" in text
    assert "local_java_runtime" not in text
    assert "11.0.12" not in text


def test_gen_java_configs_rolling_release_uses_current_template(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch)

    text = gen_java_configs(container, _options("5.0.0-pre.20210708.4")).contents.decode("utf-8")

    assert "local_java_runtime(" in text
    assert 'version = "11.0.12"' in text


def test_gen_java_configs_release_candidate_uses_legacy_template(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch)

    text = gen_java_configs(container, _options("4.1.0-rc1")).contents.decode("utf-8")

    assert "local_java_runtime" not in text


def test_gen_java_configs_unparseable_bazel_version(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch)
    with pytest.raises(RbegenConfigError):
        gen_java_configs(container, _options("latest"))


def test_gen_java_configs_probes_java_under_java_home(tmp_path, monkeypatch) -> None:
    fake = FakeEngine(tmp_path)
    monkeypatch.setattr("rbegen.sandbox.container.run_cmd", fake)
    container = ToolchainContainer.acquire(IMAGE)

    gen_java_configs(container, _options())

    assert fake.execs[-1]["argv"] == [
        "/usr/lib/jvm/java-11/bin/java", "-XshowSettings:properties", "-version",
    ]


def test_gen_java_configs_missing_java_home(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch, image_env=["PATH=/usr/bin"])
    with pytest.raises(ConfigurationMissing):
        gen_java_configs(container, _options())


def test_gen_java_configs_blank_java_home(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch, image_env=["JAVA_HOME="])
    with pytest.raises(ConfigurationMissing):
        gen_java_configs(container, _options())


def test_gen_java_configs_java_home_last_declaration_wins(tmp_path, monkeypatch) -> None:
    container = _acquire(
        tmp_path, monkeypatch, image_env=["JAVA_HOME=/opt/old", "JAVA_HOME=/opt/jdk"]
    )
    text = gen_java_configs(container, _options()).contents.decode("utf-8")
    assert 'java_home = "/opt/jdk"' in text


def test_gen_java_configs_no_version_line(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch, java_output="Error: no properties\n")
    with pytest.raises(VersionUndetermined):
        gen_java_configs(container, _options())


def test_gen_java_configs_java_fails(tmp_path, monkeypatch) -> None:
    container = _acquire(tmp_path, monkeypatch, fail_on=["java"])
    with pytest.raises(VersionUndetermined):
        gen_java_configs(container, _options())
