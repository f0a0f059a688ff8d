from __future__ import annotations

import json
import os
import tarfile

import pytest

from rbegen.cpp import (
    CPP_CONFIGS_TARBALL,
    cpp_generation_env,
    gen_cpp_configs,
    harden_symlinks,
    load_env_json,
)
from rbegen.exceptions import BuildFailed, IOFailure, RbegenConfigError
from rbegen.models import build_options
from rbegen.sandbox import ExecContext, ToolchainContainer
from tests.fakes import FakeEngine

IMAGE = "gcr.io/test/toolchain:latest"
BAZELISK = "/workdir/bazelisk"


def _options(tmp_path, **overrides):
    work = tmp_path / "work"
    work.mkdir(exist_ok=True)
    values = dict(
        bazel_version="4.2.0",
        toolchain_container=IMAGE,
        output_tarball=str(tmp_path / "configs.tar"),
        temp_work_dir=str(work),
    )
    values.update(overrides)
    return build_options(**values)


def _container(engine: FakeEngine) -> ToolchainContainer:
    container = ToolchainContainer.acquire(IMAGE)
    container.exec("mkdir", "/workdir")
    return container


def _bazelisk_execs(engine: FakeEngine):
    return [e for e in engine.execs if e["argv"][0] == BAZELISK]


# -- environment --------------------------------------------------------------


def test_generation_env_order_and_precedence(tmp_path) -> None:
    env_file = tmp_path / "env.json"
    env_file.write_text(json.dumps({"CC": "gcc", "BAZEL_USE_CPP_ONLY_TOOLCHAIN": "1"}))
    options = _options(
        tmp_path,
        cpp_gen_env={"CC": "clang", "ABI_VERSION": "gcc"},
        cpp_gen_env_json=str(env_file),
    )

    env = cpp_generation_env(options)

    assert env[0] == ("USE_BAZEL_VERSION", "4.2.0")
    assert env[1:3] == [("CC", "clang"), ("ABI_VERSION", "gcc")]
    assert dict(env) == {
        "USE_BAZEL_VERSION": "4.2.0",
        "CC": "gcc",
        "ABI_VERSION": "gcc",
        "BAZEL_USE_CPP_ONLY_TOOLCHAIN": "1",
    }


def test_generation_env_can_override_bazel_version(tmp_path) -> None:
    options = _options(tmp_path, cpp_gen_env={"USE_BAZEL_VERSION": "5.0.0"})
    assert dict(cpp_generation_env(options))["USE_BAZEL_VERSION"] == "5.0.0"


def test_load_env_json_missing_file(tmp_path) -> None:
    with pytest.raises(IOFailure):
        load_env_json(str(tmp_path / "missing.json"))


def test_load_env_json_invalid_json(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(RbegenConfigError):
        load_env_json(str(path))


@pytest.mark.parametrize("payload", ['["CC=gcc"]', '{"CC": 1}', '{"CC": null}'])
def test_load_env_json_requires_string_map(tmp_path, payload) -> None:
    path = tmp_path / "env.json"
    path.write_text(payload)
    with pytest.raises(RbegenConfigError):
        load_env_json(str(path))


# -- symlink hardening --------------------------------------------------------


def test_harden_symlinks_follows_chains(engine: FakeEngine) -> None:
    repo = engine.host("/repo")
    (repo / "sub").mkdir(parents=True)
    (repo / "real.bzl").write_text("real contents\n")
    os.symlink("link2.bzl", repo / "link1.bzl")
    os.symlink("real.bzl", repo / "link2.bzl")
    os.symlink("../real.bzl", repo / "sub" / "nested.bzl")
    container = ToolchainContainer.acquire(IMAGE)

    assert harden_symlinks(container, "/repo") == 3

    for name in ("link1.bzl", "link2.bzl", "sub/nested.bzl"):
        path = repo / name
        assert not path.is_symlink()
        assert path.read_text() == "real contents\n"


def test_harden_symlinks_is_idempotent(engine: FakeEngine) -> None:
    repo = engine.host("/repo")
    repo.mkdir(parents=True)
    (repo / "real.bzl").write_text("x")
    os.symlink("real.bzl", repo / "alias.bzl")
    container = ToolchainContainer.acquire(IMAGE)

    harden_symlinks(container, "/repo")
    copies = [e for e in engine.execs if e["argv"][0] == "cp"]
    assert harden_symlinks(container, "/repo") == 0
    assert [e for e in engine.execs if e["argv"][0] == "cp"] == copies


def test_harden_symlinks_find_failure(tmp_path, monkeypatch) -> None:
    fake = FakeEngine(tmp_path)
    monkeypatch.setattr("rbegen.sandbox.container.run_cmd", fake)
    container = ToolchainContainer.acquire(IMAGE)
    fake.fail_on.add("exec")

    with pytest.raises(IOFailure):
        harden_symlinks(container, "/repo")


# -- generation ---------------------------------------------------------------


def test_gen_cpp_configs_disabled(engine: FakeEngine, tmp_path) -> None:
    container = ToolchainContainer.acquire(IMAGE)
    options = _options(tmp_path, gen_cpp_configs=False)

    assert gen_cpp_configs(container, options, BAZELISK) is None
    assert engine.execs == []


def test_gen_cpp_configs_produces_hardened_tarball(engine: FakeEngine, tmp_path) -> None:
    container = _container(engine)
    options = _options(tmp_path, cpp_gen_env={"CC": "clang"})

    with container.scoped(workdir="/workdir"):
        tarball = gen_cpp_configs(container, options, BAZELISK)
        assert container.context == ExecContext(workdir="/workdir")

    assert tarball == os.path.join(options.temp_work_dir, CPP_CONFIGS_TARBALL)
    with tarfile.open(tarball) as tar:
        members = {os.path.normpath(m.name): m for m in tar.getmembers()}
    assert members["armeabi_cc_toolchain_config.bzl"].isreg()
    assert not any(m.issym() or m.islnk() for m in members.values())
    assert {"BUILD", "WORKSPACE", "cc_toolchain_config.bzl", "tools/cpp/empty.cc"} <= set(members)


def test_gen_cpp_configs_runs_bazel_in_blank_project(engine: FakeEngine, tmp_path) -> None:
    container = _container(engine)
    options = _options(tmp_path, cpp_gen_env={"CC": "clang"})

    with container.scoped(workdir="/workdir"):
        gen_cpp_configs(container, options, BAZELISK)

    assert engine.host("/workdir/cpp_configs_project/WORKSPACE").exists()
    assert engine.host("/workdir/cpp_configs_project/BUILD.bazel").exists()

    build, info = _bazelisk_execs(engine)
    assert build["argv"] == [BAZELISK, "build", "@local_config_cc//:toolchain"]
    assert build["workdir"] == "/workdir/cpp_configs_project"
    assert build["env"] == {"USE_BAZEL_VERSION": "4.2.0", "CC": "clang"}
    assert info["argv"] == [BAZELISK, "info", "output_base"]
    assert info["env"] == {"USE_BAZEL_VERSION": "4.2.0"}


def test_gen_cpp_configs_custom_command_and_targets(engine: FakeEngine, tmp_path) -> None:
    container = _container(engine)
    options = _options(
        tmp_path,
        cpp_bazel_cmd="query",
        cpp_config_targets=["@local_config_cc//...", "@local_config_cc//:cc-compiler-k8"],
    )

    with container.scoped(workdir="/workdir"):
        gen_cpp_configs(container, options, BAZELISK)

    build = _bazelisk_execs(engine)[0]
    assert build["argv"] == [
        BAZELISK, "query", "@local_config_cc//...", "@local_config_cc//:cc-compiler-k8",
    ]


def test_gen_cpp_configs_build_failure(tmp_path, monkeypatch) -> None:
    fake = FakeEngine(tmp_path / "container", fail_on=["build"])
    monkeypatch.setattr("rbegen.sandbox.container.run_cmd", fake)
    container = _container(fake)
    options = _options(tmp_path)

    with container.scoped(workdir="/workdir"):
        with pytest.raises(BuildFailed) as exc_info:
            gen_cpp_configs(container, options, BAZELISK)
        assert container.context == ExecContext(workdir="/workdir")

    assert "no such package" in exc_info.value.output
    assert not (tmp_path / "work" / CPP_CONFIGS_TARBALL).exists()


def test_gen_cpp_configs_output_base_failure(tmp_path, monkeypatch) -> None:
    fake = FakeEngine(tmp_path / "container", fail_on=["info"])
    monkeypatch.setattr("rbegen.sandbox.container.run_cmd", fake)
    container = _container(fake)

    with container.scoped(workdir="/workdir"):
        with pytest.raises(BuildFailed):
            gen_cpp_configs(container, _options(tmp_path), BAZELISK)


def test_gen_cpp_configs_existing_project_dir(engine: FakeEngine, tmp_path) -> None:
    container = _container(engine)
    container.exec("mkdir", "/workdir/cpp_configs_project")

    with container.scoped(workdir="/workdir"):
        with pytest.raises(IOFailure):
            gen_cpp_configs(container, _options(tmp_path), BAZELISK)
