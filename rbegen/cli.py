from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv

from rbegen.config import get_settings
from rbegen.exceptions import RbegenConfigError, RbegenError
from rbegen.models import Options, build_options
from rbegen.pipeline import run

logger = logging.getLogger(__name__)


def _str2bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {value!r}")


def _csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate Bazel remote execution toolchain configs from a toolchain container."
    )
    parser.add_argument("--bazel_version", required=True, help="Bazel version to generate configs for.")
    parser.add_argument(
        "--toolchain_container",
        required=True,
        help="Toolchain container image, tagged or by digest.",
    )
    parser.add_argument(
        "--exec_os", choices=["linux", "windows"], default="linux", help="OS of the toolchain container."
    )
    parser.add_argument(
        "--target_os", choices=["linux", "windows"], default="linux", help="OS of the build targets."
    )
    parser.add_argument("--output_tarball", help="Path to write the configs tarball to.")
    parser.add_argument("--output_src_root", help="Source tree root to extract the configs into.")
    parser.add_argument(
        "--output_config_path",
        default="",
        help="Path relative to --output_src_root to place the configs in.",
    )
    parser.add_argument("--output_manifest", help="Path to write the output manifest to.")
    parser.add_argument(
        "--generate_cpp_configs", type=_str2bool, default=True, help="Generate C++ configs."
    )
    parser.add_argument(
        "--generate_java_configs", type=_str2bool, default=True, help="Generate Java configs."
    )
    parser.add_argument(
        "--cpp_env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra environment variable for C++ config generation (repeatable).",
    )
    parser.add_argument(
        "--cpp_env_json",
        help="JSON file with a string -> string map of extra C++ generation environment variables.",
    )
    parser.add_argument(
        "--cpp_configs_targets", type=_csv, help="Comma-separated Bazel targets generating C++ configs."
    )
    parser.add_argument("--cpp_configs_repo", help="External repository holding the C++ configs.")
    parser.add_argument("--cpp_bazel_cmd", help="Bazel command to generate C++ configs (build/query).")
    parser.add_argument("--exec_constraints", type=_csv, help="Comma-separated exec platform constraints.")
    parser.add_argument(
        "--target_constraints", type=_csv, help="Comma-separated target platform constraints."
    )
    parser.add_argument(
        "--temp_work_dir", help="Existing local directory for intermediate files."
    )
    parser.add_argument(
        "--cleanup",
        type=_str2bool,
        default=True,
        help="Stop the toolchain container and delete intermediate files at the end.",
    )
    parser.add_argument("--runtime", choices=["docker", "podman"], help="Container engine CLI to use.")
    parser.add_argument("--log-level", default=None, help="Logging level")
    return parser.parse_args(argv)


def _parse_env_pairs(pairs: Sequence[str]) -> Dict[str, str]:
    env: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise RbegenConfigError(f"--cpp_env expects KEY=VALUE, got {pair!r}.")
        env[key] = value
    return env


def options_from_args(args: argparse.Namespace) -> Options:
    values: Dict[str, Any] = {
        "bazel_version": args.bazel_version,
        "toolchain_container": args.toolchain_container,
        "exec_os": args.exec_os,
        "target_os": args.target_os,
        "output_tarball": args.output_tarball,
        "output_src_root": args.output_src_root,
        "output_config_path": args.output_config_path,
        "output_manifest": args.output_manifest,
        "gen_cpp_configs": args.generate_cpp_configs,
        "gen_java_configs": args.generate_java_configs,
        "cpp_gen_env": _parse_env_pairs(args.cpp_env),
        "cpp_gen_env_json": args.cpp_env_json,
        "temp_work_dir": args.temp_work_dir,
        "cleanup": args.cleanup,
        "runtime": args.runtime,
        "platform_params": {
            "exec_constraints": args.exec_constraints or [],
            "target_constraints": args.target_constraints or [],
        },
    }
    # Unset OS-dependent fields are filled in by Options.
    if args.cpp_configs_targets:
        values["cpp_config_targets"] = args.cpp_configs_targets
    if args.cpp_configs_repo:
        values["cpp_config_repo"] = args.cpp_configs_repo
    if args.cpp_bazel_cmd:
        values["cpp_bazel_cmd"] = args.cpp_bazel_cmd
    return build_options(**values)


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    level = (args.log_level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        options = options_from_args(args)
        result = run(options)
    except RbegenError as exc:
        logger.error("Config generation failed: %s", exc)
        logger.debug("Error details: %s", json.dumps(exc.to_dict(), default=str))
        return 1
    logger.info("Config generation for %s succeeded.", result.resolved_image)
    return 0


if __name__ == "__main__":
    sys.exit(main())
