"""
CLI for the polyrun execution engine.
"""
import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from polyrun.config.defaults import CLI_DEFAULTS, ENGINE_DEFAULTS
from polyrun.config.engine import EngineConfig
from polyrun.config.logging import setup_logging
from polyrun.exceptions import CleanupWarning, EngineError, PolyrunError
from polyrun.observability import metrics
from polyrun.runtime.engine import CodeExecutionEngine
from polyrun.runtime.docker import DockerCLIEngine
from polyrun.runtime.models import CompletionKind
from polyrun.runtime.registry import LanguageRegistry, default_registry

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TIMED_OUT = 124
EXIT_NOT_RUN = 125


def infer_language(path: str, registry: LanguageRegistry) -> Optional[str]:
    """Pick the language whose source filename shares ``path``'s extension."""
    _, ext = os.path.splitext(path)
    if not ext:
        return None
    for profile in registry.profiles():
        if os.path.splitext(profile.filename)[1] == ext.lower():
            return profile.key
    return None


def _read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _arg_or(args: argparse.Namespace, name: str, default):
    value = getattr(args, name, None)
    return default if value is None else value


def _build_config(args: argparse.Namespace) -> EngineConfig:
    return EngineConfig(
        timeout_ms=_arg_or(args, "timeout_ms", ENGINE_DEFAULTS.timeout_ms),
        memory_limit_bytes=_arg_or(args, "memory", ENGINE_DEFAULTS.memory_limit_bytes),
        output_limit_bytes=_arg_or(args, "output_limit", ENGINE_DEFAULTS.output_limit_bytes),
        sandbox_root=_arg_or(args, "sandbox_root", ENGINE_DEFAULTS.sandbox_root),
        docker_binary=args.docker,
    )


def _client(config: EngineConfig) -> DockerCLIEngine:
    return DockerCLIEngine(binary=config.docker_binary, command_timeout=config.command_timeout)


def run_command(args: argparse.Namespace) -> int:
    registry = default_registry()
    language = args.language or infer_language(args.file, registry)
    if language is None:
        logger.error(f"Cannot infer language from {args.file!r}; pass --language")
        return EXIT_NOT_RUN

    try:
        code = _read_source(args.file)
    except OSError as e:
        logger.error(f"Cannot read {args.file}: {e}")
        return EXIT_NOT_RUN

    config = _build_config(args)
    engine = CodeExecutionEngine(config, registry=registry)
    try:
        outcome = engine.execute(code, language)
    except EngineError as e:
        logger.error(str(e))
        return EXIT_NOT_RUN
    finally:
        engine.close()

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
    else:
        print(outcome.format())

    if outcome.completion_kind == CompletionKind.TIMED_OUT:
        return EXIT_TIMED_OUT
    if outcome.completion_kind == CompletionKind.FAILED_TO_START:
        return EXIT_NOT_RUN
    return EXIT_OK


def languages_command(args: argparse.Namespace) -> int:
    for profile in default_registry().profiles():
        phases = "compile+run" if profile.two_phase else "run"
        print(f"{profile.key:<12} {profile.image:<28} {profile.filename:<12} {phases}")
    return EXIT_OK


def pull_command(args: argparse.Namespace) -> int:
    engine = CodeExecutionEngine(_build_config(args))
    try:
        results = engine.pull_images(args.languages or None)
    except EngineError as e:
        logger.error(str(e))
        return EXIT_NOT_RUN
    finally:
        engine.close()
    failed = [image for image, ok in results.items() if not ok]
    for image, ok in results.items():
        print(f"{'ok' if ok else 'FAILED':<7} {image}")
    return 1 if failed else EXIT_OK


def ps_command(args: argparse.Namespace) -> int:
    config = _build_config(args)
    client = _client(config)
    try:
        for container_id in client.list_containers(config.labels, include_stopped=args.all):
            print(container_id)
    except PolyrunError as e:
        logger.error(str(e))
        return 1
    return EXIT_OK


def cleanup_command(args: argparse.Namespace) -> int:
    """Force-remove every container carrying the polyrun label."""
    config = _build_config(args)
    client = _client(config)
    try:
        leftovers = client.list_containers(config.labels, include_stopped=True)
    except PolyrunError as e:
        logger.error(str(e))
        return 1
    failures = 0
    for container_id in leftovers:
        try:
            client.remove(container_id)
            print(f"removed {container_id[:12]}")
        except PolyrunError as e:
            failures += 1
            logger.warning(str(CleanupWarning("container", container_id, str(e))))
    return 1 if failures else EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--log-level",
        default=CLI_DEFAULTS.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Log level (default: {CLI_DEFAULTS.log_level})",
    )
    common.add_argument("--log-file", help="Log file path")
    common.add_argument(
        "--docker",
        default="docker",
        help="Docker CLI binary (default: docker)",
    )
    common.add_argument(
        "--metrics-exporter",
        default=CLI_DEFAULTS.metrics_exporter,
        choices=[e.value for e in metrics.ExporterType],
        help=f"Metrics exporter type (default: {CLI_DEFAULTS.metrics_exporter})",
    )
    common.add_argument(
        "--metrics-endpoint",
        help="OTLP endpoint URL (e.g., http://localhost:4317)",
    )

    parser = argparse.ArgumentParser(
        prog="polyrun",
        description="Run untrusted code in disposable, network-isolated containers",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", parents=[common], help="Execute a source file")
    run_parser.add_argument("file", help="Source file, or - to read stdin")
    run_parser.add_argument("-l", "--language", help="Language key (default: inferred from extension)")
    run_parser.add_argument(
        "--timeout-ms",
        type=int,
        help=f"Wall-clock timeout in milliseconds (default: {ENGINE_DEFAULTS.timeout_ms})",
    )
    run_parser.add_argument(
        "--memory",
        type=int,
        help=f"Memory ceiling in bytes (default: {ENGINE_DEFAULTS.memory_limit_bytes})",
    )
    run_parser.add_argument(
        "--output-limit",
        type=int,
        help=f"Captured bytes per stream (default: {ENGINE_DEFAULTS.output_limit_bytes})",
    )
    run_parser.add_argument("--sandbox-root", help="Directory for ephemeral workspaces")
    run_parser.add_argument("--json", action="store_true", help="Print the outcome as JSON")
    run_parser.set_defaults(handler=run_command)

    languages_parser = subparsers.add_parser("languages", parents=[common], help="List supported languages")
    languages_parser.set_defaults(handler=languages_command)

    pull_parser = subparsers.add_parser("pull", parents=[common], help="Pull language images")
    pull_parser.add_argument("languages", nargs="*", help="Languages to pull (default: all)")
    pull_parser.set_defaults(handler=pull_command)

    ps_parser = subparsers.add_parser("ps", parents=[common], help="List polyrun containers")
    ps_parser.add_argument("-a", "--all", action="store_true", help="Include stopped containers")
    ps_parser.set_defaults(handler=ps_command)

    cleanup_parser = subparsers.add_parser("cleanup", parents=[common], help="Remove all polyrun containers")
    cleanup_parser.set_defaults(handler=cleanup_command)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, getattr(args, "log_file", None))

    if args.metrics_exporter != "none":
        exporter_kwargs = {}
        if args.metrics_endpoint:
            exporter_kwargs["endpoint"] = args.metrics_endpoint
        metrics.init_metrics(exporter_type=args.metrics_exporter, **exporter_kwargs)

    try:
        code = args.handler(args)
    except ValueError as e:
        parser.error(str(e))
    finally:
        metrics.shutdown_metrics()
    sys.exit(code)


if __name__ == "__main__":
    main()
