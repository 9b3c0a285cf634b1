"""Command-line entry point for dnsplane."""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from pathlib import Path

from .config import AppConfig, load_config
from .controller import Controller, RunResult, configure_logging
from .corrections import ConcurrencyMode, ZoneOutcome
from .errors import DnsplaneError
from .exporter import FORMATS, serialize_zones, write_output
from .loader import load_dns_config

EXIT_OK = 0
EXIT_ERRORS = 1
EXIT_PENDING = 2
EXIT_UNEXPECTED = 3


def _build_parser() -> argparse.ArgumentParser:
    """Create the CLI parser."""
    parser = argparse.ArgumentParser(prog="dnsplane", description="Manage DNS zones declaratively.")
    parser.add_argument("--log-level", help="Override log level (default from config).")

    subparsers = parser.add_subparsers(dest="command", required=True)
    preview_parser = subparsers.add_parser("preview", help="Show the corrections a push would make.")
    _register_common_arguments(preview_parser)
    _register_run_arguments(preview_parser)

    push_parser = subparsers.add_parser("push", help="Apply corrections to providers and registrars.")
    _register_common_arguments(push_parser)
    _register_run_arguments(push_parser)

    check_parser = subparsers.add_parser("check", help="Load and validate the configuration only.")
    _register_common_arguments(check_parser)

    create_parser = subparsers.add_parser("create-domains", help="Create missing zones at the DNS providers.")
    _register_common_arguments(create_parser)
    create_parser.add_argument("--domains", help="Comma separated domain globs to process.")

    zones_parser = subparsers.add_parser("get-zones", help="Print zones as a provider currently serves them.")
    zones_parser.add_argument("provider", help="Provider name from the config or the credentials file.")
    zones_parser.add_argument("zones", nargs="+", help="Zone names, or 'all'.")
    _register_common_arguments(zones_parser)
    zones_parser.add_argument("--format", choices=FORMATS, default="yaml", help="Output format.")
    zones_parser.add_argument("--output", help="Path to write the output (default stdout).")

    return parser


def _register_common_arguments(subparser: argparse.ArgumentParser) -> None:
    """Register arguments shared by commands that read the desired state."""
    subparser.add_argument("--config", help="Desired-state file (default from config).")
    subparser.add_argument("--creds", help="Credentials file (default from config).")
    subparser.add_argument(
        "-e",
        "--var",
        action="append",
        help="Template variable in KEY=VALUE form. Can be repeated.",
    )


def _register_run_arguments(subparser: argparse.ArgumentParser) -> None:
    """Register arguments shared by preview/push."""
    subparser.add_argument("--domains", help="Comma separated domain globs to process.")
    subparser.add_argument("--providers", help="Comma separated provider names to process.")
    subparser.add_argument("--notify", action="store_true", help="Send correction outcomes to the notifier.")
    subparser.add_argument("--no-populate", action="store_true", help="Do not create missing zones.")
    subparser.add_argument(
        "--cmode",
        choices=[mode.value for mode in ConcurrencyMode],
        help="Which zones may run concurrently (default from config).",
    )
    subparser.add_argument("--cmax", type=int, help="Maximum number of concurrent zones.")
    subparser.add_argument("--report", help="Write a JSON report of the corrections to this path.")


def _parse_template_vars(values: list[str] | None) -> dict[str, str]:
    """Convert KEY=VALUE pairs into a dict."""
    result: dict[str, str] = {}
    if not values:
        return result
    for value in values:
        if "=" not in value:
            raise DnsplaneError(f"Invalid template var '{value}', expected KEY=VALUE.")
        key, val = value.split("=", 1)
        result[key] = val
    return result


def _split_list(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _paths(config: AppConfig, args: argparse.Namespace) -> tuple[Path, Path]:
    config_path = Path(args.config) if getattr(args, "config", None) else config.config_path
    creds_path = Path(args.creds) if getattr(args, "creds", None) else config.creds_path
    return config_path, creds_path


def _install_cancel_handler(cancel: threading.Event):
    """Turn the first Ctrl-C into a cooperative cancel; a second one aborts.

    Returns the previous handler.
    """

    def handler(signum, frame):  # noqa: ARG001
        print("Cancelling after the running corrections finish...", file=sys.stderr)
        cancel.set()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    return signal.signal(signal.SIGINT, handler)


def _emit_outcome(outcome: ZoneOutcome) -> None:
    """Print a human-friendly account of one zone."""
    print(f"******************** Domain: {outcome.domain}")
    failures = {id(exc) for exc in outcome.failed.values()}
    for group in outcome.groups:
        if not group.corrections:
            continue
        if group.role == "registrar":
            print(f"----- Registrar: {group.source}...{group.pending} corrections")
        elif group.role == "populate":
            print(f"----- Populate: {group.source}")
        else:
            print(f"----- DNS Provider: {group.source}...{group.pending} corrections")
        number = 0
        for correction in group.corrections:
            if correction.is_report:
                print(f"INFO: {correction.msg}")
                continue
            number += 1
            print(f"#{number}: {correction.msg}")
            status = outcome.status(correction)
            if status == "done":
                print("SUCCESS!")
            elif status == "failed":
                print(f"FAILURE! {outcome.failed[id(correction)]}")
    for error in outcome.errors:
        if id(error) not in failures:
            print(f"ERROR: {error}")
    if outcome.cancelled:
        print("CANCELLED: remaining corrections were not run")


def _exit_code(result: RunResult) -> int:
    if result.any_errors:
        return EXIT_ERRORS
    if not result.push and result.total_corrections:
        return EXIT_PENDING
    return EXIT_OK


def _run_zones(controller: Controller, config: AppConfig, args: argparse.Namespace, push: bool) -> int:
    """Execute the preview and push commands."""
    config_path, creds_path = _paths(config, args)
    creds = controller.credentials(creds_path)
    prepared = controller.prepare(config_path, _parse_template_vars(args.var), creds)
    for warning in prepared.warnings:
        print(f"WARNING: {warning}")
    domains = _split_list(args.domains)
    controller.bind_providers(prepared, creds, domains)

    cancel = threading.Event()
    previous = _install_cancel_handler(cancel) if push else None
    try:
        result = controller.run(
            prepared,
            push=push,
            domains=domains,
            providers=_split_list(args.providers),
            populate=not args.no_populate,
            notify=args.notify,
            mode=args.cmode,
            max_workers=args.cmax,
            cancel=cancel,
        )
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)
    for outcome in result.outcomes:
        _emit_outcome(outcome)
    print(f"Done. {result.total_corrections} corrections.")
    if args.report:
        write_output(Path(args.report), json.dumps(result.report(), indent=2))
        print(f"Wrote report to {args.report}")
    return _exit_code(result)


def _run_check(controller: Controller, config: AppConfig, args: argparse.Namespace) -> int:
    """Execute the check command."""
    config_path, creds_path = _paths(config, args)
    creds = controller.credentials(creds_path)
    prepared = controller.prepare(config_path, _parse_template_vars(args.var), creds)
    for warning in prepared.warnings:
        print(f"WARNING: {warning}")
    for zone, errors in prepared.zone_errors.items():
        for error in errors:
            print(f"ERROR: {zone}: {error}")
    if prepared.zone_errors:
        return EXIT_ERRORS
    print(f"No errors in {len(prepared.dns_config.domains)} domains.")
    return EXIT_OK


def _run_create_domains(controller: Controller, config: AppConfig, args: argparse.Namespace) -> int:
    """Execute the create-domains command."""
    config_path, creds_path = _paths(config, args)
    creds = controller.credentials(creds_path)
    prepared = controller.prepare(config_path, _parse_template_vars(args.var), creds)
    for message in controller.create_domains(prepared, creds, _split_list(args.domains)):
        print(message)
    return EXIT_ERRORS if prepared.zone_errors else EXIT_OK


def _run_get_zones(controller: Controller, config: AppConfig, args: argparse.Namespace) -> int:
    """Execute the get-zones command."""
    config_path, creds_path = _paths(config, args)
    creds = controller.credentials(creds_path)
    dns_config = load_dns_config(config_path, _parse_template_vars(args.var)) if config_path.exists() else None
    zones = controller.get_zones(args.provider, args.zones, creds, dns_config)
    content = serialize_zones(zones, args.format, config.templates_dir)
    if args.output:
        write_output(Path(args.output), content)
        print(f"Wrote zones to {args.output}")
    else:
        print(content, end="")
    return EXIT_OK


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config()
        configure_logging(args.log_level or config.log_level)
        controller = Controller(config)
        if args.command == "preview":
            code = _run_zones(controller, config, args, push=False)
        elif args.command == "push":
            code = _run_zones(controller, config, args, push=True)
        elif args.command == "check":
            code = _run_check(controller, config, args)
        elif args.command == "create-domains":
            code = _run_create_domains(controller, config, args)
        elif args.command == "get-zones":
            code = _run_get_zones(controller, config, args)
        else:  # pragma: no cover - argparse ensures we never reach here
            parser.error(f"Unsupported command {args.command}")
    except DnsplaneError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(EXIT_ERRORS)
    except Exception as exc:  # noqa: BLE001
        print(f"Unexpected error: {exc}", file=sys.stderr)
        sys.exit(EXIT_UNEXPECTED)
    sys.exit(code)


if __name__ == "__main__":
    main()
