"""Command line interface for the clistream adapters."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from .core.adapters.provider import CliProvider
from .core.adapters.stream import ErrorEvent, FinishEvent, TextDeltaEvent, event_to_dict
from .core.errors import AdapterError
from .core.session import CallContext
from .registry import available_providers, create_provider, resolve_name


def _provider_name(value: str) -> str:
    try:
        return resolve_name(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drive AI agent CLIs through one streaming protocol")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    models_parser = subparsers.add_parser("models", help="list the models a provider can run")
    models_parser.add_argument("provider", type=_provider_name, help="Provider name")
    models_parser.add_argument("--json", action="store_true", help="Print the model list as JSON")

    probe_parser = subparsers.add_parser("probe", help="report which vendor CLIs are installed")
    probe_parser.add_argument(
        "providers",
        nargs="*",
        type=_provider_name,
        help="Providers to check (default: all)",
    )

    run_parser = subparsers.add_parser("run", help="send one prompt and print the response")
    run_parser.add_argument("provider", type=_provider_name, help="Provider name")
    run_parser.add_argument("prompt", help="Prompt text")
    run_parser.add_argument("-m", "--model", help="Model id (default: the vendor's)")
    run_parser.add_argument(
        "-C",
        "--directory",
        type=Path,
        help="Working directory for the vendor process",
    )
    run_parser.add_argument("--session", help="Session key used to continue a conversation")
    run_parser.add_argument(
        "--buffered",
        action="store_true",
        help="Wait for the complete response instead of streaming",
    )
    run_parser.add_argument(
        "--events",
        action="store_true",
        help="Print stream events as JSON lines instead of text",
    )

    return parser


def _handle_models(args: argparse.Namespace) -> int:
    provider = create_provider(args.provider)
    catalog = provider.list_models()
    if args.json:
        sys.stdout.write(json.dumps(catalog.to_payload(), indent=2))
        sys.stdout.write("\n")
        return 0
    for model in catalog.models:
        print(f"{model.model_name}\t{model.display_name}")
    return 0


def _handle_probe(args: argparse.Namespace) -> int:
    names = args.providers or list(available_providers())
    missing = 0
    for name in names:
        provider = create_provider(name, check_available=False)
        version = provider.get_version()
        if version is None:
            missing += 1
            print(f"{name}: not installed ({provider.settings.install_hint})")
        else:
            print(f"{name}: {version}")
    return 1 if missing else 0


async def _run_stream(provider: CliProvider, args: argparse.Namespace, context: CallContext) -> int:
    model = provider(args.model)
    status = 0
    async for event in model.stream(args.prompt, context=context):
        if args.events:
            sys.stdout.write(json.dumps(event_to_dict(event)) + "\n")
        elif isinstance(event, TextDeltaEvent):
            sys.stdout.write(event.delta)
        elif isinstance(event, FinishEvent):
            sys.stdout.write("\n")
        elif isinstance(event, ErrorEvent):
            print(f"error ({event.kind}): {event.message}", file=sys.stderr)
            status = 1
        sys.stdout.flush()
    return status


async def _run_buffered(provider: CliProvider, args: argparse.Namespace, context: CallContext) -> int:
    result = await provider(args.model).generate(args.prompt, context=context)
    if args.events:
        payload = {
            "text": result.text,
            "finishReason": result.finish_reason,
            "usage": result.usage.as_dict(),
        }
        sys.stdout.write(json.dumps(payload) + "\n")
    else:
        sys.stdout.write(result.text)
        if not result.text.endswith("\n"):
            sys.stdout.write("\n")
    return 0


def _handle_run(args: argparse.Namespace) -> int:
    provider = create_provider(args.provider)
    context = CallContext(working_directory=args.directory, session_key=args.session)
    runner = _run_buffered if args.buffered else _run_stream
    try:
        return asyncio.run(runner(provider, args, context))
    except KeyboardInterrupt:
        return 130


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    handlers = {
        "models": _handle_models,
        "probe": _handle_probe,
        "run": _handle_run,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.error("no command provided")
        return 2

    try:
        return handler(args)
    except AdapterError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
