"""CLI entry point for the borrower CLI lifecycle tester."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

import uvicorn

from borrower_cli_tester.api import create_app
from borrower_cli_tester.config import HarnessSettings
from borrower_cli_tester.faucet import FaucetClient
from borrower_cli_tester.models.result import TestResult
from borrower_cli_tester.orchestrator import LifecycleOrchestrator
from borrower_cli_tester.store import ResultStore

STATUS_SYMBOLS = {True: "✅", False: "❌"}


def log_result_summary(log: logging.Logger, result: TestResult) -> None:
    """Log a formatted summary of a test result."""
    log.info("=" * 80)
    log.info("Test Result Summary:")
    log.info("=" * 80)
    log.info("%s %s: %s", STATUS_SYMBOLS[result.success], result.id, result.details)
    log.info("  BTC address: %s", result.btc_address)
    if result.contract_id:
        log.info("  Contract ID: %s", result.contract_id)
    for step in result.steps_completed:
        log.info("  ✓ %s", step)


def warn_if_cli_missing(log: logging.Logger, settings: HarnessSettings) -> None:
    """Warn early when the borrower CLI is not where the settings point."""
    if not settings.cli_path.exists():
        log.warning("CLI not found at %s", settings.cli_path)


async def run(
    settings: HarnessSettings,
    mnemonic: str | None = None,
    *,
    skip_faucet: bool = False,
    save: bool = True,
) -> int:
    """Run one lifecycle test and return exit code."""
    log = logging.getLogger("borrower_cli_tester")
    warn_if_cli_missing(log, settings)

    async with FaucetClient.from_settings(settings) as faucet:
        orchestrator = LifecycleOrchestrator(settings=settings, faucet=faucet)
        result = await orchestrator.run(mnemonic, skip_faucet=skip_faucet)

    if save:
        async with ResultStore.open(settings.database_path) as store:
            await store.save(result)

    log_result_summary(log, result)
    print(json.dumps(result.model_dump(mode="json"), indent=2))

    return 0 if result.success else 1


def serve(settings: HarnessSettings, host: str | None, port: int | None) -> None:
    """Serve the HTTP surface until interrupted."""
    log = logging.getLogger("borrower_cli_tester")
    warn_if_cli_missing(log, settings)
    bind_host = host or settings.host
    bind_port = port or settings.port

    log.info("Starting Borrower CLI Test Server on %s:%d", bind_host, bind_port)
    uvicorn.run(create_app(settings), host=bind_host, port=bind_port)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="End-to-end loan lifecycle tests for the borrower CLI"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run_parser = commands.add_parser("run", help="Run one lifecycle test")
    run_parser.add_argument(
        "--mnemonic",
        default=None,
        help="Use this mnemonic instead of generating a new one",
    )
    run_parser.add_argument(
        "--skip-faucet",
        action="store_true",
        help="Do not request testnet funds",
    )
    run_parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not store the result in the database",
    )

    serve_parser = commands.add_parser("serve", help="Start the HTTP server")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    settings = HarnessSettings()

    if args.command == "serve":
        serve(settings, args.host, args.port)
        return

    exit_code = asyncio.run(
        run(
            settings,
            args.mnemonic,
            skip_faucet=args.skip_faucet,
            save=not args.no_save,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
