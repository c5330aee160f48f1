"""Entry point for `python -m scarlet` and the `scarlet` CLI script."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from types import FrameType

from scarlet.agents import AgentError
from scarlet.logging_setup import configure_logging
from scarlet.orchestrator import ScarletOrchestrator
from scarlet.settings import ConfigError, load_config
from scarlet.state_store import StateStoreError

logger = logging.getLogger("scarlet")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch a repository for PRD changes and turn them into agent-built pull requests")
    parser.add_argument("-c", "--config", type=Path, required=True, help="Path to the instance config JSON file")
    parser.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Override the configured logging verbosity",
    )
    return parser.parse_args(argv)


def install_signal_handlers(stop_event: threading.Event) -> None:
    def _request_stop(signum: int, _frame: FrameType | None) -> None:
        logger.info("Received signal %d, finishing current cycle", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level or "info")

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logger.error("Unable to load config: %s", exc)
        return 1

    configure_logging(args.log_level or config.logging.level.value, config.log_file_path)
    logger.info("Scarlet starting", extra={"config": str(args.config)})

    try:
        orchestrator = ScarletOrchestrator(config)
        orchestrator.prepare_workspace()
    except (AgentError, StateStoreError, OSError, ValueError) as exc:
        logger.error("Startup failed: %s", exc)
        return 1

    if args.once:
        try:
            report = orchestrator.run_cycle()
            logger.info(
                "Single run complete",
                extra={"outcome": report.outcome.value, "documents": len(report.documents)},
            )
        except Exception:  # noqa: BLE001
            logger.exception("Poll cycle failed")
        return 0

    stop_event = threading.Event()
    install_signal_handlers(stop_event)
    orchestrator.run_forever(stop_event)
    logger.info("Scarlet shutting down")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
