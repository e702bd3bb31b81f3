"""Standalone environment readiness check and process-level crash hooks."""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Optional

from classifier import error_text
from config import load_config
from exceptions import SmokeError
from prober import probe


def install_process_diagnostics(logger: Optional[logging.Logger] = None) -> None:
    """Log uncaught exceptions and unhandled asyncio task errors.

    Call from inside the running event loop so the loop handler is installed too.
    """
    log = logger or logging.getLogger("process")
    previous_hook = sys.excepthook

    def excepthook(exc_type, exc, tb):
        log.error(f"[process:uncaughtException] {error_text(exc)}")
        previous_hook(exc_type, exc, tb)

    sys.excepthook = excepthook

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return

    def loop_handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        error = context.get("exception") or context.get("message")
        log.error(f"[process:unhandledRejection] {error_text(error)}")

    loop.set_exception_handler(loop_handler)


async def run_preflight() -> int:
    config = load_config()
    install_process_diagnostics()
    result = await probe(config)
    print(json.dumps(result.to_dict()), flush=True)
    return 0 if result.available else 1


def main() -> None:
    """Entry point for ``ui-smoke-preflight``."""
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    logger = logging.getLogger("preflight")

    try:
        exit_code = asyncio.run(run_preflight())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 130
    except SmokeError as exc:
        logger.error(f"Error: {exc}")
        exit_code = 1
    except Exception as exc:
        logger.exception(f"Unexpected error: {exc}")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
