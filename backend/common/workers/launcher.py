"""
Entry-point plumbing shared by the periodic workers.

Telemetry, logging, model registration and shutdown signals are wired here
so each ``workers/run_*.py`` script stays a few lines long.
"""

import argparse
import asyncio
import logging
import signal
from typing import Any, Callable, Optional

from common.core.otel_axiom_exporter import _initialize_telemetry, get_logger


def register_models() -> None:
    """Import every entity module so SQLAlchemy can resolve relationships."""
    import packages.entitlements.models.database  # noqa: F401


def worker_arg_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between sweeps (defaults to the configured interval)",
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single sweep and exit"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


class WorkerLauncher:
    """Runs a worker exposing ``start``/``stop`` (and optionally ``run_once``)."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self.worker_instance: Optional[Any] = None

    def _setup_logging(self, level: str = "INFO"):
        logging.basicConfig(
            level=getattr(logging, level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            force=True,
        )

    def _register_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._request_stop, signum)
            except NotImplementedError:
                # Windows event loops have no signal handler support
                signal.signal(signum, lambda s, _frame: self._request_stop(s))

    def _request_stop(self, signum: int) -> None:
        self.logger.info(f"Received signal {signum}, stopping after current sweep")
        if self.worker_instance:
            asyncio.ensure_future(self.worker_instance.stop())

    async def _run_worker_async(
        self, worker_instance: Any, worker_name: str, once: bool
    ):
        self.worker_instance = worker_instance
        self._register_signal_handlers(asyncio.get_running_loop())

        try:
            if once:
                self.logger.info(f"Running a single sweep of {worker_name}")
                result = await worker_instance.run_once()
                self.logger.info(f"{worker_name} sweep finished: {result}")
            else:
                self.logger.info(f"Starting {worker_name}...")
                await worker_instance.start()
        except Exception as e:
            self.logger.error(f"{worker_name} failed: {e}", exc_info=True)
            raise
        finally:
            if worker_instance.running or once:
                await worker_instance.stop()
            self.logger.info(f"{worker_name} shutdown complete")

    def run(
        self,
        worker_factory: Callable,
        worker_name: str,
        once: bool = False,
        log_level: str = "INFO",
        factory_kwargs: Optional[dict] = None,
    ):
        """
        Build the worker and run it until stopped.

        Args:
            worker_factory: Class or function that creates the worker instance
            worker_name: Human readable name for logging
            once: Run a single ``run_once`` sweep instead of the loop
            log_level: Root logging level
            factory_kwargs: Kwargs passed to ``worker_factory``
        """
        _initialize_telemetry()
        self._setup_logging(log_level)
        register_models()

        self.logger.info(f"Configuring {worker_name}...")
        worker_instance = worker_factory(**(factory_kwargs or {}))
        asyncio.run(self._run_worker_async(worker_instance, worker_name, once))

    def run_from_args(
        self,
        worker_factory: Callable,
        worker_name: str,
        argv: Optional[list[str]] = None,
    ):
        """Parse ``--interval``, ``--once`` and ``--log-level`` and run."""
        args = worker_arg_parser(f"Run the {worker_name}").parse_args(argv)
        factory_kwargs = {}
        if args.interval:
            factory_kwargs["interval_seconds"] = args.interval
        self.run(
            worker_factory=worker_factory,
            worker_name=worker_name,
            once=args.once,
            log_level=args.log_level,
            factory_kwargs=factory_kwargs,
        )
