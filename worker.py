#!/usr/bin/env python3
"""
SafeTrack Escalation Worker

Runs the overdue-finding escalation pass on a fixed interval. An alternative to
triggering POST /api/escalations/process-overdue from an external cron.

Usage:
    python worker.py [--interval=S] [--timeout=S] [--once]

Passes never overlap: the next pass is scheduled only after the previous one
returns. Each pass stops taking new findings once --timeout seconds elapse.
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Optional
import argparse

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("safetrack.worker")

from safety_audit.escalation_engine import EscalationEngine, EscalationPassError, build_escalation_engine
from safety_audit.settings import get_settings
from safety_audit.supabase_client import get_supabase


class EscalationWorker:
    """
    Worker that runs escalation passes until shut down.
    """

    def __init__(
        self,
        engine: EscalationEngine,
        interval: float = 3600.0,
        pass_timeout: Optional[float] = 300.0,
    ):
        self.engine = engine
        self.interval = interval
        self.pass_timeout = pass_timeout

        self._running = False
        self._shutdown_event = asyncio.Event()
        self.passes_completed = 0

        logger.info(f"Escalation worker initialized with interval={interval}s timeout={pass_timeout}s")

    async def run_once(self) -> bool:
        """Run a single pass. Returns False if the pass could not start."""
        started_at = datetime.now(timezone.utc)
        try:
            result = await asyncio.to_thread(
                self.engine.run_pass,
                started_at,
                self.pass_timeout,
            )
        except EscalationPassError as e:
            logger.error(f"Escalation pass aborted: {e}")
            return False

        self.passes_completed += 1
        logger.info(f"Escalation pass summary: {result.to_summary().to_response()}")
        if result.timed_out:
            logger.warning("Escalation pass hit its deadline; remaining findings roll over to the next pass")
        return True

    async def start(self):
        """Run passes until a shutdown signal arrives."""
        self._running = True
        logger.info("Escalation worker starting...")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in escalation loop: {e}")

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

        logger.info("Escalation worker stopped")

    def stop(self):
        """Handle shutdown signal."""
        logger.info("Escalation worker received shutdown signal")
        self._running = False
        self._shutdown_event.set()


def main():
    """Main entry point for the worker."""
    settings = get_settings()

    parser = argparse.ArgumentParser(description="SafeTrack Escalation Worker")
    parser.add_argument(
        "--interval", "-i",
        type=float,
        default=settings.worker_interval_seconds,
        help="Seconds between escalation passes (default: ESCALATION_INTERVAL_SECONDS or 3600)"
    )
    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=settings.pass_timeout_seconds,
        help="Deadline in seconds for one pass (default: ESCALATION_PASS_TIMEOUT_SECONDS or 300)"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass and exit"
    )

    args = parser.parse_args()

    supabase = get_supabase()
    if supabase is None:
        logger.error("Supabase is not configured; set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        sys.exit(1)

    worker = EscalationWorker(
        build_escalation_engine(supabase, settings),
        interval=args.interval,
        pass_timeout=args.timeout,
    )

    try:
        if args.once:
            ok = asyncio.run(worker.run_once())
            sys.exit(0 if ok else 1)
        asyncio.run(worker.start())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")


if __name__ == "__main__":
    main()
