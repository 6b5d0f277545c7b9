"""
Periodic loop scheduling.

Two independent interval jobs on one AsyncIOScheduler:
- payment-processor: PaymentProcessor.run_once every PROCESSING_INTERVAL_SECONDS
- solver: Solver.run_once every SOLVER_INTERVAL_SECONDS (solver payout mode only)

Both fire once immediately at start. max_instances=1 keeps passes of the same loop
from overlapping; coalesce=True collapses ticks missed while a slow pass ran.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from services.context import PaymentContext
from services.payment_processor import PaymentProcessor
from services.solver import Solver
from settings import PayoutMode

logger = logging.getLogger(__name__)

PROCESSOR_JOB_ID = "payment-processor"
SOLVER_JOB_ID = "solver"


class LoopScheduler:
    def __init__(
        self,
        context: PaymentContext,
        *,
        processor: Optional[PaymentProcessor] = None,
        solver: Optional[Solver] = None,
    ) -> None:
        self.context = context
        self.processor = processor or PaymentProcessor(context)
        self.solver = solver or Solver(context)
        self.scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": None,
            },
            timezone="UTC",
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Register both loops and start them. Must be called with an event loop running."""

        settings = self.context.settings
        now = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self.processor.run_once,
            trigger=IntervalTrigger(seconds=settings.processing_interval_seconds),
            id=PROCESSOR_JOB_ID,
            name="Payment processor",
            next_run_time=now,
            replace_existing=True,
        )
        logger.info("Payment processor scheduled every %gs", settings.processing_interval_seconds)

        if settings.payout_mode is PayoutMode.SOLVER:
            self.scheduler.add_job(
                self.solver.run_once,
                trigger=IntervalTrigger(seconds=settings.solver_interval_seconds),
                id=SOLVER_JOB_ID,
                name="Solver",
                next_run_time=now,
                replace_existing=True,
            )
            logger.info("Solver scheduled every %gs", settings.solver_interval_seconds)
        else:
            logger.info("PAYOUT_MODE=worker: payouts run in the payment processor, solver not scheduled")

        self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.solver.shutdown()
            logger.info("Payment loops stopped")
