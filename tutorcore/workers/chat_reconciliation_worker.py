"""Executable worker that completes finished bookings and backfills chat rooms."""

from __future__ import annotations

import asyncio
import logging
import os

from tutorcore.core.config import get_settings
from tutorcore.core.database import SessionLocal
from tutorcore.modules.booking.service import build_booking_service

logger = logging.getLogger(__name__)
settings = get_settings()


async def run_cycle(session_factory=SessionLocal) -> dict[str, int]:
    """Run a single cycle in one DB transaction."""
    batch_size = int(
        os.getenv("CHAT_RECONCILIATION_BATCH_SIZE", str(settings.chat_reconciliation_batch_size)),
    )
    async with session_factory() as session:
        booking_service = build_booking_service(session)
        completed = await booking_service.complete_finished_bookings(limit=batch_size)
        report = await booking_service.chat.reconcile(batch_size)
        await session.commit()
        return {
            "bookings_completed": completed,
            "rooms_scanned": report.scanned,
            "rooms_created": report.created,
            "rooms_skipped": report.skipped,
            "rooms_failed": report.failed,
        }


async def main() -> None:
    """Run once or keep polling according to worker mode."""
    logging.basicConfig(level=os.getenv("CHAT_RECONCILIATION_LOG_LEVEL", settings.log_level))
    mode = os.getenv("CHAT_RECONCILIATION_MODE", "once").strip().lower()
    interval_seconds = int(
        os.getenv(
            "CHAT_RECONCILIATION_INTERVAL_SECONDS",
            str(settings.chat_reconciliation_interval_seconds),
        ),
    )

    if mode == "once":
        stats = await run_cycle()
        logger.info("Chat reconciliation worker stats: %s", stats)
        return

    while True:
        try:
            stats = await run_cycle()
            logger.info("Chat reconciliation worker stats: %s", stats)
        except Exception:
            logger.exception("Chat reconciliation worker cycle failed")
        await asyncio.sleep(interval_seconds)


if __name__ == "__main__":
    asyncio.run(main())
