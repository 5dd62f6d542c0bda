from __future__ import annotations

from types import SimpleNamespace

import pytest

import tutorcore.workers.chat_reconciliation_worker as worker_module
from tutorcore.modules.chat.service import ReconciliationReport


class FakeSession:
    def __init__(self) -> None:
        self.commits = 0

    async def commit(self) -> None:
        self.commits += 1


class FakeSessionFactory:
    def __init__(self) -> None:
        self.session = FakeSession()

    def __call__(self):
        return self

    async def __aenter__(self) -> FakeSession:
        return self.session

    async def __aexit__(self, *exc_info) -> None:
        return None


class FakeBookingService:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []

        async def _reconcile(limit: int) -> ReconciliationReport:
            self.calls.append(("reconcile", limit))
            return ReconciliationReport(scanned=4, created=3, skipped=1, failed=0)

        self.chat = SimpleNamespace(reconcile=_reconcile)

    async def complete_finished_bookings(self, limit: int) -> int:
        self.calls.append(("complete", limit))
        return 2


@pytest.mark.asyncio
async def test_run_cycle_completes_then_reconciles_and_commits(monkeypatch: pytest.MonkeyPatch) -> None:
    service = FakeBookingService()
    factory = FakeSessionFactory()
    monkeypatch.setattr(worker_module, "build_booking_service", lambda session: service)
    monkeypatch.setenv("CHAT_RECONCILIATION_BATCH_SIZE", "25")

    stats = await worker_module.run_cycle(factory)

    assert service.calls == [("complete", 25), ("reconcile", 25)]
    assert factory.session.commits == 1
    assert stats == {
        "bookings_completed": 2,
        "rooms_scanned": 4,
        "rooms_created": 3,
        "rooms_skipped": 1,
        "rooms_failed": 0,
    }


@pytest.mark.asyncio
async def test_main_once_mode_runs_single_cycle(monkeypatch: pytest.MonkeyPatch) -> None:
    cycles = []

    async def _run_cycle() -> dict[str, int]:
        cycles.append(1)
        return {"rooms_created": 0}

    monkeypatch.setattr(worker_module, "run_cycle", _run_cycle)
    monkeypatch.setenv("CHAT_RECONCILIATION_MODE", "once")

    await worker_module.main()

    assert cycles == [1]
