"""
Unit Tests for the Withdrawal Execution Worker

Reliability Level: L6 Critical

Tests:
- One cycle executes matured confirmed withdrawals only
- Blocked withdrawals stay confirmed for the next cycle
- start() / stop() lifecycle
"""

import asyncio
from decimal import Decimal

import pytest

from services.withdrawal_execution_worker import ExecutionWorker
from services.withdrawal_gateway import WithdrawalGateway

RECIPIENT = "0x" + "ab" * 20
ETH = "0x" + "00" * 20
TWO_DAYS = 2 * 24 * 60 * 60


@pytest.fixture
def worker(session_factory, withdrawal_config, vault, clock) -> ExecutionWorker:
    return ExecutionWorker(
        session_factory=session_factory,
        interval_seconds=1,
        gateway_factory=lambda session: WithdrawalGateway(
            session, config=withdrawal_config, vault=vault, clock=clock
        ),
    )


def _confirmed(gateway, user, withdrawer, second_withdrawer, amount="1"):
    withdrawal = gateway.create_withdrawal(user, ETH, Decimal(amount), RECIPIENT).withdrawal
    gateway.confirm_withdrawal(withdrawal.id, withdrawer)
    gateway.confirm_withdrawal(withdrawal.id, second_withdrawer)
    return withdrawal


class TestProcessMatured:

    def test_nothing_to_do(self, worker) -> None:
        assert worker.process_matured() == 0

    def test_executes_matured(
        self, worker, gateway, user, withdrawer, second_withdrawer, clock, vault
    ) -> None:
        _confirmed(gateway, user, withdrawer, second_withdrawer, "3")
        clock.advance(TWO_DAYS)

        assert worker.process_matured() == 1
        assert vault.recipient_balance(None, RECIPIENT) == Decimal("3")
        assert worker.process_matured() == 0

    def test_immature_left_alone(
        self, worker, gateway, user, withdrawer, second_withdrawer, clock
    ) -> None:
        withdrawal = _confirmed(gateway, user, withdrawer, second_withdrawer)
        clock.advance(TWO_DAYS - 60)
        assert worker.process_matured() == 0
        assert gateway.get_withdrawal(withdrawal.id, user).withdrawal.status == "confirmed"

    def test_blocked_retried_next_cycle(
        self, worker, gateway, user, withdrawer, second_withdrawer, clock, vault
    ) -> None:
        _confirmed(gateway, user, withdrawer, second_withdrawer)
        clock.advance(TWO_DAYS)
        vault.pause()

        assert worker.process_matured() == 0

        vault.unpause()
        assert worker.process_matured() == 1


class TestLifecycle:

    def test_rejects_non_positive_interval(self, session_factory) -> None:
        with pytest.raises(ValueError):
            ExecutionWorker(session_factory=session_factory, interval_seconds=0)

    def test_start_and_stop(self, worker) -> None:
        async def scenario():
            await worker.start()
            assert worker.is_running
            await asyncio.sleep(0)
            await worker.stop()
            assert not worker.is_running

        asyncio.run(scenario())

    def test_stop_when_not_running_is_noop(self, worker) -> None:
        asyncio.run(worker.stop())
        assert not worker.is_running
