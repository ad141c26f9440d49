"""
============================================================================
Withdrawal Execution Worker - Background Job for Matured Withdrawals
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Amounts handled by the gateway as decimal.Decimal
Traceability: Each execution carries its own correlation_id

This module implements the ExecutionWorker background job:
- Periodically scans for confirmed withdrawals whose timelock has elapsed
- Executes each through the WithdrawalGateway (same guards as the API)
- Leaves blocked withdrawals confirmed so the next cycle retries them

============================================================================
"""

from typing import Callable, Optional
import asyncio
import logging

from sqlalchemy.orm import Session

from services.withdrawal_gateway import WithdrawalGateway

logger = logging.getLogger(__name__)


class ExecutionWorker:
    """
    Background job executing matured withdrawals.

    Reliability Level: L6 Critical
    Input Constraints: session_factory returns a new Session per cycle
    Side Effects: Database writes and vault calls through the gateway
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        interval_seconds: int = 60,
        gateway_factory: Optional[Callable[[Session], WithdrawalGateway]] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be positive, got: {interval_seconds}"
            )

        self._session_factory = session_factory
        self._interval_seconds = interval_seconds
        self._gateway_factory = gateway_factory or WithdrawalGateway
        self._running = False
        self._task: Optional[asyncio.Task] = None

        logger.info(
            f"[EXECUTION-WORKER] Initialized | "
            f"interval_seconds={interval_seconds}"
        )

    @property
    def interval_seconds(self) -> int:
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("[EXECUTION-WORKER] Already running, ignoring start request")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"[EXECUTION-WORKER] Started | "
            f"interval_seconds={self._interval_seconds}"
        )

    async def stop(self) -> None:
        if not self._running:
            logger.warning("[EXECUTION-WORKER] Not running, ignoring stop request")
            return

        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("[EXECUTION-WORKER] Stopped")

    async def _run_loop(self) -> None:
        logger.info("[EXECUTION-WORKER] Starting main loop")

        while self._running:
            try:
                executed = self.process_matured()
                if executed > 0:
                    logger.info(
                        f"[EXECUTION-WORKER] Executed {executed} matured withdrawals"
                    )
            except Exception as e:
                logger.error(
                    f"[EXECUTION-WORKER] Error in main loop | "
                    f"error={str(e)}"
                )

            try:
                await asyncio.sleep(self._interval_seconds)
            except asyncio.CancelledError:
                break

        logger.info("[EXECUTION-WORKER] Main loop exited")

    def process_matured(self) -> int:
        """
        Run one execution cycle.

        Returns:
            Number of withdrawals executed in this cycle
        """
        session = self._session_factory()
        try:
            gateway = self._gateway_factory(session)
            results = gateway.process_matured()
        finally:
            session.close()

        executed = sum(1 for result in results if result.executed)
        blocked = len(results) - executed
        if blocked:
            logger.info(
                f"[EXECUTION-WORKER] Matured withdrawals still blocked | "
                f"count={blocked}"
            )
        return executed


# =============================================================================
# Singleton Access
# =============================================================================

_worker_instance: Optional[ExecutionWorker] = None


def get_execution_worker(
    session_factory: Optional[Callable[[], Session]] = None,
    interval_seconds: Optional[int] = None,
) -> ExecutionWorker:
    global _worker_instance

    if _worker_instance is None:
        from app.database.session import SessionLocal
        from services.withdrawal_config import get_withdrawal_config

        _worker_instance = ExecutionWorker(
            session_factory=session_factory or SessionLocal,
            interval_seconds=interval_seconds or get_withdrawal_config().worker_interval_seconds,
        )

    return _worker_instance


def reset_execution_worker() -> None:
    global _worker_instance
    _worker_instance = None


__all__ = [
    "ExecutionWorker",
    "get_execution_worker",
    "reset_execution_worker",
]
