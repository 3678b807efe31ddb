"""Reconciliation sweep - the time-driven half of the lifecycle.

One pass:
    1. releases every escrowed payment whose auto-release date has passed
       (contract still ``executed``),
    2. re-runs ledger deployments that failed or stalled in ``pending``,
    3. promotes contracts whose two local signatures are recorded but whose
       ledger check failed at signing time.

Each item runs in its own session and transaction, so one failure is logged
and counted without aborting the sweep or rolling back its neighbours.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select

from wastex.config import get_settings
from wastex.domain.clock import Clock, utcnow
from wastex.domain.enums import ContractStatus, DeploymentStatus
from wastex.domain.exceptions import ExchangeError
from wastex.infrastructure.database.engine import session_scope
from wastex.infrastructure.database.orm_models import Contract
from wastex.infrastructure.database.repositories import ContractRepository, PaymentRepository
from wastex.infrastructure.redis_client import acquire_lock, redis_available, release_lock
from wastex.logging_config import get_logger
from wastex.services.contract_service import ContractService
from wastex.services.payment_service import PaymentService

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from wastex.config import Settings
    from wastex.domain.ports import LedgerClient

logger = get_logger(__name__)

LOCK_NAME = "reconciliation-sweep"


@dataclass
class SweepReport:
    released: list[str] = field(default_factory=list)
    release_failures: list[str] = field(default_factory=list)
    deployments_confirmed: list[str] = field(default_factory=list)
    deployments_failed: list[str] = field(default_factory=list)
    signatures_confirmed: list[str] = field(default_factory=list)
    signature_failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "released": len(self.released),
            "release_failures": len(self.release_failures),
            "deployments_confirmed": len(self.deployments_confirmed),
            "deployments_failed": len(self.deployments_failed),
            "signatures_confirmed": len(self.signatures_confirmed),
            "signature_failures": len(self.signature_failures),
        }


class EscrowReconciler:
    """Runs sweeps against a session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: LedgerClient,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._ledger = ledger
        self._clock = clock or utcnow
        self._settings = settings or get_settings()

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or self._clock()
        report = SweepReport()

        async with session_scope(self._session_factory) as session:
            due = await PaymentRepository(session).due_for_auto_release(now)
            stale_before = now - timedelta(seconds=self._settings.deployment_stale_after_seconds)
            redeploy = await ContractRepository(session).deployment_candidates(
                self._settings.max_deployment_attempts, stale_before
            )
            unsigned = await self._awaiting_full_signature(session)

        for payment_id in due:
            await self._release_one(payment_id, now, report)
        for contract_id in redeploy:
            await self._redeploy_one(contract_id, now, report)
        for contract_id in unsigned:
            await self._confirm_signature_one(contract_id, now, report)

        logger.info("reconciliation.sweep_complete", **report.to_dict())
        return report

    async def _release_one(self, payment_id: uuid.UUID, now: datetime, report: SweepReport) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                service = PaymentService(session, clock=lambda: now, settings=self._settings)
                await service.release(None, payment_id)
        except ExchangeError as exc:
            report.release_failures.append(str(payment_id))
            logger.warning(
                "reconciliation.release_failed",
                payment_id=str(payment_id),
                error_code=exc.code,
                error=exc.message,
            )
            return
        except Exception:
            report.release_failures.append(str(payment_id))
            logger.exception("reconciliation.release_crashed", payment_id=str(payment_id))
            return
        report.released.append(str(payment_id))
        logger.info("reconciliation.auto_released", payment_id=str(payment_id))

    async def _redeploy_one(self, contract_id: uuid.UUID, now: datetime, report: SweepReport) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                service = ContractService(session, ledger=self._ledger, clock=lambda: now)
                contract = await service.retry_deployment(contract_id)
                confirmed = contract.deployment_status == DeploymentStatus.CONFIRMED
        except ExchangeError as exc:
            report.deployments_failed.append(str(contract_id))
            logger.warning(
                "reconciliation.redeploy_failed",
                contract_id=str(contract_id),
                error_code=exc.code,
                error=exc.message,
            )
            return
        except Exception:
            report.deployments_failed.append(str(contract_id))
            logger.exception("reconciliation.redeploy_crashed", contract_id=str(contract_id))
            return
        if confirmed:
            report.deployments_confirmed.append(str(contract_id))
        else:
            report.deployments_failed.append(str(contract_id))

    async def _confirm_signature_one(
        self,
        contract_id: uuid.UUID,
        now: datetime,
        report: SweepReport,
    ) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                service = ContractService(session, ledger=self._ledger, clock=lambda: now)
                contract = await service.confirm_full_signature(contract_id)
                promoted = contract.status == ContractStatus.SIGNED
        except ExchangeError as exc:
            report.signature_failures.append(str(contract_id))
            logger.warning(
                "reconciliation.signature_check_failed",
                contract_id=str(contract_id),
                error=exc.message,
            )
            return
        except Exception:
            report.signature_failures.append(str(contract_id))
            logger.exception(
                "reconciliation.signature_check_crashed", contract_id=str(contract_id)
            )
            return
        if promoted:
            report.signatures_confirmed.append(str(contract_id))

    async def _awaiting_full_signature(self, session: AsyncSession) -> list[uuid.UUID]:
        result = await session.execute(
            select(Contract.id).where(
                Contract.status == ContractStatus.PENDING.value,
                Contract.seller_signed_at.is_not(None),
                Contract.buyer_signed_at.is_not(None),
            )
        )
        return list(result.scalars().all())


async def run_reconciliation_loop(reconciler: EscrowReconciler, interval_seconds: int) -> None:
    """Sweep forever, one worker at a time when Redis is reachable.

    Without Redis every worker sweeps; the per-row guards (state machines,
    conditional updates) keep concurrent sweeps from double-applying.
    """
    logger.info("reconciliation.loop_started", interval_seconds=interval_seconds)
    while True:
        token = None
        try:
            if redis_available():
                token = await acquire_lock(LOCK_NAME, ttl_seconds=max(interval_seconds, 60))
                if token is None:
                    logger.debug("reconciliation.lock_held_elsewhere")
            if token is not None or not redis_available():
                await reconciler.sweep()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("reconciliation.sweep_crashed")
        finally:
            if token is not None:
                try:
                    await release_lock(LOCK_NAME, token)
                except Exception:
                    logger.exception("reconciliation.lock_release_failed")
        await asyncio.sleep(interval_seconds)
