"""Tests for ContractService: numbering, deployment saga, signatures, exits."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import insert, select, update

from conftest import contract_terms
from wastex.domain.enums import (
    ContractEventType,
    ContractStatus,
    DeploymentStatus,
    NegotiationStatus,
    UserType,
)
from wastex.domain.exceptions import (
    AlreadySignedError,
    AuthorizationError,
    ContractNotFoundError,
    DuplicateContractError,
    InvalidStateTransitionError,
    LedgerError,
    StateError,
    ValidationError,
)
from wastex.infrastructure.database.orm_models import Contract, ContractSequence
from wastex.infrastructure.database.repositories import (
    FIRST_CONTRACT_SEQUENCE,
    ContractRepository,
)
from wastex.infrastructure.ledger import SimulatedLedger
from wastex.services.contract_service import company_code, format_contract_number
from wastex.services.negotiation_service import NegotiationService


class ReceiptTimeoutLedger(SimulatedLedger):
    """Applies the first seller signature, then reports it as timed out."""

    def __init__(self) -> None:
        super().__init__()
        self.lose_next_receipt = True

    async def sign_as_seller(self, address: str) -> str:
        tx_hash = await super().sign_as_seller(address)
        if self.lose_next_receipt:
            self.lose_next_receipt = False
            raise LedgerError("receipt wait timed out", retryable=True, tx_hash=tx_hash)
        return tx_hash


class TestContractNumber:
    def test_company_code_uses_initials(self) -> None:
        assert company_code("Green Earth Recyclers") == "GER"
        assert company_code("acme") == "A"

    def test_company_code_capped_at_six(self) -> None:
        assert company_code("A B C D E F G H") == "ABCDEF"

    def test_format(self) -> None:
        number = format_contract_number(2025, "Green Earth Recyclers", "Blue Ocean Plastics", 1001)
        assert number == "C-2025-GER-BOP-1001"


class TestSequenceRace:
    @pytest.mark.asyncio
    async def test_lost_first_insert_falls_back_to_increment(self, session) -> None:
        repo = ContractRepository(session)
        original_execute = session.execute
        raced = []

        async def execute_then_race(statement, *args, **kwargs):
            result = await original_execute(statement, *args, **kwargs)
            if not raced:
                raced.append(statement)
                # Another request creates the pair's row between our UPDATE and INSERT.
                await original_execute(
                    insert(ContractSequence).values(
                        id=uuid.uuid4(),
                        seller_company="GER",
                        buyer_company="BOP",
                        last_sequence=FIRST_CONTRACT_SEQUENCE,
                    )
                )
            return result

        with patch.object(session, "execute", new=execute_then_race):
            value = await repo.next_sequence("GER", "BOP")

        assert value == FIRST_CONTRACT_SEQUENCE + 1
        stored = await session.scalar(
            select(ContractSequence.last_sequence).where(ContractSequence.seller_company == "GER")
        )
        assert stored == FIRST_CONTRACT_SEQUENCE + 1


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_deploys_and_opens_for_signatures(self, deal) -> None:
        contract = await deal.contract()

        assert contract.contract_number == "C-2025-GER-BOP-1001"
        assert contract.status == ContractStatus.PENDING
        assert contract.deployment_status == DeploymentStatus.CONFIRMED
        assert contract.ledger_address is not None
        assert contract.deployment_attempts == 1
        assert contract.payment_status == "not_initiated"

        events = await deal.contracts().get_events(deal.buyer, contract.id)
        types = {e.event_type for e in events}
        assert types == {
            ContractEventType.CONTRACT_CREATED.value,
            ContractEventType.DEPLOYMENT_CONFIRMED.value,
        }

    @pytest.mark.asyncio
    async def test_sequence_increments_per_company_pair(self, deal) -> None:
        first = await deal.contract()
        second = await deal.contract()
        assert first.contract_number.endswith("-1001")
        assert second.contract_number.endswith("-1002")

    @pytest.mark.asyncio
    async def test_new_company_pair_starts_at_1001(self, deal, seed) -> None:
        await deal.contract()
        other_buyer = await seed.user(UserType.BUYER.value, company="Metro Polymers")
        listing = await seed.listing(deal.seller)
        negotiation = await NegotiationService(deal.session, clock=deal.clock).create(
            other_buyer,
            title="Second buyer",
            counterparty_id=deal.seller.id,
            origin_type="listing",
            origin_id=listing.id,
        )
        contract = await deal.contracts().create(
            other_buyer, negotiation.id, "Second buyer contract", contract_terms()
        )
        assert contract.contract_number == "C-2025-GER-MP-1001"

    @pytest.mark.asyncio
    async def test_negotiation_is_completed(self, deal) -> None:
        contract = await deal.contract()
        negotiation = await NegotiationService(deal.session).get_negotiation(
            contract.negotiation_id
        )
        assert negotiation.status == NegotiationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_one_contract_per_negotiation(self, deal) -> None:
        contract = await deal.contract()
        with pytest.raises(DuplicateContractError):
            await deal.contracts().create(
                deal.buyer, contract.negotiation_id, "Again", contract_terms()
            )

    @pytest.mark.asyncio
    async def test_outsider_cannot_create(self, deal, seed) -> None:
        negotiation = await deal.negotiation()
        outsider = await seed.user(UserType.SELLER.value, company="Rival Scrap")
        with pytest.raises(AuthorizationError):
            await deal.contracts().create(outsider, negotiation.id, "Steal", contract_terms())

    @pytest.mark.asyncio
    async def test_cancelled_negotiation_rejected(self, deal) -> None:
        negotiation = await deal.negotiation()
        await NegotiationService(deal.session).update_status(
            deal.buyer, negotiation.id, NegotiationStatus.CANCELLED.value
        )
        with pytest.raises(StateError):
            await deal.contracts().create(deal.buyer, negotiation.id, "Late", contract_terms())

    @pytest.mark.asyncio
    async def test_invalid_payment_terms_rejected(self, deal) -> None:
        negotiation = await deal.negotiation()
        with pytest.raises(ValidationError):
            await deal.contracts().create(
                deal.buyer,
                negotiation.id,
                "Bad terms",
                contract_terms(payment_terms="barter"),
            )


class TestDeploymentSaga:
    @pytest.mark.asyncio
    async def test_failed_deployment_keeps_draft(self, deal, ledger) -> None:
        ledger.fail_next()
        contract = await deal.contract()

        assert contract.status == ContractStatus.DRAFT
        assert contract.deployment_status == DeploymentStatus.FAILED
        assert contract.deployment_error == "ledger: simulated ledger outage"
        assert contract.ledger_address is None

        events = await deal.contracts().get_events(deal.admin, contract.id)
        assert ContractEventType.DEPLOYMENT_FAILED.value in {e.event_type for e in events}

    @pytest.mark.asyncio
    async def test_admin_retry_confirms(self, deal, ledger) -> None:
        ledger.fail_next()
        contract = await deal.contract()

        contract = await deal.contracts().retry_deployment(contract.id, actor=deal.admin)
        assert contract.status == ContractStatus.PENDING
        assert contract.deployment_status == DeploymentStatus.CONFIRMED
        assert contract.deployment_attempts == 2
        assert contract.deployment_error is None

    @pytest.mark.asyncio
    async def test_only_admin_can_retry(self, deal, ledger) -> None:
        ledger.fail_next()
        contract = await deal.contract()
        with pytest.raises(AuthorizationError):
            await deal.contracts().retry_deployment(contract.id, actor=deal.buyer)

    @pytest.mark.asyncio
    async def test_confirmed_deployment_not_retried(self, deal) -> None:
        contract = await deal.contract()
        with pytest.raises(StateError):
            await deal.contracts().retry_deployment(contract.id, actor=deal.admin)

    @pytest.mark.asyncio
    async def test_cannot_sign_undeployed_contract(self, deal, ledger) -> None:
        ledger.fail_next()
        contract = await deal.contract()
        with pytest.raises(StateError):
            await deal.contracts().sign(deal.seller, contract.id, "sig")


class TestSignatures:
    @pytest.mark.asyncio
    async def test_both_signatures_move_to_signed(self, deal) -> None:
        contract = await deal.contract()

        contract = await deal.contracts().sign(deal.seller, contract.id, "seller-sig")
        assert contract.status == ContractStatus.PENDING
        assert contract.seller_signed_at == deal.clock.now
        assert contract.seller_sign_tx_hash is not None

        contract = await deal.contracts().sign(deal.buyer, contract.id, "buyer-sig")
        assert contract.status == ContractStatus.SIGNED
        assert contract.buyer_signed_at is not None

        events = await deal.contracts().get_events(deal.seller, contract.id)
        types = [e.event_type for e in events]
        assert types.count(ContractEventType.CONTRACT_SIGNED.value) == 2
        assert ContractEventType.CONTRACT_FULLY_SIGNED.value in types

    @pytest.mark.asyncio
    async def test_double_sign_rejected(self, deal) -> None:
        contract = await deal.contract()
        await deal.contracts().sign(deal.seller, contract.id, "seller-sig")
        with pytest.raises(AlreadySignedError):
            await deal.contracts().sign(deal.seller, contract.id, "seller-sig-again")

    @pytest.mark.asyncio
    async def test_outsider_cannot_sign(self, deal, seed) -> None:
        contract = await deal.contract()
        outsider = await seed.user(UserType.BUYER.value)
        with pytest.raises(AuthorizationError):
            await deal.contracts().sign(outsider, contract.id, "sig")

    @pytest.mark.asyncio
    async def test_empty_signature_rejected(self, deal) -> None:
        contract = await deal.contract()
        with pytest.raises(ValidationError):
            await deal.contracts().sign(deal.seller, contract.id, "   ")

    @pytest.mark.asyncio
    async def test_ledger_failure_records_nothing(self, deal, ledger) -> None:
        contract = await deal.contract()
        ledger.fail_next()
        with pytest.raises(LedgerError):
            await deal.contracts().sign(deal.seller, contract.id, "seller-sig")
        assert contract.seller_signed_at is None

    @pytest.mark.asyncio
    async def test_retry_adopts_signature_that_reached_the_ledger(self, deal) -> None:
        deal.ledger = ReceiptTimeoutLedger()
        contract = await deal.contract()

        with pytest.raises(LedgerError) as exc_info:
            await deal.contracts().sign(deal.seller, contract.id, "seller-sig")
        assert exc_info.value.retryable
        assert contract.seller_signed_at is None
        assert await deal.ledger.seller_signed(contract.ledger_address)

        contract = await deal.contracts().sign(deal.seller, contract.id, "seller-sig")
        assert contract.seller_signed_at is not None
        assert contract.seller_sign_tx_hash is None

        contract = await deal.contracts().sign(deal.buyer, contract.id, "buyer-sig")
        assert contract.status == ContractStatus.SIGNED

    @pytest.mark.asyncio
    async def test_lost_signature_claim_raises_already_signed(self, deal, session) -> None:
        contract = await deal.contract()
        # A concurrent request recorded the seller first; this copy is stale.
        await session.execute(
            update(Contract)
            .where(Contract.id == contract.id)
            .values(seller_signed_at=deal.clock.now, seller_signature="first-request")
            .execution_options(synchronize_session=False)
        )
        assert contract.seller_signed_at is None

        with pytest.raises(AlreadySignedError):
            await deal.contracts().sign(deal.seller, contract.id, "second-request")
        assert contract.seller_signature == "first-request"

    @pytest.mark.asyncio
    async def test_ledger_lag_leaves_pending_until_confirmed(self, deal, ledger) -> None:
        contract = await deal.contract()
        await deal.contracts().sign(deal.seller, contract.id, "seller-sig")

        with patch.object(ledger, "is_fully_signed", new_callable=AsyncMock, return_value=False):
            contract = await deal.contracts().sign(deal.buyer, contract.id, "buyer-sig")
        assert contract.status == ContractStatus.PENDING
        assert contract.locally_fully_signed

        contract = await deal.contracts().confirm_full_signature(contract.id)
        assert contract.status == ContractStatus.SIGNED

    @pytest.mark.asyncio
    async def test_signatures_closed_after_signing(self, deal) -> None:
        contract = await deal.signed_contract()
        with pytest.raises((StateError, AlreadySignedError)):
            await deal.contracts().sign(deal.buyer, contract.id, "again")


class TestCancelAndDispute:
    @pytest.mark.asyncio
    async def test_cancel_pending_contract(self, deal) -> None:
        contract = await deal.contract()
        contract = await deal.contracts().cancel(deal.seller, contract.id, "Plant shutdown")
        assert contract.status == ContractStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancelled_contract_is_final(self, deal) -> None:
        contract = await deal.contract()
        await deal.contracts().cancel(deal.seller, contract.id, "Plant shutdown")
        with pytest.raises(InvalidStateTransitionError):
            await deal.contracts().raise_dispute(deal.buyer, contract.id, "Too late")

    @pytest.mark.asyncio
    async def test_dispute_signed_contract(self, deal) -> None:
        contract = await deal.signed_contract()
        contract = await deal.contracts().raise_dispute(deal.buyer, contract.id, "Wrong grade")
        assert contract.status == ContractStatus.DISPUTED

        events = await deal.contracts().get_events(deal.buyer, contract.id)
        (dispute,) = [e for e in events if e.event_type == ContractEventType.DISPUTE_RAISED]
        assert dispute.metadata_json == {"reason": "Wrong grade"}
        assert dispute.actor == str(deal.buyer.id)


class TestReads:
    @pytest.mark.asyncio
    async def test_outsider_cannot_read(self, deal, seed) -> None:
        contract = await deal.contract()
        outsider = await seed.user(UserType.BUYER.value)
        with pytest.raises(AuthorizationError):
            await deal.contracts().get(outsider, contract.id)
        assert (await deal.contracts().get(deal.admin, contract.id)).id == contract.id

    @pytest.mark.asyncio
    async def test_unknown_contract(self, deal) -> None:
        with pytest.raises(ContractNotFoundError):
            await deal.contracts().get_contract(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_status_lists_allowed_events(self, deal) -> None:
        contract = await deal.signed_contract()
        status = await deal.contracts().get_status(contract.id)
        assert status["status"] == "signed"
        assert status["seller_signed"] and status["buyer_signed"]
        assert set(status["allowed_events"]) == {"payment_verified", "cancel", "dispute"}


class TestListMine:
    @pytest.mark.asyncio
    async def test_pages_through_own_contracts(self, deal) -> None:
        contracts = [await deal.contract() for _ in range(3)]

        first = await deal.contracts().list_mine(deal.seller, limit=2)
        second = await deal.contracts().list_mine(deal.seller, page=2, limit=2)

        assert (first.total, first.pages) == (3, 2)
        assert len(first.items) == 2
        assert first.has_next and not first.has_prev
        assert len(second.items) == 1
        assert second.has_prev and not second.has_next
        assert {c.id for c in first.items + second.items} == {c.id for c in contracts}

    @pytest.mark.asyncio
    async def test_status_filter(self, deal) -> None:
        kept = await deal.contract()
        dropped = await deal.contract()
        await deal.contracts().cancel(deal.buyer, dropped.id, "Specs changed")

        cancelled = await deal.contracts().list_mine(deal.buyer, status="cancelled")
        pending = await deal.contracts().list_mine(deal.buyer, status="pending")

        assert [c.id for c in cancelled.items] == [dropped.id]
        assert [c.id for c in pending.items] == [kept.id]

    @pytest.mark.asyncio
    async def test_outsider_sees_nothing_admin_sees_all(self, deal, seed) -> None:
        await deal.contract()
        outsider = await seed.user(UserType.BUYER.value)

        assert (await deal.contracts().list_mine(outsider)).total == 0
        assert (await deal.contracts().list_mine(deal.admin)).total == 1

    @pytest.mark.asyncio
    async def test_page_bounds(self, deal) -> None:
        await deal.parties()
        with pytest.raises(ValidationError):
            await deal.contracts().list_mine(deal.buyer, page=0)
        with pytest.raises(ValidationError):
            await deal.contracts().list_mine(deal.buyer, limit=101)
