"""Contract Service - contract lifecycle coordinated against the ledger.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Repositories (data access)
    - The ledger client (deployment and signature attestation)
    - Event log (audit trail)

Deployment is a small saga. The contract row is written as ``draft`` with
deployment ``pending``; the ledger deploy is then awaited. Success confirms
the deployment and opens the contract for signatures (``pending``). Failure
marks the deployment ``failed`` and leaves the contract in ``draft`` so the
reconciliation sweep, or an admin, can retry it. The contract is returned
either way; callers read ``deployment_status``.

``executed`` and ``completed`` are only reachable through the payment
service, via ``record_payment_verified`` and ``record_escrow_released``.
"""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from wastex.domain.clock import Clock, utcnow
from wastex.domain.enums import (
    ContractEventType,
    ContractPaymentStatus,
    ContractStatus,
    DeploymentStatus,
    NegotiationStatus,
    PartyRole,
    PaymentStatus,
    PaymentTerms,
    TimelineEntryType,
)
from wastex.domain.exceptions import (
    AlreadySignedError,
    AuthorizationError,
    ContractNotFoundError,
    ContractNumberCollisionError,
    DuplicateContractError,
    ExternalServiceError,
    StateError,
    UserNotFoundError,
    ValidationError,
)
from wastex.domain.paging import DEFAULT_PAGE_SIZE, Page, check_page
from wastex.domain.state_machine import ContractStateMachine, fire_transition
from wastex.infrastructure.database.orm_models import Contract
from wastex.infrastructure.database.repositories import (
    ContractEventRepository,
    ContractRepository,
    PaymentRepository,
    UserRepository,
)
from wastex.logging_config import get_logger
from wastex.services.negotiation_service import NegotiationService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from wastex.domain.ports import LedgerClient
    from wastex.infrastructure.database.orm_models import ContractEvent, User

logger = get_logger(__name__)

COMPANY_CODE_LENGTH = 6

_TERMINAL = {
    ContractStatus.COMPLETED.value,
    ContractStatus.CANCELLED.value,
    ContractStatus.DISPUTED.value,
}


def company_code(company: str) -> str:
    """Initials of each word, upper-cased, at most six characters.

    "Green Earth Recyclers" -> "GER"
    """
    return "".join(word[0] for word in company.split() if word).upper()[:COMPANY_CODE_LENGTH]


def format_contract_number(
    year: int,
    seller_company: str,
    buyer_company: str,
    sequence: int,
) -> str:
    return f"C-{year}-{company_code(seller_company)}-{company_code(buyer_company)}-{sequence}"


class ContractService:
    """Manages the contract lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: LedgerClient | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._ledger = ledger
        self._clock = clock or utcnow
        self._contract_repo = ContractRepository(session)
        self._event_repo = ContractEventRepository(session)
        self._payment_repo = PaymentRepository(session)
        self._user_repo = UserRepository(session)
        self._negotiations = NegotiationService(session, clock=self._clock)

    # ------------------------------------------------------------------
    # Creation + deployment saga
    # ------------------------------------------------------------------

    async def create(
        self,
        actor: User,
        negotiation_id: uuid.UUID,
        title: str,
        terms: dict,
    ) -> Contract:
        """Create a contract from a negotiation and deploy it to the ledger."""
        negotiation = await self._negotiations.get_negotiation(negotiation_id)
        if negotiation.role_of(actor.id) is None:
            raise AuthorizationError("Only negotiation participants can create its contract")
        if negotiation.status == NegotiationStatus.CANCELLED:
            raise StateError("Cannot create a contract from a cancelled negotiation")
        if await self._contract_repo.get_by_negotiation(negotiation.id) is not None:
            raise DuplicateContractError(str(negotiation.id))

        total_value = _validate_terms(terms)

        seller = await self._user_repo.get_by_id(negotiation.seller_id)
        buyer = await self._user_repo.get_by_id(negotiation.buyer_id)
        if seller is None:
            raise UserNotFoundError(str(negotiation.seller_id))
        if buyer is None:
            raise UserNotFoundError(str(negotiation.buyer_id))
        seller_company = seller.display_company
        buyer_company = buyer.display_company

        now = self._clock()
        sequence = await self._contract_repo.next_sequence(seller_company, buyer_company)
        contract_number = format_contract_number(now.year, seller_company, buyer_company, sequence)

        contract = Contract(
            contract_number=contract_number,
            title=title,
            negotiation_id=negotiation.id,
            listing_id=negotiation.listing_id,
            seller_id=seller.id,
            seller_company=seller_company,
            buyer_id=buyer.id,
            buyer_company=buyer_company,
            terms=terms,
            total_value=total_value,
            currency=terms.get("currency", "INR"),
            status=ContractStatus.DRAFT.value,
            deployment_status=DeploymentStatus.PENDING.value,
            deployment_attempts=0,
            deployment_requested_at=now,
            payment_status=ContractPaymentStatus.NOT_INITIATED.value,
            created_at=now,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(contract)
        except IntegrityError as err:
            if await self._contract_repo.get_by_negotiation(negotiation.id) is not None:
                raise DuplicateContractError(str(negotiation.id)) from err
            raise ContractNumberCollisionError(seller_company, buyer_company) from err

        await self._event_repo.record(
            contract_id=contract.id,
            event_type=ContractEventType.CONTRACT_CREATED,
            old_status=None,
            new_status=ContractStatus.DRAFT.value,
            actor=str(actor.id),
            metadata={"contract_number": contract_number, "negotiation_id": str(negotiation.id)},
        )
        await self._negotiations.mark_completed(negotiation)

        logger.info(
            "contract.created",
            contract_id=str(contract.id),
            contract_number=contract_number,
            total_value=str(total_value),
        )

        await self._deploy(contract)
        return contract

    async def retry_deployment(
        self,
        contract_id: uuid.UUID,
        actor: User | None = None,
    ) -> Contract:
        """Redeploy a contract whose ledger deployment failed or stalled.

        ``actor`` is None when the reconciliation sweep calls this.
        """
        contract = await self._get_contract_or_raise(contract_id)
        if actor is not None and not actor.is_admin:
            raise AuthorizationError("Only admins can retry a deployment")
        if contract.status != ContractStatus.DRAFT or contract.deployment_status not in {
            DeploymentStatus.FAILED.value,
            DeploymentStatus.PENDING.value,
        }:
            raise StateError(
                f"Deployment cannot be retried (status={contract.status}, "
                f"deployment={contract.deployment_status})"
            )
        await self._deploy(contract)
        return contract

    async def _deploy(self, contract: Contract) -> None:
        ledger = self._require_ledger()
        contract.deployment_attempts += 1
        contract.deployment_requested_at = self._clock()
        await self._session.flush()

        try:
            deployment = await ledger.deploy(_terms_document(contract))
        except ExternalServiceError as exc:
            contract.deployment_status = DeploymentStatus.FAILED.value
            contract.deployment_error = exc.message
            await self._session.flush()
            await self._event_repo.record(
                contract_id=contract.id,
                event_type=ContractEventType.DEPLOYMENT_FAILED,
                old_status=contract.status,
                new_status=contract.status,
                metadata={
                    "error": exc.message,
                    "retryable": exc.retryable,
                    "attempt": contract.deployment_attempts,
                },
            )
            logger.warning(
                "contract.deployment_failed",
                contract_id=str(contract.id),
                attempt=contract.deployment_attempts,
                retryable=exc.retryable,
                error=exc.message,
            )
            return

        old_status = contract.status
        new_status = fire_transition(ContractStateMachine, old_status, "deployment_confirmed")
        contract.ledger_address = deployment.address
        contract.deployment_tx_hash = deployment.tx_hash
        contract.deployment_status = DeploymentStatus.CONFIRMED.value
        contract.deployment_error = None
        contract.deployed_at = self._clock()
        await self._contract_repo.update_status(contract, new_status)

        await self._event_repo.record(
            contract_id=contract.id,
            event_type=ContractEventType.DEPLOYMENT_CONFIRMED,
            old_status=old_status,
            new_status=new_status,
            metadata={"ledger_address": deployment.address, "tx_hash": deployment.tx_hash},
        )
        logger.info(
            "contract.deployed",
            contract_id=str(contract.id),
            ledger_address=deployment.address,
            attempt=contract.deployment_attempts,
        )

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    async def sign(self, actor: User, contract_id: uuid.UUID, signature: str) -> Contract:
        """Sign for the actor's role, on the ledger first, then locally."""
        contract = await self._get_contract_or_raise(contract_id)
        role = contract.role_of(actor.id)
        if role is None:
            raise AuthorizationError("Only the contract's seller or buyer can sign")
        if not signature or not signature.strip():
            raise ValidationError("Signature cannot be empty")
        if contract.deployment_status != DeploymentStatus.CONFIRMED:
            raise StateError("Contract is not deployed to the ledger yet")
        if contract.status != ContractStatus.PENDING:
            raise StateError(f"Contract is {contract.status}; signatures are closed")
        if contract.signed_at(role) is not None:
            raise AlreadySignedError(str(contract.id), role.value)

        ledger = self._require_ledger()
        tx_hash = await self._sign_on_ledger(ledger, contract, role)

        signer_address = actor.ledger_address or getattr(ledger, "platform_address", "platform")
        claimed = await self._contract_repo.claim_signature(
            contract,
            role,
            signed_at=self._clock(),
            signature=signature.strip(),
            signer_address=signer_address,
            tx_hash=tx_hash,
        )
        if not claimed:
            raise AlreadySignedError(str(contract.id), role.value)

        await self._event_repo.record(
            contract_id=contract.id,
            event_type=ContractEventType.CONTRACT_SIGNED,
            old_status=contract.status,
            new_status=contract.status,
            actor=str(actor.id),
            metadata={"role": role.value, "tx_hash": tx_hash},
        )
        logger.info(
            "contract.signed",
            contract_id=str(contract.id),
            role=role.value,
            tx_hash=tx_hash,
        )

        if contract.locally_fully_signed:
            await self.confirm_full_signature(contract.id)
        return contract

    async def _sign_on_ledger(
        self,
        ledger: LedgerClient,
        contract: Contract,
        role: PartyRole,
    ) -> str | None:
        """Send the role's signing transaction unless the ledger already has it.

        A previous attempt can land on the ledger and still fail locally
        (receipt timeout, failed commit). Its signature is adopted instead of
        being sent again; the original tx hash is unknown, so None is returned.
        """
        address = contract.ledger_address
        if role == PartyRole.SELLER:
            already_signed = await ledger.seller_signed(address)
        else:
            already_signed = await ledger.buyer_signed(address)
        if already_signed:
            logger.warning(
                "contract.ledger_signature_adopted",
                contract_id=str(contract.id),
                role=role.value,
            )
            return None
        if role == PartyRole.SELLER:
            return await ledger.sign_as_seller(address)
        return await ledger.sign_as_buyer(address)

    async def confirm_full_signature(self, contract_id: uuid.UUID) -> Contract:
        """Move to ``signed`` once both local signatures exist and the ledger agrees.

        A ledger read failure leaves the contract ``pending``; the signatures
        themselves are already recorded and the sweep re-checks later.
        """
        contract = await self._get_contract_or_raise(contract_id)
        if contract.status != ContractStatus.PENDING or not contract.locally_fully_signed:
            return contract

        ledger = self._require_ledger()
        try:
            fully_signed = await ledger.is_fully_signed(contract.ledger_address)
        except ExternalServiceError as exc:
            logger.warning(
                "contract.full_signature_check_failed",
                contract_id=str(contract.id),
                error=exc.message,
            )
            return contract

        if not fully_signed:
            logger.warning("contract.ledger_signature_lag", contract_id=str(contract.id))
            return contract

        old_status = contract.status
        new_status = fire_transition(ContractStateMachine, old_status, "fully_signed")
        await self._contract_repo.update_status(contract, new_status)
        await self._event_repo.record(
            contract_id=contract.id,
            event_type=ContractEventType.CONTRACT_FULLY_SIGNED,
            old_status=old_status,
            new_status=new_status,
        )
        logger.info("contract.fully_signed", contract_id=str(contract.id))
        return contract

    # ------------------------------------------------------------------
    # Cancellation & disputes
    # ------------------------------------------------------------------

    async def cancel(self, actor: User, contract_id: uuid.UUID, reason: str) -> Contract:
        contract = await self._get_for_party_or_admin(actor, contract_id)
        if contract.payment_status == ContractPaymentStatus.HELD_IN_ESCROW:
            raise StateError("Funds are held in escrow; raise a dispute or request a refund")

        old_status = contract.status
        new_status = fire_transition(ContractStateMachine, old_status, "cancel")
        await self._contract_repo.update_status(contract, new_status)
        await self._event_repo.record(
            contract_id=contract.id,
            event_type=ContractEventType.CONTRACT_CANCELLED,
            old_status=old_status,
            new_status=new_status,
            actor=str(actor.id),
            metadata={"reason": reason},
        )
        logger.info("contract.cancelled", contract_id=str(contract.id), by=str(actor.id))
        return contract

    async def raise_dispute(self, actor: User, contract_id: uuid.UUID, reason: str) -> Contract:
        """Freeze the contract; any escrowed payment loses its manual release path."""
        contract = await self._get_for_party_or_admin(actor, contract_id)

        old_status = contract.status
        new_status = fire_transition(ContractStateMachine, old_status, "dispute")
        await self._contract_repo.update_status(contract, new_status)

        payment = await self._payment_repo.get_by_contract(contract.id)
        if payment is not None and payment.status == PaymentStatus.HELD_IN_ESCROW:
            payment.dispute_resolved = False
            await self._payment_repo.add_timeline(
                payment,
                status=TimelineEntryType.DISPUTE_RAISED.value,
                description=f"Dispute raised: {reason}",
                actor=str(actor.id),
                at=self._clock(),
            )

        await self._event_repo.record(
            contract_id=contract.id,
            event_type=ContractEventType.DISPUTE_RAISED,
            old_status=old_status,
            new_status=new_status,
            actor=str(actor.id),
            metadata={"reason": reason},
        )
        logger.info("contract.dispute_raised", contract_id=str(contract.id), by=str(actor.id))
        return contract

    # ------------------------------------------------------------------
    # Escrow-driven transitions (payment service only)
    # ------------------------------------------------------------------

    async def record_payment_verified(self, contract: Contract, payment_id: uuid.UUID) -> Contract:
        old_status = contract.status
        new_status = fire_transition(ContractStateMachine, old_status, "payment_verified")
        contract.payment_status = ContractPaymentStatus.HELD_IN_ESCROW.value
        await self._contract_repo.update_status(contract, new_status)
        await self._event_repo.record(
            contract_id=contract.id,
            event_type=ContractEventType.CONTRACT_EXECUTED,
            old_status=old_status,
            new_status=new_status,
            metadata={"payment_id": str(payment_id)},
        )
        logger.info("contract.executed", contract_id=str(contract.id))
        return contract

    async def record_escrow_released(
        self,
        contract: Contract,
        payment_id: uuid.UUID,
        released_by: str,
    ) -> Contract:
        old_status = contract.status
        new_status = fire_transition(ContractStateMachine, old_status, "escrow_released")
        contract.payment_status = ContractPaymentStatus.RELEASED_TO_SELLER.value
        await self._contract_repo.update_status(contract, new_status)
        await self._event_repo.record(
            contract_id=contract.id,
            event_type=ContractEventType.CONTRACT_COMPLETED,
            old_status=old_status,
            new_status=new_status,
            actor=released_by,
            metadata={"payment_id": str(payment_id)},
        )
        logger.info("contract.completed", contract_id=str(contract.id))
        return contract

    async def record_refund(
        self,
        contract: Contract,
        payment_id: uuid.UUID,
        refunded_by: str,
        reason: str,
    ) -> Contract:
        contract.payment_status = ContractPaymentStatus.REFUNDED.value
        if contract.status in _TERMINAL:
            await self._session.flush()
            return contract

        old_status = contract.status
        new_status = fire_transition(ContractStateMachine, old_status, "cancel")
        await self._contract_repo.update_status(contract, new_status)
        await self._event_repo.record(
            contract_id=contract.id,
            event_type=ContractEventType.CONTRACT_CANCELLED,
            old_status=old_status,
            new_status=new_status,
            actor=refunded_by,
            metadata={"payment_id": str(payment_id), "reason": reason, "refunded": True},
        )
        logger.info("contract.cancelled_by_refund", contract_id=str(contract.id))
        return contract

    async def set_payment_status(self, contract: Contract, status: ContractPaymentStatus) -> None:
        """Mirror the payment's progress onto the contract."""
        contract.payment_status = status.value
        await self._session.flush()

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def list_mine(
        self,
        actor: User,
        status: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Contract]:
        """Contracts the actor is a party to; admins see every contract."""
        check_page(page, limit)
        items, total = await self._contract_repo.list_for_user(
            None if actor.is_admin else actor.id, status, page, limit
        )
        return Page(page=page, limit=limit, total=total, items=items)

    async def get(self, actor: User, contract_id: uuid.UUID) -> Contract:
        return await self._get_for_party_or_admin(actor, contract_id)

    async def get_contract(self, contract_id: uuid.UUID) -> Contract:
        return await self._get_contract_or_raise(contract_id)

    async def get_events(self, actor: User, contract_id: uuid.UUID) -> list[ContractEvent]:
        """Get audit trail."""
        contract = await self._get_for_party_or_admin(actor, contract_id)
        return await self._event_repo.get_by_contract(contract.id)

    async def get_status(self, contract_id: uuid.UUID) -> dict:
        """Status summary with the events the state machine would accept."""
        contract = await self._get_contract_or_raise(contract_id)
        sm = ContractStateMachine(current_status=contract.status)
        return {
            "contract_id": str(contract.id),
            "contract_number": contract.contract_number,
            "status": contract.status,
            "deployment_status": contract.deployment_status,
            "payment_status": contract.payment_status,
            "seller_signed": contract.seller_signed_at is not None,
            "buyer_signed": contract.buyer_signed_at is not None,
            "allowed_events": sm.get_allowed_events(),
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_ledger(self) -> LedgerClient:
        if self._ledger is None:
            raise RuntimeError("ContractService needs a ledger client for this operation")
        return self._ledger

    async def _get_contract_or_raise(self, contract_id: uuid.UUID) -> Contract:
        contract = await self._contract_repo.get_by_id(contract_id)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        return contract

    async def _get_for_party_or_admin(self, actor: User, contract_id: uuid.UUID) -> Contract:
        contract = await self._get_contract_or_raise(contract_id)
        if not actor.is_admin and contract.role_of(actor.id) is None:
            raise AuthorizationError("Not a party to this contract")
        return contract


def _validate_terms(terms: dict) -> Decimal:
    """Business checks on the entered terms; returns the total value."""
    try:
        total_value = Decimal(str(terms["total_value"]))
    except (KeyError, InvalidOperation) as exc:
        raise ValidationError("Contract terms need a numeric total_value") from exc
    if total_value <= 0:
        raise ValidationError("Contract total value must be positive")
    payment_terms = terms.get("payment_terms")
    if payment_terms not in {p.value for p in PaymentTerms}:
        raise ValidationError(f"Unknown payment terms {payment_terms!r}")
    return total_value


def _terms_document(contract: Contract) -> str:
    """Canonical JSON the ledger record is deployed with."""
    return json.dumps(
        {
            "contract_number": contract.contract_number,
            "seller_company": contract.seller_company,
            "buyer_company": contract.buyer_company,
            "terms": contract.terms,
        },
        sort_keys=True,
        default=str,
    )

