"""Application services - use case orchestration."""

from wastex.services.contract_service import ContractService
from wastex.services.matching_service import MatchingService
from wastex.services.negotiation_service import NegotiationService
from wastex.services.payment_service import PaymentService
from wastex.services.reconciliation import EscrowReconciler

__all__ = [
    "ContractService",
    "EscrowReconciler",
    "MatchingService",
    "NegotiationService",
    "PaymentService",
]
