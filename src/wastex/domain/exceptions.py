"""Domain exceptions for the WasteEx deal engine.

These exceptions are framework-agnostic and represent business rule
violations. The API layer's middleware translates them into HTTP responses;
the ``code`` and ``retryable`` attributes let any caller decide between
retrying and giving up without parsing messages.

Taxonomy:
    ValidationError       - bad input, rejected before any write
    AuthorizationError    - actor not allowed to perform the operation
    NotFoundError         - referenced entity does not exist
    ConflictError         - duplicate payment / signature / sequence collision
    ExternalServiceError  - ledger or gateway timeout or rejection
    StateError            - operation invalid for the current lifecycle state
"""

from __future__ import annotations


class ExchangeError(Exception):
    """Base exception for all domain errors."""

    retryable: bool = False

    def __init__(self, message: str, code: str = "EXCHANGE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input & access ---


class ValidationError(ExchangeError):
    """Input failed a business rule the request schema cannot express."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message=message, code=code)


class AuthorizationError(ExchangeError):
    """The acting user may not perform this operation."""

    def __init__(self, message: str, code: str = "NOT_AUTHORIZED") -> None:
        super().__init__(message=message, code=code)


# --- Lookups ---


class NotFoundError(ExchangeError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code=f"{entity.upper().replace(' ', '_')}_NOT_FOUND",
        )
        self.entity = entity
        self.entity_id = entity_id


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str) -> None:
        super().__init__("User", user_id)


class ListingNotFoundError(NotFoundError):
    def __init__(self, listing_id: str) -> None:
        super().__init__("Listing", listing_id)


class MaterialRequestNotFoundError(NotFoundError):
    def __init__(self, request_id: str) -> None:
        super().__init__("Material request", request_id)


class NegotiationNotFoundError(NotFoundError):
    def __init__(self, negotiation_id: str) -> None:
        super().__init__("Negotiation", negotiation_id)


class ContractNotFoundError(NotFoundError):
    def __init__(self, contract_id: str) -> None:
        super().__init__("Contract", contract_id)


class PaymentNotFoundError(NotFoundError):
    def __init__(self, payment_id: str) -> None:
        super().__init__("Payment", payment_id)


# --- Conflicts ---


class ConflictError(ExchangeError):
    """A concurrent or repeated write lost against a uniqueness guard.

    Callers should re-read the entity and decide whether to retry.
    """

    retryable = True

    def __init__(self, message: str, code: str = "CONFLICT") -> None:
        super().__init__(message=message, code=code)


class DuplicatePaymentError(ConflictError):
    """Raised when a payment already exists for the contract."""

    retryable = False

    def __init__(self, contract_id: str) -> None:
        super().__init__(
            message=f"Payment already initiated for contract: {contract_id}",
            code="DUPLICATE_PAYMENT",
        )


class DuplicateContractError(ConflictError):
    """Raised when the negotiation already produced a contract."""

    retryable = False

    def __init__(self, negotiation_id: str) -> None:
        super().__init__(
            message=f"Negotiation already has a contract: {negotiation_id}",
            code="DUPLICATE_CONTRACT",
        )


class AlreadySignedError(ConflictError):
    """Raised when a role tries to sign a contract a second time."""

    retryable = False

    def __init__(self, contract_id: str, role: str) -> None:
        super().__init__(
            message=f"Contract {contract_id} already signed by {role}",
            code="ALREADY_SIGNED",
        )
        self.role = role


class PaymentAlreadyReleasedError(ConflictError):
    """Raised when releasing a payment that was already paid out."""

    retryable = False

    def __init__(self, payment_id: str) -> None:
        super().__init__(
            message=f"Payment already released: {payment_id}",
            code="PAYMENT_ALREADY_RELEASED",
        )


class ContractNumberCollisionError(ConflictError):
    """Two creations raced for the same company-pair sequence number."""

    def __init__(self, seller_company: str, buyer_company: str) -> None:
        super().__init__(
            message=(
                "Contract number sequence collision for "
                f"{seller_company!r} / {buyer_company!r}"
            ),
            code="CONTRACT_NUMBER_COLLISION",
        )


class MessageSequenceCollisionError(ConflictError):
    def __init__(self, negotiation_id: str) -> None:
        super().__init__(
            message=f"Concurrent message append on negotiation: {negotiation_id}",
            code="MESSAGE_SEQUENCE_COLLISION",
        )


# --- External services ---


class ExternalServiceError(ExchangeError):
    """Ledger or payment gateway call failed or timed out.

    Local state is never advanced when this is raised.
    """

    def __init__(
        self,
        service: str,
        message: str,
        retryable: bool = True,
        code: str = "EXTERNAL_SERVICE_ERROR",
    ) -> None:
        super().__init__(message=f"{service}: {message}", code=code)
        self.service = service
        self.retryable = retryable


class LedgerError(ExternalServiceError):
    def __init__(self, message: str, retryable: bool = True, tx_hash: str | None = None) -> None:
        super().__init__("ledger", message, retryable=retryable, code="LEDGER_ERROR")
        self.tx_hash = tx_hash


class PaymentGatewayError(ExternalServiceError):
    def __init__(self, message: str, retryable: bool = True, status_code: int | None = None) -> None:
        super().__init__("payment_gateway", message, retryable=retryable, code="GATEWAY_ERROR")
        self.status_code = status_code


# --- Lifecycle state ---


class StateError(ExchangeError):
    """Operation is not valid for the entity's current lifecycle state."""

    def __init__(self, message: str, code: str = "INVALID_STATE") -> None:
        super().__init__(message=message, code=code)


class InvalidStateTransitionError(StateError):
    """Raised when an attempted state transition is not allowed.

    Example: pending -> completed (a contract must be signed and executed first).
    """

    def __init__(self, entity: str, current_state: str, attempted: str) -> None:
        super().__init__(
            message=f"Invalid {entity} transition: {current_state} -> {attempted}",
            code="INVALID_STATE_TRANSITION",
        )
        self.entity = entity
        self.current_state = current_state
        self.attempted_state = attempted
