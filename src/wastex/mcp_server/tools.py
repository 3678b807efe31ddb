"""MCP tool definitions for the WasteEx deal engine.

Read-mostly operator tools exposed via the Model Context Protocol, so an
agent can inspect deal state without going through the REST surface.

Tools:
    - contract_status: Lifecycle, deployment and payment state of a contract
    - payment_status: Escrow state of a payment, with its timeline
    - recompute_matches: Re-rank listings for a material request

The MCP server is mounted into FastAPI at /mcp via app.mount().
Each tool manages its own database session (no FastAPI Depends available).
"""

from __future__ import annotations

import uuid

from mcp.server.fastmcp import FastMCP

from wastex.infrastructure.database.engine import session_scope
from wastex.logging_config import get_logger

logger = get_logger(__name__)

mcp = FastMCP(
    "WasteEx Deal Engine",
    json_response=True,
)


@mcp.tool()
async def contract_status(contract_id: str) -> dict:
    """Check the current status of a contract.

    Args:
        contract_id: UUID of the contract.

    Returns:
        Status, deployment and payment mirrors, signatures, and the lifecycle
        events the contract currently accepts.
    """
    from wastex.services.contract_service import ContractService

    try:
        async with session_scope() as session:
            return await ContractService(session).get_status(uuid.UUID(contract_id))
    except Exception as exc:
        logger.exception("mcp.contract_status.error")
        return {"error": str(exc)}


@mcp.tool()
async def payment_status(payment_id: str) -> dict:
    """Check the escrow state of a payment.

    Args:
        payment_id: UUID of the payment.
    """
    from wastex.schemas.payment import PaymentResponse
    from wastex.services.payment_service import PaymentService

    try:
        async with session_scope() as session:
            payment = await PaymentService(session).get_payment(uuid.UUID(payment_id))
            return PaymentResponse.model_validate(payment).model_dump(mode="json")
    except Exception as exc:
        logger.exception("mcp.payment_status.error")
        return {"error": str(exc)}


@mcp.tool()
async def recompute_matches(request_id: str) -> dict:
    """Re-rank active listings against a material request.

    Args:
        request_id: UUID of the material request.

    Returns:
        The fresh match list, best first.
    """
    from wastex.services.matching_service import MatchingService

    try:
        async with session_scope() as session:
            request = await MatchingService(session).recompute_matches(uuid.UUID(request_id))
            return {
                "request_id": str(request.id),
                "matches": request.matches,
                "message": f"{len(request.matches)} listing(s) matched.",
            }
    except Exception as exc:
        logger.exception("mcp.recompute_matches.error")
        return {"error": str(exc)}
