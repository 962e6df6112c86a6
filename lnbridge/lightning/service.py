from typing import AsyncGenerator, Optional

from decouple import config
from fastapi import HTTPException, status

from lnbridge.lightning.impl.ln_base import LightningNodeBase
from lnbridge.lightning.models import (
    DecodedInvoice,
    FeeEstimate,
    InitLnRepoUpdate,
    InvoiceParameters,
    PaymentParameters,
)

ln_node = config("ln_node", default="lnd_rest").lower()
if ln_node == "lnd_rest":
    from lnbridge.lightning.impl.lnd_rest import LnNodeLNDREST as LnNode
elif ln_node in ("", "none"):
    LnNode = None
else:
    raise RuntimeError(f"Unknown lightning implementation {ln_node}")

ln = LnNode() if LnNode is not None else None


def _ln() -> LightningNodeBase:
    if ln is None:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Lightning node is disabled (ln_node={ln_node or 'none'})",
        )

    return ln


def _not_implemented(r: NotImplementedError) -> HTTPException:
    detail = r.args[0] if r.args else "Not implemented by this backend"
    return HTTPException(status.HTTP_501_NOT_IMPLEMENTED, detail=detail)


async def initialize_ln_repo() -> AsyncGenerator[InitLnRepoUpdate, None]:
    if ln is None:
        raise RuntimeError("Lightning node is disabled")

    async for u in ln.initialize():
        yield u


async def decode_invoice(invoice: str) -> DecodedInvoice:
    try:
        return await _ln().decode_invoice(invoice)
    except HTTPException:
        raise
    except NotImplementedError as r:
        raise _not_implemented(r)


async def add_invoice(params: InvoiceParameters) -> str:
    try:
        return await _ln().add_invoice(params)
    except HTTPException:
        raise
    except NotImplementedError as r:
        raise _not_implemented(r)


async def watch_invoice(payment_hash: bytes, timeout: Optional[float] = None) -> int:
    try:
        return await _ln().watch_invoice(payment_hash, timeout)
    except HTTPException:
        raise
    except NotImplementedError as r:
        raise _not_implemented(r)


async def cancel_invoice(payment_hash: bytes) -> None:
    try:
        return await _ln().cancel_invoice(payment_hash)
    except HTTPException:
        raise
    except NotImplementedError as r:
        raise _not_implemented(r)


async def pay_invoice(
    params: PaymentParameters, timeout: Optional[float] = None
) -> bytes:
    try:
        return await _ln().pay_invoice(params, timeout)
    except HTTPException:
        raise
    except NotImplementedError as r:
        raise _not_implemented(r)


async def settle_invoice(preimage: bytes) -> None:
    try:
        return await _ln().settle_invoice(preimage)
    except HTTPException:
        raise
    except NotImplementedError as r:
        raise _not_implemented(r)


async def estimate_routing_fee(invoice: str, amount_msat: int = 0) -> FeeEstimate:
    try:
        decoded = await _ln().decode_invoice(invoice)
        return await _ln().estimate_routing_fee(decoded, amount_msat)
    except HTTPException:
        raise
    except NotImplementedError as r:
        raise _not_implemented(r)
