from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from lnbridge.lightning.docs import (
    add_invoice_desc,
    estimate_fee_desc,
    pay_invoice_desc,
    watch_invoice_desc,
)
from lnbridge.lightning.models import (
    AddInvoiceResponse,
    DecodedInvoice,
    FeeEstimate,
    InvoiceParameters,
    PayInvoiceResponse,
    PaymentParameters,
    WatchInvoiceResponse,
)
from lnbridge.lightning.service import (
    add_invoice,
    cancel_invoice,
    decode_invoice,
    estimate_routing_fee,
    pay_invoice,
    settle_invoice,
    watch_invoice,
)

_PREFIX = "lightning"

router = APIRouter(prefix=f"/{_PREFIX}", tags=["Lightning"])

responses = {
    503: {"description": "The lightning node is not reachable or not initialized."}
}


def _bytes_from_hex(value: str, name: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, detail=f"{name} must be a hex string"
        )


@router.get(
    "/decode-invoice",
    name=f"{_PREFIX}.decode-invoice",
    summary="Decodes a payment request.",
    response_model=DecodedInvoice,
    responses=responses,
)
async def decode_invoice_path(
    invoice: str = Query(..., description="The encoded payment request"),
):
    return await decode_invoice(invoice)


@router.post(
    "/add-invoice",
    name=f"{_PREFIX}.add-invoice",
    summary="Creates a new invoice.",
    description=add_invoice_desc,
    response_model=AddInvoiceResponse,
    responses=responses,
)
async def add_invoice_path(params: InvoiceParameters):
    return AddInvoiceResponse(payment_request=await add_invoice(params))


@router.post(
    "/watch-invoice",
    name=f"{_PREFIX}.watch-invoice",
    summary="Waits until an invoice is accepted.",
    description=watch_invoice_desc,
    response_model=WatchInvoiceResponse,
    responses=responses,
)
async def watch_invoice_path(
    payment_hash: str = Query(..., description="Payment hash of the invoice in hex"),
    timeout: Optional[float] = Query(
        None, gt=0, description="Seconds to wait. Waits forever if not set."
    ),
):
    amt = await watch_invoice(_bytes_from_hex(payment_hash, "payment_hash"), timeout)
    return WatchInvoiceResponse(amt_paid_msat=amt)


@router.post(
    "/cancel-invoice",
    name=f"{_PREFIX}.cancel-invoice",
    summary="Cancels an open or accepted invoice.",
    responses=responses,
)
async def cancel_invoice_path(
    payment_hash: str = Query(..., description="Payment hash of the invoice in hex"),
):
    await cancel_invoice(_bytes_from_hex(payment_hash, "payment_hash"))


@router.post(
    "/settle-invoice",
    name=f"{_PREFIX}.settle-invoice",
    summary="Settles an accepted hold invoice by revealing its preimage.",
    responses=responses,
)
async def settle_invoice_path(
    preimage: str = Query(..., description="The preimage in hex"),
):
    await settle_invoice(_bytes_from_hex(preimage, "preimage"))


@router.post(
    "/pay-invoice",
    name=f"{_PREFIX}.pay-invoice",
    summary="Pays an invoice.",
    description=pay_invoice_desc,
    response_model=PayInvoiceResponse,
    responses=responses,
)
async def pay_invoice_path(
    params: PaymentParameters,
    timeout: Optional[float] = Query(
        None,
        gt=0,
        description="Seconds to wait for a final status. The outcome is unknown if it expires.",
    ),
):
    preimage = await pay_invoice(params, timeout)
    return PayInvoiceResponse(preimage=preimage.hex())


@router.get(
    "/estimate-fee",
    name=f"{_PREFIX}.estimate-fee",
    summary="Estimates a lower bound of the routing fee to pay an invoice.",
    description=estimate_fee_desc,
    response_model=FeeEstimate,
    responses=responses,
)
async def estimate_fee_path(
    invoice: str = Query(..., description="The encoded payment request"),
    amount_msat: int = Query(
        0, ge=0, description="Amount to pay if the invoice has no amount"
    ),
):
    return await estimate_routing_fee(invoice, amount_msat)
