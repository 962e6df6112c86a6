import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

from loguru import logger

from lnbridge.lightning.exceptions import (
    AmountRequiredError,
    BackendError,
    EmptyRouteHintError,
    NoRouteFoundError,
)
from lnbridge.lightning.models import (
    DecodedInvoice,
    FeeEstimate,
    RouteFeeEstimate,
    RouteHint,
)

# (fee_msat, relative cltv delta)
_Candidate = Tuple[int, int]


async def estimate_routing_fee(
    invoice: DecodedInvoice,
    amount_msat: int,
    get_block_height: Callable[[], Awaitable[int]],
    query_route_fee: Callable[[str, int], Awaitable[RouteFeeEstimate]],
) -> FeeEstimate:
    """Lower bound of the routing fee and CLTV delta needed to pay `invoice`.

    Estimates the route straight to the invoice destination and, for every
    route hint, the route to the first hop of the hint plus the fees and
    CLTV deltas of the hint's hops. The cheapest candidate wins.

    Parameters
    ----------
    invoice : DecodedInvoice
        The invoice to pay
    amount_msat : int
        Amount to pay, ignored if the invoice has an amount itself
    get_block_height : Callable
        Coroutine returning the current chain tip height
    query_route_fee : Callable
        Coroutine returning the backend's lower bound fee and absolute
        time lock to reach a node (hex public key) with an amount in msat

    Raises
    ------
    AmountRequiredError
        Neither the invoice nor the caller supplied an amount
    NoRouteFoundError
        No candidate could be estimated. Holds every candidate's error.
    """
    logger.trace(
        f"estimate_routing_fee(payment_hash={invoice.payment_hash}, "
        f"amount_msat={amount_msat})"
    )

    if invoice.num_msat == 0 and amount_msat == 0:
        raise AmountRequiredError()
    elif invoice.num_msat > 0:
        amount_msat = invoice.num_msat

    height = await get_block_height()

    async def _relative(destination: str) -> _Candidate:
        est = await query_route_fee(destination, amount_msat)
        if est.time_lock_delay < height:
            raise BackendError(
                f"time lock {est.time_lock_delay} to {destination} "
                f"is below the chain tip {height}"
            )

        return est.routing_fee_msat, est.time_lock_delay - height

    async def _via_route_hint(index: int, hint: RouteHint) -> _Candidate:
        if len(hint.hop_hints) == 0:
            raise EmptyRouteHintError(index)

        # base estimate targets the entry node of the hint, not the destination
        fee_msat, cltv_delta = await _relative(hint.hop_hints[0].node_id)
        for hop in hint.hop_hints:
            fee_msat += hop.fee_msat(amount_msat)
            cltv_delta += hop.cltv_expiry_delta

        return fee_msat, cltv_delta

    candidates = [_relative(invoice.destination)]
    candidates += [_via_route_hint(i, h) for i, h in enumerate(invoice.route_hints)]

    results = await asyncio.gather(*candidates, return_exceptions=True)

    errors: List[Exception] = []
    best: Optional[_Candidate] = None
    for res in results:
        if isinstance(res, BaseException):
            if not isinstance(res, Exception):
                raise res

            logger.warning(f"Routing fee candidate failed: {res}")
            errors.append(res)
            continue

        if best is None or res[0] < best[0]:
            best = res

    if best is None:
        raise NoRouteFoundError(errors)

    fee_msat, cltv_delta = best
    logger.debug(
        f"Routing fee estimate for {invoice.payment_hash}: fee_msat={fee_msat} "
        f"cltv_delta={cltv_delta} (+{invoice.cltv_expiry} final), "
        f"{len(errors)} of {len(results)} candidates failed"
    )

    return FeeEstimate(
        fee_msat=fee_msat,
        cltv_delta=cltv_delta + invoice.cltv_expiry,
        errors=[str(e) for e in errors],
    )
