import asyncio
import base64
from typing import Any, AsyncGenerator, Dict, Optional

import async_timeout
from decouple import config as dconfig
from fastapi.exceptions import HTTPException
from loguru import logger

from lnbridge.lightning.exceptions import (
    BackendConnectionError,
    BackendError,
    BackendNotInitializedError,
    InvoiceResolvedBeforeAcceptanceError,
    InvoiceWatchTimeoutError,
    PaymentFailedError,
    PaymentHashExistsError,
    PaymentOutcomeUnknownError,
    StreamClosedError,
    UnhandledResponseError,
    UnhandledStateError,
    UnhandledStatusError,
)
from lnbridge.lightning.fee_estimation import estimate_routing_fee
from lnbridge.lightning.impl.ln_base import LightningNodeBase
from lnbridge.lightning.impl.lnd_rest_transport import LndRestStream, LndRestTransport
from lnbridge.lightning.models import (
    DecodedInvoice,
    FeeEstimate,
    InitLnRepoUpdate,
    InvoiceParameters,
    InvoiceState,
    LnInitState,
    PaymentParameters,
    PaymentStatus,
    RouteFeeEstimate,
)
from lnbridge.utils import bytes_to_b64, msat_to_sat_ceil

# Fixed flags for every payment attempt: only the final update is sent,
# no AMP, and routes are weighted towards speed over cost.
_SEND_PAYMENT_FLAGS = {
    "no_inflight_updates": True,
    "amp": False,
    "time_pref": 0.9,
}

_PAYMENT_HASH_EXISTS_MSG = "invoice with payment hash already exists"


def _error_message(body: Any) -> str:
    if isinstance(body, dict):
        if body.get("message"):
            return body["message"]

        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]

    return str(body)


def _frame_error(frame: Dict) -> str:
    error = frame.get("error")
    if isinstance(error, dict):
        return error.get("message", "")

    return ""


class LnNodeLNDREST(LightningNodeBase):
    _lnd_connect_error_debug_msg = """
Unable to connect to LND. Possible reasons:
* Node is not reachable (ports, network down, ...)
* lnd_rest_url points to the gRPC port instead of the REST port
* Macaroon is not correct
* IP is not included in LND tls certificate
    Add tlsextraip=192.168.1.xxx to lnd.conf and restart LND.
    This will recreate the TLS certificate. The .env must be adapted accordingly.
    """

    def __init__(
        self,
        transport: Optional[LndRestTransport] = None,
        poll_interval: Optional[float] = None,
    ):
        self._transport = transport
        self._initialized = False

        if poll_interval is None:
            poll_interval = dconfig("ln_stream_poll_interval", default=0.5, cast=float)
        self._poll_interval = poll_interval

    def get_implementation_name(self) -> str:
        return "LND_REST"

    async def close(self) -> None:
        if self._transport is not None:
            await self._transport.close()

    @property
    def _lnd(self) -> LndRestTransport:
        if self._transport is None:
            raise BackendNotInitializedError(self.get_implementation_name())

        return self._transport

    async def initialize(self) -> AsyncGenerator[InitLnRepoUpdate, None]:
        logger.trace("initialize()")

        if self._initialized:
            logger.warning(
                "Connection already initialized. This function must not be called twice."
            )
            yield InitLnRepoUpdate(state=LnInitState.DONE)
            return

        if self._transport is None:
            self._transport = LndRestTransport.from_config()

        retry_interval = dconfig("ln_init_retry_interval", default=2, cast=float)
        debug_msg_sent = False
        wallet_locked_sent = False

        yield InitLnRepoUpdate(state=LnInitState.BOOTSTRAPPING)

        logger.info("Trying to connect to LND daemon ...")
        while True:
            try:
                status_code, body = await self._transport.request("GET", "v1/getinfo")
            except BackendConnectionError as e:
                logger.debug(f"Waiting for LND daemon... Details {e}")
                if not debug_msg_sent:
                    logger.debug(self._lnd_connect_error_debug_msg)
                    debug_msg_sent = True

                yield InitLnRepoUpdate(
                    state=LnInitState.OFFLINE,
                    msg="Unable to connect to LND daemon, waiting...",
                )
                await asyncio.sleep(retry_interval)
                continue

            if status_code == 200:
                break

            message = _error_message(body)
            if "wallet locked" in message:
                # log only once to avoid spamming the log
                if not wallet_locked_sent:
                    logger.info("Wallet is locked. Unlock it to enable full RPC access")
                    wallet_locked_sent = True

                yield InitLnRepoUpdate(
                    state=LnInitState.LOCKED,
                    msg="Wallet locked, unlock it to enable full RPC access",
                )
            else:
                logger.debug(f"LND not ready yet: {message}")
                yield InitLnRepoUpdate(state=LnInitState.BOOTSTRAPPING, msg=message)

            await asyncio.sleep(retry_interval)

        self._initialized = True
        pubkey = body.get("identity_pubkey", "")
        logger.success(
            f"Connected to LND node with alias {body.get('alias', '')} "
            f"and pubkey {pubkey[:10]}...{pubkey[-10:]}"
        )

        yield InitLnRepoUpdate(state=LnInitState.DONE)

    @logger.catch(exclude=(HTTPException,), reraise=True)
    async def decode_invoice(self, invoice: str) -> DecodedInvoice:
        logger.trace(f"decode_invoice(invoice={invoice})")

        status_code, body = await self._lnd.request("GET", f"v1/payreq/{invoice}")
        if status_code != 200:
            raise BackendError(f"v1/payreq response: {_error_message(body)}")

        return DecodedInvoice.from_lnd_rest(body)

    @logger.catch(exclude=(HTTPException,), reraise=True)
    async def add_invoice(self, params: InvoiceParameters) -> str:
        logger.trace(
            f"add_invoice(value_msat={params.value_msat}, memo={params.memo}, "
            f"expiry={params.expiry}, hash={params.hash})"
        )

        # only hold invoices take an external payment hash
        path = "v2/invoices/hodl" if params.is_hold_invoice else "v1/invoices"

        status_code, body = await self._lnd.request("POST", path, params.to_lnd_rest())
        if status_code != 200:
            message = _error_message(body)
            if _PAYMENT_HASH_EXISTS_MSG in message:
                raise PaymentHashExistsError(params.hash or "")

            raise BackendError(f"{path} response: {message}")

        if not isinstance(body, dict) or "payment_request" not in body:
            raise UnhandledResponseError(path, body)

        return body["payment_request"]

    @logger.catch(exclude=(HTTPException,), reraise=True)
    async def watch_invoice(
        self, payment_hash: bytes, timeout: Optional[float] = None
    ) -> int:
        logger.trace(f"watch_invoice(payment_hash={payment_hash.hex()}, timeout={timeout})")

        path = "v2/invoices/subscribe/" + base64.urlsafe_b64encode(payment_hash).decode()

        try:
            async with async_timeout.timeout(timeout):
                async with self._lnd.open_stream(path) as stream:
                    await stream.send_json({})
                    return await self._wait_for_acceptance(stream)
        except asyncio.TimeoutError:
            logger.debug(f"Invoice {payment_hash.hex()} not accepted within {timeout}s")
            raise InvoiceWatchTimeoutError(timeout) from None

    async def _wait_for_acceptance(self, stream: LndRestStream) -> int:
        while True:
            frame = await stream.receive_json()
            if frame is None:
                raise StreamClosedError("v2/invoices/subscribe")

            error = _frame_error(frame)
            if error:
                raise BackendError(f"v2/invoices/subscribe response: {error}")

            result = frame.get("result") or {}
            state = result.get("state", "")
            amt_paid_msat = int(result.get("amt_paid_msat", 0))
            logger.debug(f"Invoice state {state}, amt_paid_msat={amt_paid_msat}")

            if state == InvoiceState.OPEN:
                await asyncio.sleep(self._poll_interval)
            elif state == InvoiceState.ACCEPTED:
                return amt_paid_msat
            elif state in (InvoiceState.SETTLED, InvoiceState.CANCELED):
                raise InvoiceResolvedBeforeAcceptanceError(state, amt_paid_msat)
            else:
                raise UnhandledStateError(state)

    @logger.catch(exclude=(HTTPException,), reraise=True)
    async def cancel_invoice(self, payment_hash: bytes) -> None:
        logger.trace(f"cancel_invoice(payment_hash={payment_hash.hex()})")

        await self._post_expect_empty(
            "v2/invoices/cancel", {"payment_hash": bytes_to_b64(payment_hash)}
        )

    @logger.catch(exclude=(HTTPException,), reraise=True)
    async def pay_invoice(
        self, params: PaymentParameters, timeout: Optional[float] = None
    ) -> bytes:
        logger.trace(
            f"pay_invoice(invoice={params.invoice}, amt_msat={params.amt_msat}, "
            f"timeout_seconds={params.timeout_seconds}, "
            f"fee_limit_msat={params.fee_limit_msat}, cltv_limit={params.cltv_limit}, "
            f"timeout={timeout})"
        )

        request = params.to_lnd_rest()
        request.update(_SEND_PAYMENT_FLAGS)

        # once the stream is open the node may have the payment
        stream_opened = False
        try:
            async with async_timeout.timeout(timeout):
                async with self._lnd.open_stream(
                    "v2/router/send", params={"method": "POST"}
                ) as stream:
                    stream_opened = True
                    await stream.send_json(request)
                    return await self._wait_for_payment(stream)
        except asyncio.TimeoutError:
            raise PaymentOutcomeUnknownError(
                f"no final payment status within {timeout} seconds"
            ) from None
        except BackendConnectionError as e:
            if not stream_opened:
                raise

            raise PaymentOutcomeUnknownError(f"connection lost: {e}") from e

    async def _wait_for_payment(self, stream: LndRestStream) -> bytes:
        while True:
            frame = await stream.receive_json()
            if frame is None:
                raise PaymentOutcomeUnknownError(
                    "v2/router/send stream closed before a final status"
                )

            error = _frame_error(frame)
            if error:
                raise BackendError(f"v2/router/send response: {error}")

            result = frame.get("result") or {}
            status = result.get("status", "")
            logger.debug(f"Payment status {status or '<empty>'}")

            if status in ("", PaymentStatus.UNKNOWN, PaymentStatus.IN_FLIGHT):
                await asyncio.sleep(self._poll_interval)
            elif status == PaymentStatus.FAILED:
                raise PaymentFailedError(result.get("failure_reason", ""))
            elif status == PaymentStatus.SUCCEEDED:
                try:
                    return bytes.fromhex(result.get("payment_preimage", ""))
                except ValueError:
                    raise UnhandledResponseError("v2/router/send", result) from None
            else:
                raise UnhandledStatusError(status)

    @logger.catch(exclude=(HTTPException,), reraise=True)
    async def settle_invoice(self, preimage: bytes) -> None:
        logger.trace("settle_invoice()")

        await self._post_expect_empty(
            "v2/invoices/settle", {"preimage": bytes_to_b64(preimage)}
        )

    async def _post_expect_empty(self, path: str, data: Dict) -> None:
        status_code, body = await self._lnd.request("POST", path, data)
        if status_code != 200:
            raise BackendError(f"{path} response: {_error_message(body)}")

        # success is an empty JSON object, every time
        if not isinstance(body, dict) or len(body) != 0:
            raise UnhandledResponseError(path, body)

    @logger.catch(exclude=(HTTPException,), reraise=True)
    async def estimate_routing_fee(
        self, invoice: DecodedInvoice, amount_msat: int = 0
    ) -> FeeEstimate:
        return await estimate_routing_fee(
            invoice, amount_msat, self._get_block_height, self._query_route_fee
        )

    async def _get_block_height(self) -> int:
        status_code, body = await self._lnd.request("GET", "v2/chainkit/bestblock")
        if status_code != 200:
            raise BackendError(f"v2/chainkit/bestblock: {_error_message(body)}")

        return int(body["block_height"])

    async def _query_route_fee(
        self, destination: str, amount_msat: int
    ) -> RouteFeeEstimate:
        try:
            dest = bytes.fromhex(destination)
        except ValueError:
            raise ValueError(f"invalid destination public key {destination!r}") from None

        status_code, body = await self._lnd.request(
            "POST",
            "v2/router/route/estimatefee",
            {"dest": bytes_to_b64(dest), "amt_sat": str(msat_to_sat_ceil(amount_msat))},
        )
        if status_code != 200:
            raise BackendError(
                f"v2/router/route/estimatefee response: {_error_message(body)}"
            )

        return RouteFeeEstimate.from_lnd_rest(body)
