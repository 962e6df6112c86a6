from typing import List, Optional

from fastapi import HTTPException, status


class LightningError(HTTPException):
    """Base class of all errors raised by a lightning backend implementation."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)

    def __str__(self) -> str:
        return self.detail


class BackendError(LightningError):
    """Raised when the node answers with an error or an unexpected status code."""

    def __init__(self, message: str):
        super().__init__(status.HTTP_502_BAD_GATEWAY, message)
        self.message = message


class BackendConnectionError(LightningError):
    """Raised when the node can't be reached at all."""

    def __init__(self, message: str):
        super().__init__(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            f"Unable to connect to the lightning node: {message}",
        )


class BackendNotInitializedError(LightningError):
    def __init__(self, implementation: str):
        super().__init__(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            f"{implementation} not fully initialized",
        )


class PaymentHashExistsError(LightningError):
    """Raised when the node already has an invoice with that payment hash."""

    def __init__(self, payment_hash: str = ""):
        super().__init__(
            status.HTTP_409_CONFLICT,
            "invoice with that payment hash already exists",
        )
        self.payment_hash = payment_hash


class PaymentFailedError(LightningError):
    """The payment definitely failed. Funds reserved for it can be released.

    Never a subclass or superclass of `PaymentOutcomeUnknownError`.
    """

    def __init__(self, failure_reason: str = ""):
        detail = "payment failed"
        if failure_reason:
            detail = f"{detail}: {failure_reason}"

        super().__init__(status.HTTP_400_BAD_REQUEST, detail)
        self.failure_reason = failure_reason


class PaymentOutcomeUnknownError(LightningError):
    """The payment might have succeeded or failed.

    The payment must be reconciled with the node before it is
    retried, otherwise the invoice might be paid twice.
    """

    def __init__(self, reason: str):
        super().__init__(
            status.HTTP_504_GATEWAY_TIMEOUT,
            f"payment outcome unknown: {reason}",
        )
        self.reason = reason


class AmountRequiredError(LightningError):
    def __init__(self):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "need a non-zero amount to estimate fee",
        )


class EmptyRouteHintError(LightningError):
    def __init__(self, index: int):
        super().__init__(
            status.HTTP_400_BAD_REQUEST, f"zero hops in route hint {index}"
        )
        self.index = index


class NoRouteFoundError(LightningError):
    """Raised when neither the direct route nor any route hint produced an
    estimate. `errors` holds the reason of every failed candidate."""

    def __init__(self, errors: Optional[List[Exception]] = None):
        self.errors = list(errors or [])
        detail = "could not find route"
        if len(self.errors) > 0:
            detail += ": " + "; ".join(str(e) for e in self.errors)

        super().__init__(status.HTTP_404_NOT_FOUND, detail)


class InvoiceResolvedBeforeAcceptanceError(LightningError):
    def __init__(self, state: str, amt_paid_msat: int):
        super().__init__(
            status.HTTP_409_CONFLICT,
            f"invoice {state} before payment",
        )
        self.state = state
        self.amt_paid_msat = amt_paid_msat


class StreamClosedError(LightningError):
    def __init__(self, stream: str):
        super().__init__(
            status.HTTP_502_BAD_GATEWAY,
            f"{stream} stream closed before a final state was reached",
        )


class InvoiceWatchTimeoutError(LightningError):
    def __init__(self, timeout: float):
        super().__init__(
            status.HTTP_408_REQUEST_TIMEOUT,
            f"invoice was not accepted within {timeout} seconds",
        )
        self.timeout = timeout


class UnhandledStateError(LightningError):
    def __init__(self, state: str):
        super().__init__(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"v2/invoices/subscribe unhandled state: {state}",
        )
        self.state = state


class UnhandledStatusError(LightningError):
    def __init__(self, status_: str):
        super().__init__(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"v2/router/send unhandled status: {status_}",
        )
        self.status = status_


class UnhandledResponseError(LightningError):
    def __init__(self, endpoint: str, response):
        super().__init__(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"{endpoint} unhandled response: {response}",
        )
        self.response = response
