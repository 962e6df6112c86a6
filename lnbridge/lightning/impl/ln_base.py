from abc import ABC, abstractmethod
from typing import AsyncGenerator, Optional

from lnbridge.lightning.models import (
    DecodedInvoice,
    FeeEstimate,
    InitLnRepoUpdate,
    InvoiceParameters,
    PaymentParameters,
)


class LightningNodeBase(ABC):
    """Capabilities every lightning backend implementation provides.

    Callers only ever talk to this interface, connection details
    (endpoints, credentials) belong to the implementation.
    """

    @abstractmethod
    def get_implementation_name(self) -> str:
        raise NotImplementedError()

    async def close(self) -> None:
        """Releases connections to the node"""

    @abstractmethod
    async def initialize(self) -> AsyncGenerator[InitLnRepoUpdate, None]:
        raise NotImplementedError()

    @abstractmethod
    async def decode_invoice(self, invoice: str) -> DecodedInvoice:
        raise NotImplementedError()

    @abstractmethod
    async def add_invoice(self, params: InvoiceParameters) -> str:
        """Creates an invoice and returns its payment request.

        If `params.hash` is set a hold invoice is created which has to be
        settled with `settle_invoice`. Raises `PaymentHashExistsError` if
        the node already knows an invoice with that hash.
        """
        raise NotImplementedError()

    @abstractmethod
    async def watch_invoice(
        self, payment_hash: bytes, timeout: Optional[float] = None
    ) -> int:
        """Waits until the invoice is accepted and returns the amount paid in msat"""
        raise NotImplementedError()

    @abstractmethod
    async def cancel_invoice(self, payment_hash: bytes) -> None:
        raise NotImplementedError()

    @abstractmethod
    async def pay_invoice(
        self, params: PaymentParameters, timeout: Optional[float] = None
    ) -> bytes:
        """Pays an invoice and returns the preimage.

        Raises `PaymentFailedError` if the payment failed for sure. Any other
        error, `PaymentOutcomeUnknownError` in particular, means the status
        of the payment is unknown.
        """
        raise NotImplementedError()

    @abstractmethod
    async def settle_invoice(self, preimage: bytes) -> None:
        raise NotImplementedError()

    @abstractmethod
    async def estimate_routing_fee(
        self, invoice: DecodedInvoice, amount_msat: int = 0
    ) -> FeeEstimate:
        """Lower bound routing fee and cltv_delta estimate to pay the invoice"""
        raise NotImplementedError()
