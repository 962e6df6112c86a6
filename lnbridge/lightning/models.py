from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import conint

from lnbridge.utils import hex_to_b64


class LnInitState(str, Enum):
    OFFLINE = "offline"
    BOOTSTRAPPING = "bootstrapping"
    DONE = "done"
    LOCKED = "locked"


class InitLnRepoUpdate(BaseModel):
    state: LnInitState = LnInitState.OFFLINE
    msg: str = ""


class InvoiceState(str, Enum):
    OPEN = "OPEN"
    ACCEPTED = "ACCEPTED"
    SETTLED = "SETTLED"
    CANCELED = "CANCELED"


class PaymentStatus(str, Enum):
    UNKNOWN = "UNKNOWN"
    IN_FLIGHT = "IN_FLIGHT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


def _hex_or_none(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None

    # raises ValueError which pydantic reports as a validation error
    bytes.fromhex(value)
    return value.lower()


class Feature(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    is_required: bool = False
    is_known: bool = False

    @classmethod
    def from_lnd_rest(cls, f: dict) -> "Feature":
        return cls(
            name=f.get("name", ""),
            is_required=f.get("is_required", False),
            is_known=f.get("is_known", False),
        )


class HopHint(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_id: str = Field(
        ..., description="The public key of the node at the start of the channel."
    )
    chan_id: int = Field(..., description="The unique identifier of the channel.")
    fee_base_msat: conint(ge=0) = Field(
        0, description="The base fee of the channel denominated in msat."
    )
    fee_proportional_millionths: conint(ge=0) = Field(
        0,
        description="The fee rate of the channel in parts per million of the amount forwarded.",
    )
    cltv_expiry_delta: conint(ge=0) = Field(
        0, description="The time-lock delta of the channel."
    )

    @classmethod
    def from_lnd_rest(cls, h: dict) -> "HopHint":
        return cls(
            node_id=h.get("node_id", ""),
            chan_id=int(h.get("chan_id", 0)),
            fee_base_msat=int(h.get("fee_base_msat", 0)),
            fee_proportional_millionths=int(h.get("fee_proportional_millionths", 0)),
            cltv_expiry_delta=int(h.get("cltv_expiry_delta", 0)),
        )

    def fee_msat(self, amount_msat: int) -> int:
        """Fee this hop charges to forward `amount_msat`"""
        ppm_fee = (amount_msat * self.fee_proportional_millionths) // 1_000_000
        return self.fee_base_msat + ppm_fee


class RouteHint(BaseModel):
    model_config = ConfigDict(frozen=True)

    hop_hints: Tuple[HopHint, ...] = Field(
        (),
        description="A list of hop hints that when chained together can assist in reaching a specific destination.",
    )

    @classmethod
    def from_lnd_rest(cls, h: dict) -> "RouteHint":
        return cls(
            hop_hints=tuple(HopHint.from_lnd_rest(hh) for hh in h.get("hop_hints") or [])
        )


class DecodedInvoice(BaseModel):
    model_config = ConfigDict(frozen=True)

    payment_hash: str
    timestamp: conint(ge=0) = 0
    expiry: conint(ge=0) = 0
    description: str = ""
    description_hash: str = ""
    num_msat: conint(ge=0) = Field(
        0, description="Requested amount in msat. 0 if the invoice has no amount."
    )
    cltv_expiry: conint(ge=0) = Field(0, description="The final CLTV expiry delta.")
    features: Dict[int, Feature] = {}
    destination: str = Field(..., description="Public key of the payee in hex.")
    route_hints: Tuple[RouteHint, ...] = ()

    @classmethod
    def from_lnd_rest(cls, r: dict) -> "DecodedInvoice":
        features = r.get("features") or {}
        return cls(
            payment_hash=r["payment_hash"],
            timestamp=int(r.get("timestamp", 0)),
            expiry=int(r.get("expiry", 0)),
            description=r.get("description", ""),
            description_hash=r.get("description_hash", ""),
            num_msat=int(r.get("num_msat", 0)),
            cltv_expiry=int(r.get("cltv_expiry", 0)),
            features={int(k): Feature.from_lnd_rest(v) for k, v in features.items()},
            destination=r["destination"],
            route_hints=tuple(
                RouteHint.from_lnd_rest(rh) for rh in r.get("route_hints") or []
            ),
        )


class InvoiceParameters(BaseModel):
    memo: str = ""
    hash: Optional[str] = Field(
        None,
        description="Payment hash in hex. If set, a hold invoice is created which must be settled explicitly.",
    )
    value_msat: conint(ge=0) = 0
    description_hash: Optional[str] = Field(
        None, description="Hash of a long description in hex."
    )
    expiry: conint(ge=0) = 3600
    cltv_expiry: conint(ge=0) = Field(0, description="Minimum final CLTV expiry.")

    @field_validator("hash", "description_hash")
    @classmethod
    def check_hex(cls, v: Optional[str]) -> Optional[str]:
        return _hex_or_none(v)

    @property
    def is_hold_invoice(self) -> bool:
        return self.hash is not None

    @classmethod
    def from_decoded_invoice(cls, i: DecodedInvoice) -> "InvoiceParameters":
        return cls(
            memo=i.description,
            hash=i.payment_hash,
            value_msat=i.num_msat,
            description_hash=i.description_hash or None,
            expiry=i.expiry,
            cltv_expiry=i.cltv_expiry,
        )

    def to_lnd_rest(self) -> dict:
        d = {
            "value_msat": str(self.value_msat),
            "expiry": str(self.expiry),
            "cltv_expiry": str(self.cltv_expiry),
        }

        if self.memo:
            d["memo"] = self.memo
        if self.hash is not None:
            d["hash"] = hex_to_b64(self.hash)
        if self.description_hash is not None:
            d["description_hash"] = hex_to_b64(self.description_hash)

        return d


class PaymentParameters(BaseModel):
    invoice: str = Field(..., description="The encoded payment request.")
    amt_msat: conint(ge=0) = Field(
        0, description="Amount to pay. Only used for invoices without an amount."
    )
    timeout_seconds: conint(ge=0) = 60
    fee_limit_msat: conint(ge=0) = 0
    cltv_limit: conint(ge=0) = 0

    def to_lnd_rest(self) -> dict:
        d = {
            "payment_request": self.invoice,
            "timeout_seconds": self.timeout_seconds,
            "fee_limit_msat": str(self.fee_limit_msat),
            "cltv_limit": self.cltv_limit,
        }

        if self.amt_msat > 0:
            d["amt_msat"] = str(self.amt_msat)

        return d


class RouteFeeEstimate(BaseModel):
    routing_fee_msat: conint(ge=0)
    time_lock_delay: conint(ge=0) = Field(
        ..., description="Absolute block height at which the route's time lock expires."
    )

    @classmethod
    def from_lnd_rest(cls, r: dict) -> "RouteFeeEstimate":
        return cls(
            routing_fee_msat=int(r.get("routing_fee_msat", 0)),
            time_lock_delay=int(r.get("time_lock_delay", 0)),
        )


class FeeEstimate(BaseModel):
    fee_msat: conint(ge=0) = Field(
        ..., description="Lower bound of the routing fee in msat."
    )
    cltv_delta: conint(ge=0) = Field(
        ...,
        description="Lower bound of the CLTV delta, including the invoice's final CLTV expiry.",
    )
    errors: List[str] = Field(
        [],
        description="Route candidates that could not be estimated.",
    )


class AddInvoiceResponse(BaseModel):
    payment_request: str


class WatchInvoiceResponse(BaseModel):
    amt_paid_msat: int


class PayInvoiceResponse(BaseModel):
    preimage: str = Field(..., description="The payment preimage in hex.")
