import asyncio
from typing import Any, Dict, List, Optional, Tuple, Union

from lnbridge.lightning.exceptions import BackendConnectionError
from lnbridge.lightning.impl.lnd_rest import LnNodeLNDREST

DEST_PUBKEY = "02" + "11" * 32
HINT_PUBKEY_1 = "03" + "22" * 32
HINT_PUBKEY_2 = "03" + "33" * 32
PAYMENT_HASH = "ab" * 32
PREIMAGE = "cd" * 32


class FakeStream:
    """Replays `frames` and then behaves like a cleanly closed websocket.

    An exception instance in `frames` is raised instead of returned.
    """

    def __init__(self, frames: List[Union[Dict, Exception]], fail_on_open=None):
        self.frames = list(frames)
        self.fail_on_open = fail_on_open
        self.sent: List[Dict] = []
        self.opened = False
        self.closed = False
        self.path = None
        self.params = None

    async def __aenter__(self):
        if self.fail_on_open is not None:
            raise self.fail_on_open

        self.opened = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def send_json(self, data: Dict) -> None:
        self.sent.append(data)

    async def receive_json(self) -> Optional[Dict]:
        if len(self.frames) == 0:
            return None

        frame = self.frames.pop(0)
        if isinstance(frame, Exception):
            raise frame

        return frame


class HangingStream(FakeStream):
    """A stream that never delivers a frame"""

    async def receive_json(self) -> Optional[Dict]:
        await asyncio.Event().wait()


class FakeTransport:
    """Answers requests from a (method, path) -> responses table.

    A response is a (status_code, body) tuple or an exception to raise.
    A list of responses is consumed in order, the last one repeats.
    """

    def __init__(self, responses: Dict[Tuple[str, str], Any] = None, stream=None):
        self.responses = responses or {}
        self.requests: List[Tuple[str, str, Optional[Dict]]] = []
        self.stream = stream
        self.closed = False

    async def request(self, method: str, path: str, data: Optional[Dict] = None):
        self.requests.append((method, path, data))

        key = (method, path)
        if key not in self.responses:
            raise BackendConnectionError(f"{method} {path}: no fake response")

        res = self.responses[key]
        if isinstance(res, list):
            res = res.pop(0) if len(res) > 1 else res[0]
        if isinstance(res, Exception):
            raise res

        return res

    def requests_to(self, path: str) -> List[Optional[Dict]]:
        return [data for _, p, data in self.requests if p == path]

    def open_stream(self, path: str, params: dict = None):
        self.stream.path = path
        self.stream.params = params
        return self.stream

    async def close(self):
        self.closed = True


def lnd_node(transport: FakeTransport) -> LnNodeLNDREST:
    return LnNodeLNDREST(transport=transport, poll_interval=0)


def invoice_frame(state: str, amt_paid_msat: int = 0) -> Dict:
    return {"result": {"state": state, "amt_paid_msat": str(amt_paid_msat)}}


def payment_frame(status: str, preimage: str = "", failure_reason: str = "") -> Dict:
    return {
        "result": {
            "status": status,
            "payment_preimage": preimage,
            "failure_reason": failure_reason,
        }
    }


def error_frame(message: str) -> Dict:
    return {"error": {"code": 2, "message": message}}


def lnd_payreq(
    num_msat: int = 0,
    cltv_expiry: int = 40,
    route_hints: List[Dict] = None,
    destination: str = DEST_PUBKEY,
) -> Dict:
    """A v1/payreq response as LND's REST proxy returns it"""
    return {
        "destination": destination,
        "payment_hash": PAYMENT_HASH,
        "num_satoshis": str(num_msat // 1000),
        "timestamp": "1700000000",
        "expiry": "86400",
        "description": "coffee",
        "description_hash": "",
        "fallback_addr": "",
        "cltv_expiry": str(cltv_expiry),
        "route_hints": route_hints or [],
        "payment_addr": "",
        "num_msat": str(num_msat),
        "features": {
            "9": {"name": "tlv-onion", "is_required": False, "is_known": True},
            "14": {"name": "payment-addr", "is_required": True, "is_known": True},
        },
    }


def lnd_hop_hint(
    node_id: str,
    fee_base_msat: int = 1000,
    fee_ppm: int = 1,
    cltv_expiry_delta: int = 40,
    chan_id: str = "123456789012345678",
) -> Dict:
    return {
        "node_id": node_id,
        "chan_id": chan_id,
        "fee_base_msat": fee_base_msat,
        "fee_proportional_millionths": fee_ppm,
        "cltv_expiry_delta": cltv_expiry_delta,
    }
