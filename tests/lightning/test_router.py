from lnbridge.lightning import router
from lnbridge.lightning.exceptions import (
    BackendConnectionError,
    InvoiceWatchTimeoutError,
    NoRouteFoundError,
    PaymentFailedError,
    PaymentHashExistsError,
    PaymentOutcomeUnknownError,
)
from lnbridge.lightning.models import DecodedInvoice, FeeEstimate
from tests.lightning.fakes import DEST_PUBKEY, PAYMENT_HASH, PREIMAGE, lnd_payreq

prefix = "/lightning"


def test_decode_invoice(test_client, monkeypatch):
    async def mock_decode_invoice(invoice: str) -> DecodedInvoice:
        assert invoice == "lnbc1fake"
        return DecodedInvoice.from_lnd_rest(lnd_payreq(num_msat=1_000))

    monkeypatch.setattr(router, "decode_invoice", mock_decode_invoice)

    response = test_client.get(
        f"{prefix}/decode-invoice", params={"invoice": "lnbc1fake"}
    )

    assert response.status_code == 200
    r_js = response.json()
    assert r_js["destination"] == DEST_PUBKEY
    assert r_js["num_msat"] == 1_000


def test_add_invoice(test_client, monkeypatch):
    calls = []

    async def mock_add_invoice(params):
        calls.append(params)
        return "lnbc1hold"

    monkeypatch.setattr(router, "add_invoice", mock_add_invoice)

    response = test_client.post(
        f"{prefix}/add-invoice",
        json={"memo": "coffee", "hash": PAYMENT_HASH, "value_msat": 21_000},
    )

    assert response.status_code == 200
    assert response.json() == {"payment_request": "lnbc1hold"}
    assert calls[0].is_hold_invoice


def test_add_invoice_invalid_hash(test_client):
    response = test_client.post(f"{prefix}/add-invoice", json={"hash": "xyz"})

    assert response.status_code == 422


def test_add_invoice_payment_hash_exists(test_client, monkeypatch):
    async def mock_add_invoice(params):
        raise PaymentHashExistsError(params.hash)

    monkeypatch.setattr(router, "add_invoice", mock_add_invoice)

    response = test_client.post(f"{prefix}/add-invoice", json={"hash": PAYMENT_HASH})

    assert response.status_code == 409


def test_watch_invoice(test_client, monkeypatch):
    async def mock_watch_invoice(payment_hash: bytes, timeout=None) -> int:
        assert payment_hash == bytes.fromhex(PAYMENT_HASH)
        assert timeout == 2.5
        return 21_000

    monkeypatch.setattr(router, "watch_invoice", mock_watch_invoice)

    response = test_client.post(
        f"{prefix}/watch-invoice",
        params={"payment_hash": PAYMENT_HASH, "timeout": 2.5},
    )

    assert response.status_code == 200
    assert response.json() == {"amt_paid_msat": 21_000}


def test_watch_invoice_timeout(test_client, monkeypatch):
    async def mock_watch_invoice(payment_hash: bytes, timeout=None) -> int:
        raise InvoiceWatchTimeoutError(timeout)

    monkeypatch.setattr(router, "watch_invoice", mock_watch_invoice)

    response = test_client.post(
        f"{prefix}/watch-invoice",
        params={"payment_hash": PAYMENT_HASH, "timeout": 1},
    )

    assert response.status_code == 408


def test_watch_invoice_bad_input(test_client):
    response = test_client.post(
        f"{prefix}/watch-invoice", params={"payment_hash": "not hex"}
    )
    assert response.status_code == 400

    response = test_client.post(
        f"{prefix}/watch-invoice", params={"payment_hash": PAYMENT_HASH, "timeout": 0}
    )
    assert response.status_code == 422


def test_cancel_and_settle_invoice(test_client, monkeypatch):
    calls = []

    async def mock_cancel_invoice(payment_hash: bytes) -> None:
        calls.append(("cancel", payment_hash))

    async def mock_settle_invoice(preimage: bytes) -> None:
        calls.append(("settle", preimage))

    monkeypatch.setattr(router, "cancel_invoice", mock_cancel_invoice)
    monkeypatch.setattr(router, "settle_invoice", mock_settle_invoice)

    response = test_client.post(
        f"{prefix}/cancel-invoice", params={"payment_hash": PAYMENT_HASH}
    )
    assert response.status_code == 200

    response = test_client.post(f"{prefix}/settle-invoice", params={"preimage": PREIMAGE})
    assert response.status_code == 200

    assert calls == [
        ("cancel", bytes.fromhex(PAYMENT_HASH)),
        ("settle", bytes.fromhex(PREIMAGE)),
    ]


def test_settle_invoice_bad_preimage(test_client):
    response = test_client.post(f"{prefix}/settle-invoice", params={"preimage": "zz"})

    assert response.status_code == 400


def test_pay_invoice(test_client, monkeypatch):
    async def mock_pay_invoice(params, timeout=None) -> bytes:
        assert params.invoice == "lnbc1fake"
        assert params.fee_limit_msat == 100
        return bytes.fromhex(PREIMAGE)

    monkeypatch.setattr(router, "pay_invoice", mock_pay_invoice)

    response = test_client.post(
        f"{prefix}/pay-invoice",
        json={"invoice": "lnbc1fake", "fee_limit_msat": 100},
    )

    assert response.status_code == 200
    assert response.json() == {"preimage": PREIMAGE}


def test_pay_invoice_errors(test_client, monkeypatch):
    errors = [
        (PaymentFailedError("FAILURE_REASON_NO_ROUTE"), 400),
        (PaymentOutcomeUnknownError("connection lost"), 504),
        (BackendConnectionError("connection refused"), 503),
    ]

    for exc, status_code in errors:

        async def mock_pay_invoice(params, timeout=None, exc=exc) -> bytes:
            raise exc

        monkeypatch.setattr(router, "pay_invoice", mock_pay_invoice)

        response = test_client.post(
            f"{prefix}/pay-invoice", json={"invoice": "lnbc1fake"}
        )

        assert response.status_code == status_code
        assert response.json()["detail"] == exc.detail


def test_estimate_fee(test_client, monkeypatch):
    async def mock_estimate_routing_fee(invoice: str, amount_msat: int = 0):
        assert amount_msat == 5_000
        return FeeEstimate(fee_msat=1_010, cltv_delta=58, errors=["zero hops in route hint 0"])

    monkeypatch.setattr(router, "estimate_routing_fee", mock_estimate_routing_fee)

    response = test_client.get(
        f"{prefix}/estimate-fee", params={"invoice": "lnbc1fake", "amount_msat": 5_000}
    )

    assert response.status_code == 200
    assert response.json() == {
        "fee_msat": 1_010,
        "cltv_delta": 58,
        "errors": ["zero hops in route hint 0"],
    }


def test_estimate_fee_no_route(test_client, monkeypatch):
    async def mock_estimate_routing_fee(invoice: str, amount_msat: int = 0):
        raise NoRouteFoundError([ValueError("no route")])

    monkeypatch.setattr(router, "estimate_routing_fee", mock_estimate_routing_fee)

    response = test_client.get(f"{prefix}/estimate-fee", params={"invoice": "lnbc1fake"})

    assert response.status_code == 404
    assert response.json()["detail"] == "could not find route: no route"


def test_status(test_client):
    response = test_client.get("/status")

    assert response.status_code == 200
    assert response.json()["state"] in ("offline", "bootstrapping", "locked", "done")


def test_pay_invoice_docs_name_every_unknown_outcome(test_client):
    openapi = test_client.get("/openapi.json").json()
    desc = openapi["paths"][f"{prefix}/pay-invoice"]["post"]["description"]

    assert "Only `400` means the payment **failed**" in desc
    for status_code in ("500", "502", "504"):
        assert f"`{status_code}`" in desc
