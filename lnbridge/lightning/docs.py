watch_invoice_desc = """
Blocks until the invoice is **accepted** (funds are locked in, the invoice is
not settled yet) and returns the amount paid in millisatoshis.

#### Errors
* `409`: the invoice was settled or canceled before it was accepted
* `408`: the invoice was not accepted within `timeout` seconds
* `502`: the node closed the subscription or reported an error
"""

pay_invoice_desc = """
Sends a payment and blocks until it reaches a final state.

Returns the preimage of the payment on success.

#### Errors
Only `400` means the payment **failed** for sure. No funds left the wallet,
it is safe to retry or to release funds reserved for this payment.

Every other error leaves the outcome **unknown** once the payment was sent:
* `504`: no final status was received (timeout or lost connection)
* `502`: the node reported an error or sent a malformed update
* `500`: the node reported a status this API does not know

The payment might still succeed. Check the payment status on the node before
retrying, otherwise the invoice might be paid twice. Only `503` guarantees the
node was never reached.
"""

estimate_fee_desc = """
Estimates a **lower bound** for the routing fee and the CLTV delta needed to
pay the invoice. The actual payment may cost more.

The route to the invoice destination is estimated as well as the route via
each route hint of the invoice. The cheapest one is returned. Route candidates
that could not be estimated are listed in `errors`.

`amount_msat` is only used for invoices without an amount.
"""

add_invoice_desc = """
Creates a new invoice and returns its payment request.

If `hash` is set, a **hold invoice** is created. The node accepts payments
for it but only settles once `/settle-invoice` is called with the preimage.
"""
