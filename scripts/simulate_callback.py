"""POST a Daraja-shaped STK callback to the reconciler.

Useful for exercising reconciliation without a real customer payment, e.g.
replaying a cancelled push or a duplicate delivery.
"""

import argparse
import json
from datetime import datetime
from uuid import uuid4

import httpx


def build_callback(
    checkout_request_id: str,
    result_code: int,
    amount: float,
    phone: str,
    account_reference: str | None,
) -> dict:
    """Build a callback body; metadata is only attached to successful results."""

    stk = {
        "MerchantRequestID": f"sim-{uuid4().hex[:12]}",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully."
        if result_code == 0
        else "Simulated failure",
    }
    if result_code == 0:
        items = [
            {"Name": "Amount", "Value": amount},
            {"Name": "MpesaReceiptNumber", "Value": f"SIM{uuid4().hex[:7].upper()}"},
            {"Name": "TransactionDate", "Value": int(datetime.now().strftime("%Y%m%d%H%M%S"))},
            {"Name": "PhoneNumber", "Value": int(phone)},
        ]
        if account_reference:
            items.append({"Name": "AccountReference", "Value": account_reference})
        stk["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": stk}}


def main() -> None:
    """CLI entrypoint."""

    parser = argparse.ArgumentParser(description="Send a simulated STK callback.")
    parser.add_argument("--reconciler-url", default="http://localhost:8002")
    parser.add_argument("--checkout-request-id", required=True)
    parser.add_argument("--result-code", type=int, default=0)
    parser.add_argument("--amount", type=float, default=1)
    parser.add_argument("--phone", default="254708374149")
    parser.add_argument("--account-reference", default=None, help="e.g. caan-developers:INV123")
    parser.add_argument("--repeat", type=int, default=1, help="Deliver the same callback N times")
    args = parser.parse_args()

    payload = build_callback(
        args.checkout_request_id,
        args.result_code,
        args.amount,
        args.phone,
        args.account_reference,
    )
    print(json.dumps(payload, indent=2))
    with httpx.Client(timeout=10.0) as client:
        for _ in range(args.repeat):
            resp = client.post(f"{args.reconciler_url}/stk/callback", json=payload)
            print(resp.status_code, resp.text)


if __name__ == "__main__":
    main()
