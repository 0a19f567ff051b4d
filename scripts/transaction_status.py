"""Fetch and print one transaction record from the initiator."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for status checks."""

    parser = argparse.ArgumentParser(description="Fetch a transaction by CheckoutRequestID.")
    parser.add_argument("checkout_request_id")
    parser.add_argument("--initiator-url", default="http://localhost:8001")
    args = parser.parse_args()

    resp = httpx.get(f"{args.initiator_url}/transactions/{args.checkout_request_id}", timeout=10.0)
    if resp.status_code == 404:
        raise SystemExit(f"transaction {args.checkout_request_id} not found")
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
