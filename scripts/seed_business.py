"""Create or update a business row so it can request STK pushes."""

import argparse

from stkpay.common.db import SessionLocal
from stkpay.common.models import Business


def main() -> None:
    """CLI entrypoint."""

    parser = argparse.ArgumentParser(description="Upsert a business in the stkpay database.")
    parser.add_argument("business_id")
    parser.add_argument("--name", default="")
    parser.add_argument("--status", default="active", help="active | inactive")
    args = parser.parse_args()

    with SessionLocal() as db:
        business = db.get(Business, args.business_id)
        if business is None:
            business = Business(business_id=args.business_id)
            db.add(business)
        business.name = args.name or business.name or args.business_id
        business.status = args.status
        db.commit()
    print(f"business={args.business_id} status={args.status}")


if __name__ == "__main__":
    main()
