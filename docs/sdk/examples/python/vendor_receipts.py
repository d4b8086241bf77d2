import os
import sys
import time

import requests

base_url = os.getenv("PULSE_BASE_URL", "http://localhost:8000").rstrip("/")
receipt_status = os.getenv("PULSE_RECEIPT_STATUS", "DELIVERED")
delay_seconds = float(os.getenv("PULSE_RECEIPT_DELAY_SECONDS", "0.2"))


def pending_records() -> list[dict]:
    response = requests.get(f"{base_url}/communication-log", timeout=15)
    response.raise_for_status()
    return [
        record
        for record in response.json()["items"]
        if record["status"] == "SENT" and not record.get("delivered_at")
    ]


def main() -> int:
    records = pending_records()
    for record in records:
        response = requests.post(
            f"{base_url}/delivery-receipts",
            json={
                "campaignId": record["campaign_id"],
                "customer_email": record["customer_email"],
                "status": receipt_status,
            },
            timeout=15,
        )
        response.raise_for_status()
        print(f"Receipt queued for {record['customer_email']} ({record['campaign_id']})")
        time.sleep(delay_seconds)
    print(f"Posted {len(records)} receipts; they apply on the next reconcile tick.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except requests.RequestException as exc:
        print(f"Vendor receipt simulation failed: {exc}", file=sys.stderr)
        raise SystemExit(1)
