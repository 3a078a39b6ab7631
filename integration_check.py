from __future__ import annotations

import argparse

from smsgate.core.config import settings
from smsgate.core.phone import normalize_phone
from smsgate.services.gateway_client import GatewayClient, SmsRecipient


def main() -> None:
    parser = argparse.ArgumentParser(description="SMS gateway connectivity check")
    parser.add_argument("--send", nargs=2, metavar=("PHONE", "TEXT"), help="send one test SMS")
    parser.add_argument("--extra-id", type=int, default=0, help="extraID for the test SMS")
    parser.add_argument("--status", nargs="+", metavar="SMS_ID", help="query delivery status")
    args = parser.parse_args()

    client = GatewayClient.from_settings(settings)

    if args.send:
        phone, text = args.send
        recipient = SmsRecipient(
            sms_id=args.extra_id,
            phone=normalize_phone(phone, settings.sms_phone_country_code) or phone,
            text=text,
        )
        result = client.send_sms([recipient])
        print("SEND_SMS:", result.status_code, result.body[:500])

    if args.status:
        for item in client.get_status(args.status):
            print(item.msg_id, item.code, item.reason or "")


if __name__ == "__main__":
    main()
