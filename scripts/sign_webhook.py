"""Sign a webhook body for manual testing of the webhook receiver.

Reads the raw body from stdin and prints the base64 HMAC-SHA256 signature
expected in ``X-Shopify-Hmac-Sha256``, using the webhook signing secret from
the environment (or .env file).

Usage:
    BODY='{"shop_id":1,"shop_domain":"demo-store.myshopify.com"}'
    HMAC=$(echo -n "$BODY" | python -m scripts.sign_webhook)
    curl -X POST http://localhost:8000/api/v1/webhooks/shopify/shop/redact \\
      -H "Content-Type: application/json" \\
      -H "X-Shopify-Hmac-Sha256: $HMAC" \\
      -H "X-Shopify-Shop-Domain: demo-store.myshopify.com" \\
      -d "$BODY"
"""

import sys

from storelink.core.config import settings
from storelink.integrations.shopify.webhooks import compute_signature


def main() -> None:
    secret = settings.webhook_signing_secret
    if not secret:
        print(
            "ERROR: neither SHOPIFY_WEBHOOK_SECRET nor SHOPIFY_CLIENT_SECRET is set",
            file=sys.stderr,
        )
        sys.exit(1)

    body = sys.stdin.buffer.read()
    if not body:
        print("ERROR: No input received on stdin", file=sys.stderr)
        sys.exit(1)

    print(compute_signature(body, secret), end="")


if __name__ == "__main__":
    main()
