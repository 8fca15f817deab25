"""
M-Pesa Subscription Billing Service
===================================

Root package for the AWS-native payment confirmation and subscription service
behind the mobile app's premium tier. Payments are reported by the payment
processor's webhook, recorded in DynamoDB, and bound to a device on claim.

Modules under this package:
- intent.py   → payment intent registration (/init)
- webhook.py  → payment processor webhook (/)
- claim.py    → binds a confirmed payment to a device (/claim)
- status.py   → premium entitlement check (/status)
- health.py   → Health and version checks (/health, /version)
- router.py   → single-function dispatcher for all of the above
- billing/    → domain core (normalization, intents, ledger, subscriptions)
- utils/      → Shared helper modules (config, logging, secrets, store, http)

Environment variables expected:
  • AWS_REGION                 - AWS region for all resources
  • STORE_BACKEND              - "dynamodb" (default) or "memory"
  • INTENTS_TABLE              - DynamoDB table for payment intents
  • TRANSACTIONS_TABLE         - DynamoDB table for the transaction ledger
  • SUBSCRIPTIONS_TABLE        - DynamoDB table for subscriptions
  • LOGS_TABLE                 - DynamoDB table for the webhook audit log (optional)
  • WEBHOOK_SECRET_NAME        - Secrets Manager secret holding the webhook HMAC key
  • LOG_LEVEL                  - Log verbosity (default: INFO)

All handlers in this package are stateless and Lambda-optimized.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
