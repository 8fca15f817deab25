"""
M-Pesa Subscription Billing
===========================

Domain core of the billing service: confirms M-Pesa payments reported by the
payment processor and activates a per-device subscription for the mobile app.
State lives only in a key-value store with per-key TTL (DynamoDB in AWS).

Modules under this package:
- normalize.py      → phone/device/amount/plan normalization, payload field extraction
- plans.py          → plan codes, amount tiers, expiry arithmetic
- intents.py        → short-lived payment intents (created by POST /init)
- ledger.py         → append-only transaction ledger with receipt/intent indexes
- subscriptions.py  → per-phone subscription state and device-binding rules
- signature.py      → HMAC webhook signature verification
- audit.py          → bounded webhook audit trail
- errors.py         → error taxonomy mapped onto HTTP responses
- stores.py         → wiring of the above onto configured tables
"""
