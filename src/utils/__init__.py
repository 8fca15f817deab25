"""
M-Pesa Billing Service Utilities
================================

Shared helper modules for the AWS-native subscription billing service.
It includes:

- config.py          → environment-driven settings
- logger.py          → structured JSON logging
- secrets.py         → AWS Secrets Manager integration (webhook secret)
- store.py           → key-value store contract (DynamoDB / in-memory) with TTL
- http.py            → API Gateway event parsing and JSON/CORS responses
- timeutil.py        → UTC clock and ISO-8601 helpers

All functions in this package are stateless and thread-safe, suitable for
AWS Lambda execution.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
