"""
Public API Module

Unauthenticated endpoints reached from links sent to customers.
All endpoints are mounted under /api/public.

Security Features:
- Signed, expiring link tokens instead of user credentials
- Tokens revocable per quote (public_token_version)
- Tokens filtered out of logs and Sentry events
"""
