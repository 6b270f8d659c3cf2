"""
Core utilities shared across the account API.

This package hosts configuration, logging, password hashing, signed tokens,
one-time codes and the outbound gateways (SMTP mailer, SMS). Services depend
on these primitives instead of importing FastAPI or storage layers.
"""
