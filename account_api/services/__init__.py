"""
High-level use cases for the account API.

Each service module orchestrates repositories/adapters to implement business
rules (register, login, verify OTP, reset password). Routers call these
services instead of touching the database or gateways directly.
"""
