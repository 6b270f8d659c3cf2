"""User-account REST backend: registration with SMS OTP, JWT login and password reset."""

__version__ = "0.1.0"
