"""tripgate: credential-driven login, account lifecycle and session provisioning."""

__version__ = "1.0.0"
