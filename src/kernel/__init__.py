"""
Identity Kernel

- Identity core: credentials, phone canonicalization, one-time codes,
  user lookup and the registration/login/reset flows
- Infrastructure adapters: retry with backoff, record store, SMS gateway
- Error taxonomy shared by both

Nothing here talks to HTTP; the API layer turns results into responses.
"""

from src.kernel.errors import ErrorKind, IdentityError, InfraError

__all__ = [
    "ErrorKind",
    "IdentityError",
    "InfraError",
]
