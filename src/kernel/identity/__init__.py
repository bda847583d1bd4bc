"""
Identity Core - Authentication and user management.
"""

from src.kernel.identity.password import CredentialManager, HashScheme, verify_password, hash_password
from src.kernel.identity.phone import PhoneNormalizer
from src.kernel.identity.codes import CodeSweeper, OneTimeCodeRecord, OneTimeCodeStore, generate_code
from src.kernel.identity.lookup import IdentityLookup
from src.kernel.identity.identity_service import IdentityService

__all__ = [
    "CredentialManager",
    "HashScheme",
    "verify_password",
    "hash_password",
    "PhoneNormalizer",
    "CodeSweeper",
    "OneTimeCodeRecord",
    "OneTimeCodeStore",
    "generate_code",
    "IdentityLookup",
    "IdentityService",
]
