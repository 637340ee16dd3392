"""
Encryption at rest for student contact details and their change history.

Values are sealed with Fernet under ENCRYPTION_KEY. During a key rotation
the retired keys go in ENCRYPTION_KEYS_PREVIOUS (comma separated): rows
written under them still decrypt, and every new write uses the current key.
"""

import os

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from sqlalchemy.types import LargeBinary, TypeDecorator

PREVIOUS_KEYS_ENV_VAR = 'ENCRYPTION_KEYS_PREVIOUS'


def build_cipher(key_env_var):
    """Return a MultiFernet for the current key followed by any retired keys."""
    key = os.getenv(key_env_var)
    if not key:
        raise RuntimeError(f"Missing required environment variable: {key_env_var}")
    previous = [k.strip() for k in os.getenv(PREVIOUS_KEYS_ENV_VAR, '').split(',') if k.strip()]
    return MultiFernet([Fernet(k) for k in [key] + previous])


class PIIEncryptedType(TypeDecorator):
    """String column stored as a Fernet token."""
    impl = LargeBinary
    cache_ok = True

    def __init__(self, key_env_var, *args, **kwargs):
        self.key_env_var = key_env_var
        self.cipher = build_cipher(key_env_var)
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self.cipher.encrypt(str(value).encode('utf-8'))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return self.cipher.decrypt(bytes(value)).decode('utf-8')
        except InvalidToken:
            raise RuntimeError(
                f"Stored value could not be decrypted with {self.key_env_var} "
                f"or {PREVIOUS_KEYS_ENV_VAR}"
            )
