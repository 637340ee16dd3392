"""
Utility modules for the FRISK portal.

This package contains reusable helpers and custom types:
- encryption: PIIEncryptedType for secure PII field storage
- helpers: Common utility functions (date formatting, request parsing)
- dates: Application timezone and quarter arithmetic
- validation: Input validation shared by the repositories
"""

from app.utils.encryption import PIIEncryptedType
from app.utils.helpers import format_utc_iso

__all__ = [
    'PIIEncryptedType',
    'format_utc_iso',
]
