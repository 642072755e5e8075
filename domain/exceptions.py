"""Domain Exceptions"""
from typing import Any, Dict, Optional


class CurrencyNotFoundError(ValueError):
    """Raised when a currency lookup finds nothing"""


class ConversionError(ValueError):
    """Raised when an amount cannot be converted between currencies"""

    def __init__(self, message: str, code: str = "CONVERSION_FAILED", context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.conversion_error = {
            "code": code,
            "message": message,
            "context": context or {},
        }
