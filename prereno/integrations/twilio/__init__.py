"""
Twilio SMS integration
======================

Public re-exports for the SMS service.
"""

from .smsService import SmsError, SmsResult, is_configured, send_sms

__all__ = [
    "SmsError",
    "SmsResult",
    "is_configured",
    "send_sms",
]
