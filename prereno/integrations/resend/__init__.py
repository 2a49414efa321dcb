"""
Resend email integration
========================

Public re-exports for the transactional email service.
"""

from .emailService import EmailError, EmailResult, send_email

__all__ = [
    "EmailError",
    "EmailResult",
    "send_email",
]
