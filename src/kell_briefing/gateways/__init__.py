"""Transactional email gateways."""

from .base import EmailGateway
from .resend import ResendGateway

__all__ = ["EmailGateway", "ResendGateway"]
