"""Recipient identity verification."""

from .otp import SupabaseOtpProvider

__all__ = ['SupabaseOtpProvider']
