"""Outbound notifications."""

from .email import EmailResult, ResendEmailSender, render_share_email

__all__ = ['EmailResult', 'ResendEmailSender', 'render_share_email']
