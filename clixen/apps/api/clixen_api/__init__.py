"""Clixen access API: trial, quota and Telegram-link gating."""

__version__ = "0.1.0"
