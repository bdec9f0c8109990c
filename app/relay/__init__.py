"""Outbound messaging relay (Telegram Bot API)."""

from app.relay.telegram import MessagingRelay, TelegramRelay

__all__ = ["MessagingRelay", "TelegramRelay"]
