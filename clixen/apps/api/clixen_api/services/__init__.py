"""Profile and Telegram link operations on top of the repositories."""
