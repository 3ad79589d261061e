"""Route modules for the Bastion API."""
from . import accounts, messages, punishments, verification

__all__ = ["accounts", "verification", "punishments", "messages"]
