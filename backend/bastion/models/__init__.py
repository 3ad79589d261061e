"""SQLAlchemy models exposed for schema creation and imports."""
from .account import Account, AccountSession, LegacyAccount
from .punishment import Punishment

__all__ = ["Account", "AccountSession", "LegacyAccount", "Punishment"]
