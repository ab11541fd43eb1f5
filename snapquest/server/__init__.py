"""
Server side of the progress store: accounts, tokens, per-account data.
"""

from .accounts import Account, AccountDirectory, hash_password

__all__ = ["Account", "AccountDirectory", "hash_password"]
