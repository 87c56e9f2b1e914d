"""Core utilities for the Parley backend."""

from .security import create_access_token, create_user_token, decode_access_token

__all__ = ["create_access_token", "create_user_token", "decode_access_token"]
