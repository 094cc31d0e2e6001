"""API route handlers."""
from . import ldap

__all__ = ["ldap"]
