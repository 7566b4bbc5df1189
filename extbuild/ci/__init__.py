"""Clients for CI status and release APIs."""

from .client import CIClient, CIError

__all__ = ["CIClient", "CIError"]
