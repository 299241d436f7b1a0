# app/core/errors.py
"""
Typed domain errors for the dispatcher.

Each error maps to a specific HTTP status code.  The transport layer
catches ``DispatchError`` subtypes and converts them to ``HTTPException``
without embedding dispatch logic in the route handlers.
"""
from __future__ import annotations


class DispatchError(Exception):
    """Base class for all dispatch domain errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class ValidationError(DispatchError):
    """Missing or malformed request input (400)."""

    status_code = 400


class NotFoundError(DispatchError):
    """Recipient, admin, group or device token not found (404)."""

    status_code = 404


class DependencyError(DispatchError):
    """Directory or keyed store read failed (500)."""

    status_code = 500


class DeliveryError(DispatchError):
    """Push gateway rejected or timed out a single-recipient send (500)."""

    status_code = 500
