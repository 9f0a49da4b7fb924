# services/errors.py
from __future__ import annotations


class BillingError(Exception):
    """Base for recoverable billing failures surfaced to the caller."""
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(BillingError):
    status_code = 404


class Conflict(BillingError):
    status_code = 409


class InvalidTransition(Conflict):
    """Status change not allowed from the invoice's current status."""


class InvalidInput(BillingError):
    status_code = 422


class InsufficientFunds(BillingError):
    status_code = 402
