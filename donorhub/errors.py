"""Domain exceptions raised by the ingestion, checkout and metrics services.

Blueprints translate these into JSON responses; anything else bubbles up to
the app-level error handler as a 500.
"""

from __future__ import annotations


class DonorHubError(Exception):
    status_code = 500

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        if status_code is not None:
            self.status_code = int(status_code)


class MalformedPayload(DonorHubError):
    """Request body is not the shape we expect (bad JSON, missing fields)."""

    status_code = 400


class InvalidSignature(DonorHubError):
    status_code = 400


class MissingDonorIdentity(DonorHubError):
    """No email could be derived for the donor."""

    status_code = 400


class InvalidCheckoutRequest(DonorHubError):
    status_code = 400


class CheckoutSessionError(DonorHubError):
    """Payment provider refused or failed to create a checkout session."""

    status_code = 500


class SnapshotNotFound(DonorHubError):
    status_code = 404
