"""
Domain exceptions raised by the managers and rendered by the API layer.

Each exception carries the HTTP status it maps to; main.py turns them into
``{"success": false, "message": ...}`` responses.
"""

from __future__ import annotations


class BMJayaError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(BMJayaError):
    status_code = 401


class InvalidTokenError(BMJayaError):
    status_code = 403


class ValidationError(BMJayaError):
    status_code = 400


class PayloadTooLargeError(BMJayaError):
    status_code = 413


class NotFoundError(BMJayaError):
    status_code = 404


class ConflictError(BMJayaError):
    status_code = 409
