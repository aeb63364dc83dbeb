"""Error types raised by the API and converted to JSON responses.

Every error carries the HTTP status it maps to, a human-readable message
(``mensaje``) and, where available, the raw text of the underlying failure
(``detalle``).
"""

from typing import Optional


class ApiError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, mensaje: str, detalle: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(mensaje)
        self.mensaje = mensaje
        self.detalle = detalle
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        payload = {"exito": False, "mensaje": self.mensaje}
        if self.detalle:
            payload["detalle"] = self.detalle
        return payload


class ServiceUnavailable(ApiError):
    """Raised when no backend is configured for the request."""

    status_code = 503


class ValidationFailed(ApiError):
    status_code = 400


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class InvalidCredentials(ApiError):
    status_code = 401


class UpstreamPermissionDenied(ApiError):
    """Raised when the last backend tried rejected the call for lack of rights.

    The status is 502 when the hosted API refused, 500 when the relational
    database did.
    """

    status_code = 502


class DataLayerError(ApiError):
    """Any other failure reported by a backend."""

    status_code = 500
