"""
Persistence handle shared by the request handlers.

Holds the relational store and the hosted (Supabase) store, whichever are
configured, and runs each operation against them in preference order. A
backend that refuses the call for lack of permissions hands over to the next
one; any other failure is reported straight away.
"""

import logging
import re
from typing import Optional

from postgrest.exceptions import APIError

from ..errors import ApiError, DataLayerError, ServiceUnavailable, UpstreamPermissionDenied

logger = logging.getLogger(__name__)

PERMISSION_PATTERN = re.compile(
    r"permission denied|row[- ]level security|\brls\b|42501|not authorized|\bjwt\b",
    re.IGNORECASE,
)


def error_text(exc: Exception) -> str:
    """Best description of a backend error.

    postgrest errors keep it in .message and .code; SQLAlchemy wraps the
    driver error in .orig.
    """
    if isinstance(exc, APIError):
        parts = [str(part) for part in (exc.message, exc.code) if part]
        if parts:
            return " ".join(parts)
    return str(getattr(exc, "orig", None) or exc)


def is_permission_error(exc: Exception) -> bool:
    return bool(PERMISSION_PATTERN.search(error_text(exc)))


class Persistence:
    def __init__(self, relational=None, hosted=None, preferred: str = "supabase"):
        self.relational = relational
        self.hosted = hosted
        self.preferred = preferred

    def backends(self) -> list:
        ordered = [self.hosted, self.relational]
        if self.preferred == "postgres":
            ordered.reverse()
        return [backend for backend in ordered if backend is not None]

    def call(self, operation: str, *args, **kwargs):
        backends = self.backends()
        if not backends:
            raise ServiceUnavailable("No hay configuración de base de datos disponible en este entorno.")

        for position, backend in enumerate(backends):
            try:
                return getattr(backend, operation)(*args, **kwargs)
            except ApiError:
                raise
            except Exception as exc:
                detalle = error_text(exc)
                if not is_permission_error(exc):
                    logger.exception("%s.%s failed", backend.name, operation)
                    raise DataLayerError("Ocurrió un problema al acceder a los datos.", detalle=detalle)

                if position + 1 < len(backends):
                    logger.warning(
                        "%s.%s denied (%s); falling back to %s",
                        backend.name, operation, detalle, backends[position + 1].name,
                    )
                    continue

                logger.error("%s.%s denied with no fallback left: %s", backend.name, operation, detalle)
                raise UpstreamPermissionDenied(
                    f"Permiso denegado por el backend {backend.name}.",
                    detalle=detalle,
                    status_code=502 if backend.name == "supabase" else 500,
                )

    def upload_file(self, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
        if self.hosted is None:
            raise ServiceUnavailable("No hay almacenamiento de archivos configurado en este entorno.")
        try:
            return self.hosted.upload_file(filename, content, content_type)
        except Exception as exc:
            logger.exception("Upload of %s failed", filename)
            raise DataLayerError("No se pudo subir el archivo.", detalle=error_text(exc))
