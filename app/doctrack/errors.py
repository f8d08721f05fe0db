from __future__ import annotations


class DocTrackError(RuntimeError):
    """Base error carrying a user-facing (Spanish) message and an HTTP status."""

    status_code = 500
    default_message = "Error al procesar la solicitud"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(DocTrackError):
    status_code = 400
    default_message = "Faltan datos requeridos"


class InvalidAction(ValidationError):
    default_message = "Acción no válida"


class MissingDestination(ValidationError):
    default_message = "Por favor selecciona un departamento destino"


class AttachmentRejected(ValidationError):
    default_message = "Archivo no permitido"


class Unauthorized(DocTrackError):
    status_code = 401
    default_message = "No autorizado"


class Forbidden(DocTrackError):
    status_code = 403
    default_message = "No tienes permisos para realizar esta acción"


class DepartmentMismatch(Forbidden):
    default_message = "Solo los usuarios del departamento actual del documento pueden registrar movimientos"


class NotFound(DocTrackError):
    status_code = 404
    default_message = "Recurso no encontrado"


class Conflict(DocTrackError):
    status_code = 409
    default_message = "El recurso ya existe"


class StorageUnavailable(DocTrackError):
    status_code = 503
    default_message = "El almacenamiento de archivos no está disponible"


# (substring, message) pairs, matched case-insensitively in order.
_BACKEND_GUIDANCE: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("bucket not found", "nosuchbucket", "no such bucket"),
        "El almacenamiento para archivos no está configurado. El administrador debe crear el bucket de adjuntos.",
    ),
    (
        ("row-level security policy", "permission denied", "accessdenied", "access denied", "forbidden"),
        "No tienes permisos para realizar esta operación. El administrador debe revisar las políticas de seguridad.",
    ),
    (
        ("does not exist", "no such table", "undefinedtable"),
        "Esta funcionalidad aún no está disponible. Por favor, contacta al administrador.",
    ),
)


def translate_backend_error(exc: BaseException, default: str = "Error al procesar la solicitud") -> str:
    """
    Map a database/storage failure onto a guidance message.

    Matching is done on the message text because drivers and storage SDKs raise
    heterogeneous exception types for the same condition.
    """
    text = str(exc).lower()
    for needles, message in _BACKEND_GUIDANCE:
        if any(n in text for n in needles):
            return message
    return default
