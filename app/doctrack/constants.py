"""
Central constants for document tracking.
"""
from __future__ import annotations

# Document statuses
STATUS_PENDING = "pendiente"
STATUS_IN_PROCESS = "en_proceso"
STATUS_COMPLETED = "completado"
STATUS_REJECTED = "rechazado"

DOCUMENT_STATUSES = (STATUS_PENDING, STATUS_IN_PROCESS, STATUS_COMPLETED, STATUS_REJECTED)

# Statuses where the movement control is hidden; not enforced on writes.
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_REJECTED})

# Movement actions
ACTION_CREATE = "creacion"
ACTION_FORWARD = "derivado"
ACTION_REVIEW = "revision"
ACTION_PENDING = "pendiente"
ACTION_COMPLETE = "completado"
ACTION_REJECT = "rechazado"

# action -> resulting document status
ACTION_TO_STATUS = {
    ACTION_CREATE: STATUS_PENDING,
    ACTION_FORWARD: STATUS_IN_PROCESS,
    ACTION_REVIEW: STATUS_PENDING,
    ACTION_PENDING: STATUS_PENDING,
    ACTION_COMPLETE: STATUS_COMPLETED,
    ACTION_REJECT: STATUS_REJECTED,
}

# Actions whose destination department must be supplied by the caller.
ACTIONS_REQUIRING_DESTINATION = frozenset({ACTION_CREATE, ACTION_FORWARD, ACTION_REVIEW})

ACTION_LABELS = {
    ACTION_CREATE: "Creación",
    ACTION_FORWARD: "Derivado",
    ACTION_REVIEW: "Revisión",
    ACTION_PENDING: "Pendiente",
    ACTION_COMPLETE: "Completado",
    ACTION_REJECT: "Rechazado",
}

# Past-tense phrasing used in notification messages.
ACTION_DESCRIPTIONS = {
    ACTION_CREATE: "creado",
    ACTION_FORWARD: "derivado al departamento seleccionado",
    ACTION_REVIEW: "enviado a revisión",
    ACTION_PENDING: "marcado como pendiente",
    ACTION_COMPLETE: "marcado como completado",
    ACTION_REJECT: "rechazado",
}

STATUS_LABELS = {
    STATUS_PENDING: "Pendiente",
    STATUS_IN_PROCESS: "En proceso",
    STATUS_COMPLETED: "Completado",
    STATUS_REJECTED: "Rechazado",
}

# User roles (plain strings, no hierarchy)
ROLE_USER = "user"
ROLE_OPERATOR = "operator"
ROLE_SUPERVISOR = "supervisor"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_USER, ROLE_OPERATOR, ROLE_SUPERVISOR, ROLE_ADMIN)

# Notification severities
NOTIFICATION_TYPES = ("info", "success", "warning", "error")

# Business code prefix printed in QR codes
DOCUMENT_CODE_PREFIX = "DOC-"

# Attachments
ATTACHMENT_MAX_BYTES = 5 * 1024 * 1024
ALLOWED_ATTACHMENT_EXTENSIONS = frozenset({"pdf", "doc", "docx", "xls", "xlsx"})
ALLOWED_ATTACHMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    }
)
# Fallback MIME type per extension when the client sends none or a generic one.
EXTENSION_MIME_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

# Statistics windows (days)
STATS_RANGES = (7, 30, 90, 180, 365)
STATS_DEFAULT_RANGE = 30
