from __future__ import annotations

import csv
import io

from app.doctrack.constants import ACTION_LABELS, STATUS_LABELS
from app.doctrack.modules.documents.models import Document, Movement


def document_report_csv(document: Document, movements: list[Movement]) -> str:
    """Document header followed by its movement history, as CSV text."""
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Código", "Título", "Descripción", "Estado", "Departamento actual", "Creado por", "Fecha de creación"])
    w.writerow(
        [
            document.document_code,
            document.title,
            document.description or "",
            STATUS_LABELS.get(document.status, document.status),
            document.department.name if document.department else "",
            document.creator.display_name if document.creator else "",
            document.created_at.strftime("%Y-%m-%d %H:%M:%S") if document.created_at else "",
        ]
    )
    w.writerow([])
    w.writerow(["Fecha", "Acción", "Desde", "Hacia", "Usuario", "Notas"])
    for m in movements:
        w.writerow(
            [
                m.created_at.strftime("%Y-%m-%d %H:%M:%S") if m.created_at else "",
                ACTION_LABELS.get(m.action, m.action),
                m.from_department.name if m.from_department else "",
                m.to_department.name if m.to_department else "",
                m.user.display_name if m.user else "",
                m.notes or "",
            ]
        )
    return out.getvalue()
