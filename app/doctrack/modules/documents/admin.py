from __future__ import annotations

from datetime import date

from flask import Blueprint, Response, current_app, request

from app.doctrack.auth import AuthSession
from app.doctrack.db import db_session
from app.doctrack.errors import ValidationError
from app.doctrack.modules.documents.qr import render_qr_png
from app.doctrack.modules.documents.reports import document_report_csv
from app.doctrack.modules.documents.service import (
    create_document,
    get_document,
    get_document_by_code,
    get_document_movements,
    is_scannable_code,
    list_documents,
    normalize_document_code,
    record_movement,
)
from app.doctrack.modules.notifications.service import notify_movement
from app.doctrack.rbac import require_login
from app.doctrack.utils import clean_str, json_error, json_ok, optional_str, parse_int, request_payload

bp = Blueprint("documents", __name__)


def _document_payload(s, document) -> dict:
    return {
        "document": document.to_dict(),
        "movements": [m.to_dict() for m in get_document_movements(s, document.id)],
    }


@bp.get("/api/documents")
@require_login
def documents_list(auth: AuthSession):
    s = db_session()
    docs = list_documents(
        s,
        status=clean_str(request.args.get("status")) or None,
        department_id=parse_int(request.args.get("department_id")),
        search=clean_str(request.args.get("q")) or None,
        limit=parse_int(request.args.get("limit")),
    )
    return json_ok(documents=[d.to_dict() for d in docs])


@bp.post("/api/documents")
@require_login
def documents_create(auth: AuthSession):
    s = db_session()
    data = request_payload()
    department_id = parse_int(data.get("departmentId") or data.get("department_id")) or auth.department_id

    document = create_document(
        s,
        auth.user,
        title=clean_str(data.get("title")),
        description=optional_str(data.get("description")),
        department_id=department_id,
        document_code=optional_str(data.get("documentCode") or data.get("document_code")),
    )
    s.commit()
    current_app.logger.info("Document created code=%s user_id=%s", document.document_code, auth.user_id)
    return json_ok(
        201,
        documentCode=document.document_code,
        document=document.to_dict(),
        qr_url=f"/api/documents/code/{document.document_code}/qr.png",
    )


@bp.get("/api/documents/<int:document_id>")
@require_login
def documents_detail(document_id: int, auth: AuthSession):
    s = db_session()
    document = get_document(s, document_id)
    return json_ok(**_document_payload(s, document))


@bp.get("/api/documents/code/<code>")
@require_login
def documents_by_code(code: str, auth: AuthSession):
    s = db_session()
    document = get_document_by_code(s, code)
    return json_ok(**_document_payload(s, document))


@bp.post("/api/documents/scan")
@require_login
def documents_scan(auth: AuthSession):
    data = request_payload()
    code = normalize_document_code(data.get("code"))
    if not is_scannable_code(code):
        return json_error("Código QR no válido", 400)
    s = db_session()
    document = get_document_by_code(s, code)
    return json_ok(**_document_payload(s, document))


@bp.get("/api/documents/<int:document_id>/movements")
@require_login
def documents_movements(document_id: int, auth: AuthSession):
    s = db_session()
    document = get_document(s, document_id)
    return json_ok(movements=[m.to_dict() for m in get_document_movements(s, document.id)])


@bp.post("/api/documents/movement")
@require_login
def documents_record_movement(auth: AuthSession):
    s = db_session()
    data = request_payload()

    document_id = parse_int(data.get("documentId"))
    action = clean_str(data.get("action"))
    if document_id is None or not action:
        raise ValidationError("Faltan datos requeridos")

    document = get_document(s, document_id)
    claimed_from = parse_int(data.get("fromDepartmentId"))
    if claimed_from is not None and claimed_from != document.department_id:
        current_app.logger.info(
            "Movement form out of date document=%s claimed_from=%s actual=%s",
            document.id,
            claimed_from,
            document.department_id,
        )

    movement = record_movement(
        s,
        document,
        auth.user,
        action,
        to_department_id=parse_int(data.get("toDepartmentId")),
        notes=optional_str(data.get("notes")),
    )
    notify_movement(s, document, movement, auth.user)
    s.commit()

    return json_ok(
        message="Movimiento registrado correctamente",
        movement=movement.to_dict(),
        document=document.to_dict(),
    )


@bp.get("/api/documents/<int:document_id>/report.csv")
@require_login
def documents_report(document_id: int, auth: AuthSession):
    s = db_session()
    document = get_document(s, document_id)
    body = document_report_csv(document, get_document_movements(s, document.id))
    filename = f"reporte_{document.document_code}_{date.today().strftime('%Y%m%d')}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@bp.get("/api/documents/code/<code>/qr.png")
@require_login
def documents_qr(code: str, auth: AuthSession):
    code = normalize_document_code(code)
    if not is_scannable_code(code):
        return json_error("Código QR no válido", 400)
    return Response(render_qr_png(code), mimetype="image/png", headers={"Cache-Control": "max-age=86400"})
