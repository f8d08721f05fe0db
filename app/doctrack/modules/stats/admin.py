from __future__ import annotations

from datetime import date

from flask import Blueprint, Response, request

from app.doctrack.auth import AuthSession
from app.doctrack.db import db_session
from app.doctrack.modules.stats.service import compute_stats, dashboard_overview, parse_range, stats_csv
from app.doctrack.rbac import require_login
from app.doctrack.utils import json_ok, parse_int

bp = Blueprint("stats", __name__)


def _stats_from_args(s) -> dict:
    return compute_stats(
        s,
        days=parse_range(request.args.get("days")),
        department_id=parse_int(request.args.get("department_id") or request.args.get("departmentId")),
    )


@bp.get("/api/dashboard")
@require_login
def dashboard(auth: AuthSession):
    s = db_session()
    return json_ok(**dashboard_overview(s))


@bp.get("/api/stats")
@require_login
def stats(auth: AuthSession):
    s = db_session()
    return json_ok(stats=_stats_from_args(s))


@bp.get("/api/stats/export.csv")
@require_login
def stats_export(auth: AuthSession):
    s = db_session()
    payload = _stats_from_args(s)
    filename = f"estadisticas_{payload['range_days']}d_{date.today().strftime('%Y%m%d')}.csv"
    return Response(
        stats_csv(payload),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
