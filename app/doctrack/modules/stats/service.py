"""
Dashboard aggregates computed from documents and movements.

All figures are computed from stored rows; payloads carry `placeholder: False`
so callers can rely on them being real data.
"""

from __future__ import annotations

import csv
import io
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.doctrack.constants import (
    ACTION_LABELS,
    ACTION_TO_STATUS,
    DOCUMENT_STATUSES,
    STATS_DEFAULT_RANGE,
    STATS_RANGES,
    STATUS_LABELS,
    TERMINAL_STATUSES,
)
from app.doctrack.errors import ValidationError
from app.doctrack.models import Department, User
from app.doctrack.modules.documents.models import Document, Movement

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

TOP_USERS_LIMIT = 5
RECENT_LIMIT = 5

# Actions that move a document into a terminal status.
_TERMINAL_ACTIONS = frozenset(a for a, st in ACTION_TO_STATUS.items() if st in TERMINAL_STATUSES)


def parse_range(raw: str | int | None) -> int:
    if raw in (None, ""):
        return STATS_DEFAULT_RANGE
    try:
        days = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("Rango de tiempo no válido") from None
    if days not in STATS_RANGES:
        raise ValidationError(f"Rango de tiempo no válido. Opciones: {', '.join(str(r) for r in STATS_RANGES)}")
    return days


def trend_interval_days(days: int) -> int:
    """Bucket width: daily up to 60 days, weekly up to 180, monthly beyond."""
    if days > 180:
        return 30
    if days > 60:
        return 7
    return 1


def _count(s: "Session", model) -> int:
    return int(s.execute(select(func.count(model.id))).scalar_one())


def dashboard_overview(s: "Session") -> dict:
    recent_docs = s.query(Document).order_by(Document.created_at.desc(), Document.id.desc()).limit(RECENT_LIMIT).all()
    recent_moves = s.query(Movement).order_by(Movement.created_at.desc(), Movement.id.desc()).limit(RECENT_LIMIT).all()
    return {
        "counts": {
            "documents": _count(s, Document),
            "users": _count(s, User),
            "departments": _count(s, Department),
            "movements": _count(s, Movement),
        },
        "recent_documents": [d.to_dict() for d in recent_docs],
        "recent_movements": [
            {**m.to_dict(), "document_code": m.document.document_code if m.document else None} for m in recent_moves
        ],
    }


def _processing_hours(s: "Session", documents: list[Document]) -> tuple[list[float], dict[int, list[float]]]:
    """
    Hours from creation to the first completing/rejecting movement, per document.
    Returns (all durations, durations keyed by the department that closed the document).
    """
    if not documents:
        return [], {}
    by_id = {d.id: d for d in documents}
    rows = (
        s.query(Movement.document_id, Movement.to_department_id, Movement.created_at)
        .filter(Movement.document_id.in_(list(by_id)))
        .filter(Movement.action.in_(list(_TERMINAL_ACTIONS)))
        .order_by(Movement.created_at.asc(), Movement.id.asc())
        .all()
    )
    seen: set[int] = set()
    durations: list[float] = []
    per_department: dict[int, list[float]] = defaultdict(list)
    for document_id, department_id, closed_at in rows:
        if document_id in seen:
            continue
        seen.add(document_id)
        hours = max(0.0, (closed_at - by_id[document_id].created_at).total_seconds() / 3600)
        durations.append(hours)
        per_department[department_id].append(hours)
    return durations, per_department


def _average(values: list[float]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


def compute_stats(
    s: "Session",
    *,
    days: int = STATS_DEFAULT_RANGE,
    department_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.utcnow()
    start = now - timedelta(days=days)

    doc_q = s.query(Document).filter(Document.created_at >= start)
    move_q = s.query(Movement).filter(Movement.created_at >= start)
    if department_id is not None:
        doc_q = doc_q.filter(Document.department_id == department_id)
        move_q = move_q.filter(Movement.to_department_id == department_id)
    documents = doc_q.all()
    movements = move_q.all()

    departments = s.query(Department).order_by(Department.name.asc()).all()
    dept_names = {d.id: d.name for d in departments}

    # by status: every status present, zero when empty
    status_counts = Counter(d.status for d in documents)
    by_status = [
        {"name": st, "label": STATUS_LABELS[st], "value": status_counts.get(st, 0)} for st in DOCUMENT_STATUSES
    ]

    dept_counts = Counter(d.department_id for d in documents)
    by_department = [{"id": d.id, "name": d.name, "value": dept_counts.get(d.id, 0)} for d in departments]

    action_counts = Counter(m.action for m in movements)
    by_action = [
        {"name": action, "label": ACTION_LABELS.get(action, action), "value": count}
        for action, count in sorted(action_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]

    # trend buckets from start to now
    interval = trend_interval_days(days)
    bucket_count = days // interval + 1
    doc_buckets = [0] * bucket_count
    move_buckets = [0] * bucket_count
    for d in documents:
        idx = min((d.created_at - start).days // interval, bucket_count - 1)
        doc_buckets[idx] += 1
    for m in movements:
        idx = min((m.created_at - start).days // interval, bucket_count - 1)
        move_buckets[idx] += 1
    trend = [
        {
            "date": (start + timedelta(days=i * interval)).date().isoformat(),
            "documents": doc_buckets[i],
            "movements": move_buckets[i],
        }
        for i in range(bucket_count)
    ]

    # users
    user_counts = Counter(m.user_id for m in movements)
    users = {u.id: u for u in s.query(User).filter(User.id.in_(list(user_counts))).all()} if user_counts else {}
    top_users = [
        {
            "id": uid,
            "name": users[uid].display_name if uid in users else f"Usuario {uid}",
            "value": count,
        }
        for uid, count in sorted(user_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_USERS_LIMIT]
    ]

    role_counts: Counter[str] = Counter()
    for uid, count in user_counts.items():
        role_counts[users[uid].role if uid in users else "sin_rol"] += count
    total_moves = len(movements)
    by_role = [
        {"name": role, "value": round(count * 100.0 / total_moves, 1), "movements": count}
        for role, count in sorted(role_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]

    hour_counts = Counter(m.created_at.hour for m in movements)
    by_hour = [{"hour": h, "label": f"{h}:00", "movements": hour_counts.get(h, 0)} for h in range(24)]

    durations, per_department = _processing_hours(s, documents)
    processing_times = [
        {"id": dept_id, "name": dept_names.get(dept_id, str(dept_id)), "hours": _average(values), "documents": len(values)}
        for dept_id, values in sorted(per_department.items(), key=lambda kv: dept_names.get(kv[0], ""))
    ]

    return {
        "placeholder": False,
        "range_days": days,
        "department_id": department_id,
        "start": start.isoformat(),
        "end": now.isoformat(),
        "totals": {
            "documents": len(documents),
            "movements": total_moves,
            "active_users": len(user_counts),
            "avg_processing_hours": _average(durations),
        },
        "by_status": by_status,
        "by_department": by_department,
        "by_action": by_action,
        "trend": trend,
        "top_users": top_users,
        "by_role": by_role,
        "by_hour": by_hour,
        "processing_times": processing_times,
    }


def stats_csv(stats: dict) -> str:
    """Flatten a compute_stats() payload into a sectioned CSV."""
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Sección", "Nombre", "Valor"])
    totals = stats["totals"]
    w.writerow(["Totales", "Documentos", totals["documents"]])
    w.writerow(["Totales", "Movimientos", totals["movements"]])
    w.writerow(["Totales", "Usuarios activos", totals["active_users"]])
    w.writerow(["Totales", "Tiempo promedio de procesamiento (horas)", totals["avg_processing_hours"]])
    for row in stats["by_status"]:
        w.writerow(["Documentos por estado", row["label"], row["value"]])
    for row in stats["by_department"]:
        w.writerow(["Documentos por departamento", row["name"], row["value"]])
    for row in stats["by_action"]:
        w.writerow(["Movimientos por tipo", row["label"], row["value"]])
    for row in stats["trend"]:
        w.writerow(["Tendencia (documentos)", row["date"], row["documents"]])
        w.writerow(["Tendencia (movimientos)", row["date"], row["movements"]])
    for row in stats["top_users"]:
        w.writerow(["Usuarios más activos", row["name"], row["value"]])
    for row in stats["by_role"]:
        w.writerow(["Actividad por rol (%)", row["name"], row["value"]])
    for row in stats["by_hour"]:
        w.writerow(["Actividad por hora", row["label"], row["movements"]])
    for row in stats["processing_times"]:
        w.writerow(["Tiempo de procesamiento (horas)", row["name"], row["hours"]])
    return out.getvalue()
