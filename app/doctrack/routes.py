from flask import Blueprint

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return {
        "name": "doctrack",
        "endpoints": {
            "session": "/auth/session",
            "documents": "/api/documents",
            "movement": "/api/documents/movement",
            "notifications": "/api/notifications",
            "stats": "/api/stats",
        },
    }


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200
