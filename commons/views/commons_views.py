import logging
from datetime import datetime, timezone

from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger("django.request")


def health(request):
    """
    Liveness + readiness: responde 503 se o banco não aceitar consultas.
    """
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
    except DatabaseError as exc:
        logger.error("health_db_unavailable", extra={"event": "health", "error": str(exc)})
        return JsonResponse({"ok": False, "database": "unavailable"}, status=503)

    return JsonResponse(
        {
            "ok": True,
            "database": "ok",
            "now": datetime.now(timezone.utc).isoformat(),
        }
    )
