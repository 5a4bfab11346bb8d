from typing import Any, Dict

from rental_outbox.workers.dispatcher import OutboxDispatcher


def build_health_report(dispatcher: OutboxDispatcher) -> Dict[str, Any]:
    """Payload for a /health/detailed endpoint. Never raises."""
    stats = dispatcher.detailed_stats()
    healthy = "error" not in stats and stats.get("is_running", False)
    return {"status": "healthy" if healthy else "degraded", "outbox": stats}
