import logging
import re
from typing import Any, Dict, Optional

import statsd

from patent_explorer.config import settings

logger = logging.getLogger(__name__)

_metrics: Optional[statsd.StatsClient] = None

def get_metrics() -> statsd.StatsClient:
    global _metrics
    if _metrics is None:
        _metrics = statsd.StatsClient(host=settings.statsd_host, port=settings.statsd_port, prefix="patent_explorer")
    return _metrics

def _metric_name(event: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", event.lower()).strip("_")

def track(event: str, properties: Optional[Dict[str, Any]] = None) -> None:
    """
    Best-effort usage event. Counts the event in statsd and logs its
    properties; failures are logged and never raised to the caller.
    """
    properties = properties or {}
    try:
        metrics = get_metrics()
        name = _metric_name(event)
        metrics.incr(name)
        if "executionTime" in properties:
            metrics.timing(f"{name}.duration", properties["executionTime"])
        logger.info(f"📊 {event}: {properties}")
    except Exception as e:
        logger.warning(f"Telemetry emission failed for {event}: {e}")
