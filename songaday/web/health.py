"""Health reporting for Song A Day"""

import logging
import os
from typing import Dict, Any
from pathlib import Path
import json
from datetime import datetime, timezone


logger = logging.getLogger(__name__)


def write_health_status(data_dir: Path, status: str, message: str = "") -> None:
    """Write health status for monitoring.

    Args:
        data_dir: Data directory where health.json should be written
        status: Status string (e.g., 'running', 'healthy', 'stopped')
        message: Optional message
    """
    health_file = data_dir / "health.json"
    try:
        with open(health_file, 'w') as f:
            json.dump({
                "status": status,
                "message": message,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "pid": os.getpid()
            }, f, indent=2)
    except OSError as e:
        logger.warning("Could not write health status: %s", str(e))


def get_scheduler_stats(engine) -> Dict[str, Any]:
    """Scheduler and storage counts for /api/health.

    Args:
        engine: SongADayEngine

    Returns:
        Dict with active/stopped schedule counts and stored users
    """
    registry = engine.registry
    return {
        "year": engine.config.curation.year,
        "active_schedules": registry.active_count(),
        "stopped_schedules": registry.stopped_total,
        "stored_users": engine.store.count(),
    }
