"""Prometheus metrics for monitoring Song A Day"""

import logging
import time
from prometheus_client import Counter, Histogram, Gauge, start_http_server
from typing import Optional


logger = logging.getLogger(__name__)


# Metrics instances (initialized once)
_metrics_initialized = False
_metrics_server_started = False

# Counters
cycles_total = None
plays_merged_total = None
playlist_batches_total = None
api_calls_total = None

# Histograms
api_latency_seconds = None

# Gauges
active_schedulers = None
last_cycle_timestamp = None


def init_metrics() -> None:
    """Initialize Prometheus metrics.

    This should be called once at application startup. Until then every
    record_* helper is a no-op.
    """
    global _metrics_initialized
    global cycles_total, plays_merged_total, playlist_batches_total, api_calls_total
    global api_latency_seconds, active_schedulers, last_cycle_timestamp

    if _metrics_initialized:
        return

    logger.info("Initializing Prometheus metrics")

    cycles_total = Counter(
        'songaday_cycles_total',
        'Refresh cycles by outcome',
        ['outcome']
    )

    plays_merged_total = Counter(
        'songaday_plays_merged_total',
        'Play events merged into user aggregates'
    )

    playlist_batches_total = Counter(
        'songaday_playlist_batches_total',
        'Playlist write batches sent',
        ['kind']
    )

    api_calls_total = Counter(
        'songaday_api_calls_total',
        'Total number of API calls',
        ['service', 'status']
    )

    api_latency_seconds = Histogram(
        'songaday_api_latency_seconds',
        'API call latency in seconds',
        ['service'],
        buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
    )

    active_schedulers = Gauge(
        'songaday_active_schedulers',
        'Users with an active refresh schedule'
    )

    last_cycle_timestamp = Gauge(
        'songaday_last_cycle_timestamp',
        'Timestamp of the last completed cycle'
    )

    _metrics_initialized = True
    logger.info("Prometheus metrics initialized")


def start_metrics_server(port: int = 9090) -> bool:
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)

    Returns:
        True if server started successfully
    """
    global _metrics_server_started

    if _metrics_server_started:
        logger.warning("Metrics server already started")
        return True

    try:
        start_http_server(port)
        _metrics_server_started = True
        logger.info(f"Prometheus metrics server started on port {port}")
        return True
    except OSError as e:
        logger.error(f"Failed to start metrics server: {e}")
        return False


def setup_metrics(enabled: bool = True, port: int = 9090) -> bool:
    """Setup and optionally start metrics server.

    Args:
        enabled: Whether to collect metrics and start the server
        port: Port for metrics server

    Returns:
        True if the server is running
    """
    if not enabled:
        logger.info("Metrics collection disabled")
        return False

    init_metrics()
    return start_metrics_server(port)


def record_cycle(outcome: str) -> None:
    """Record a finished refresh cycle"""
    if cycles_total:
        cycles_total.labels(outcome=outcome).inc()
    if last_cycle_timestamp:
        last_cycle_timestamp.set(time.time())


def record_plays_merged(count: int) -> None:
    if plays_merged_total and count:
        plays_merged_total.inc(count)


def record_playlist_batch(kind: str) -> None:
    """Record a playlist write ('replace' or 'append')"""
    if playlist_batches_total:
        playlist_batches_total.labels(kind=kind).inc()


def record_api_call(service: str, status: str, duration: Optional[float] = None) -> None:
    """Record API call.

    Args:
        service: Name of the service (spotify, spotify_accounts, webhook)
        status: Status of call (success, error)
        duration: Optional duration in seconds
    """
    if api_calls_total:
        api_calls_total.labels(service=service, status=status).inc()

    if duration is not None and api_latency_seconds:
        api_latency_seconds.labels(service=service).observe(duration)


def set_active_schedulers(count: int) -> None:
    if active_schedulers:
        active_schedulers.set(count)
