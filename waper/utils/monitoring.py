"""
Monitoring and metrics collection for the crawler.
"""

import time
import logging
from typing import Dict, Optional, Any

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
from prometheus_client import start_http_server


class MetricsCollector:
    """Owns the Prometheus metrics of one crawl, on a private registry."""

    def __init__(self, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.prometheus_port = prometheus_port
        self.registry = CollectorRegistry()

        self.urls_fetched = Counter(
            'waper_urls_fetched_total',
            'Total number of pages fetched successfully',
            registry=self.registry
        )
        self.errors = Counter(
            'waper_errors_total',
            'Total number of crawl errors',
            ['error_type'],
            registry=self.registry
        )
        self.links_admitted = Counter(
            'waper_links_admitted_total',
            'Total number of URLs admitted to the frontier',
            registry=self.registry
        )
        self.fetch_time = Histogram(
            'waper_fetch_time_seconds',
            'Time spent fetching a page',
            registry=self.registry
        )
        self.queue_size = Gauge(
            'waper_queue_size',
            'Number of admitted URLs waiting to be fetched',
            registry=self.registry
        )
        self.in_flight = Gauge(
            'waper_in_flight_tasks',
            'Number of fetch tasks currently running',
            registry=self.registry
        )
        self.concurrency_limit = Gauge(
            'waper_concurrency_limit',
            'Concurrency limit currently in effect',
            registry=self.registry
        )

    def start_prometheus_server(self):
        """Start Prometheus metrics HTTP server."""
        start_http_server(self.prometheus_port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")

    def export_text(self) -> bytes:
        """Render all metrics in the Prometheus exposition format."""
        return generate_latest(self.registry)

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        return self.registry.get_sample_value(name, labels or {})


class CrawlerMonitor:
    """High-level monitoring interface for the crawler."""

    def __init__(self, metrics_collector: MetricsCollector):
        self.metrics = metrics_collector
        self.start_time = time.time()

    def record_page_fetched(self, url: str, fetch_time: float):
        self.metrics.urls_fetched.inc()
        self.metrics.fetch_time.observe(fetch_time)

    def record_error(self, error_type: str):
        self.metrics.errors.labels(error_type=error_type).inc()

    def record_links_admitted(self, count: int):
        self.metrics.links_admitted.inc(count)

    def update_scheduler_state(self, queue_size: int, in_flight: int, concurrency_limit: int):
        self.metrics.queue_size.set(queue_size)
        self.metrics.in_flight.set(in_flight)
        self.metrics.concurrency_limit.set(concurrency_limit)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the main counters."""
        runtime = time.time() - self.start_time
        fetched = self.metrics.sample('waper_urls_fetched_total') or 0
        return {
            'runtime_seconds': runtime,
            'urls_fetched': fetched,
            'links_admitted': self.metrics.sample('waper_links_admitted_total') or 0,
            'pages_per_minute': fetched / (runtime / 60) if runtime > 0 else 0,
        }


def initialize_monitoring(enable_prometheus: bool = False, prometheus_port: int = 8000) -> CrawlerMonitor:
    """Build a monitor, and start the exporter when enabled."""
    metrics_collector = MetricsCollector(prometheus_port)
    if enable_prometheus:
        metrics_collector.start_prometheus_server()
    return CrawlerMonitor(metrics_collector)
