"""
Shared metrics configuration for the Transcendence vault layer.
"""

from typing import Dict, Any, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry unless one is passed in, so several
    services (or test apps) can live in one process without colliding.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        # Client-side metrics, present in every service that loads its config from the gateway
        self._metrics["config_fetch_attempts_total"] = Counter(
            "config_fetch_attempts_total",
            "Configuration section fetch attempts",
            ["section", "outcome"],
            registry=self.registry
        )

        self._metrics["config_section_state"] = Gauge(
            "config_section_state",
            "Section state: 0 idle, 1 retrying, 2 applied, 3 degraded, 4 failed",
            ["section"],
            registry=self.registry
        )

        if self.service_name == "vault-service":
            self._setup_vault_metrics()

    def _setup_vault_metrics(self):
        """Set up gateway-specific metrics."""
        self._metrics["backend_operations_total"] = Counter(
            "backend_operations_total",
            "Backing store operations",
            ["operation", "outcome"],
            registry=self.registry
        )

        self._metrics["backend_operation_duration_seconds"] = Histogram(
            "backend_operation_duration_seconds",
            "Backing store operation duration in seconds",
            ["operation"],
            registry=self.registry
        )

        self._metrics["seed_items_total"] = Counter(
            "seed_items_total",
            "Bootstrap seeding outcomes",
            ["kind", "outcome"],
            registry=self.registry
        )

        self._metrics["rotations_total"] = Counter(
            "rotations_total",
            "Secret rotations",
            ["path", "outcome"],
            registry=self.registry
        )

        self._metrics["tokens_issued_total"] = Counter(
            "tokens_issued_total",
            "Service tokens issued",
            ["service"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).set(value)

    def sample(self, metric_name: str, **labels) -> Optional[float]:
        """Read back the current value of a sample from the registry."""
        return self.registry.get_sample_value(metric_name, labels)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
