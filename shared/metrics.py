"""
Shared metrics configuration for PG Access Layer.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for services."""
    
    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Each collector owns a registry so several services can live in one process
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
        
        self._metrics["business_events_total"] = Counter(
            "business_events_total",
            "Total business events",
            ["event_type", "service"],
            registry=self.registry
        )
        
        if self.service_name == "entitlements":
            self._setup_entitlements_metrics()
        elif self.service_name == "pricing":
            self._setup_pricing_metrics()
    
    def _setup_entitlements_metrics(self):
        """Set up entitlements-specific metrics."""
        self._metrics["entitlement_checks_total"] = Counter(
            "entitlement_checks_total",
            "Total entitlement checks",
            ["check", "decision"],
            registry=self.registry
        )
        
        self._metrics["entitlement_check_duration_seconds"] = Histogram(
            "entitlement_check_duration_seconds",
            "Entitlement check duration in seconds",
            ["check"],
            registry=self.registry
        )
    
    def _setup_pricing_metrics(self):
        """Set up pricing-specific metrics."""
        self._metrics["pricing_calculations_total"] = Counter(
            "pricing_calculations_total",
            "Total pricing calculations",
            ["operation", "outcome"],
            registry=self.registry
        )
        
        self._metrics["pricing_calculation_duration_seconds"] = Histogram(
            "pricing_calculation_duration_seconds",
            "Pricing calculation duration in seconds",
            ["operation"],
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
    
    def record_business_event(self, event_type: str, service: Optional[str] = None):
        """Record business event metrics."""
        service_name = service or self.service_name
        self._metrics["business_events_total"].labels(event_type=event_type, service=service_name).inc()
    
    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(**labels).observe(duration)
    
    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
