"""
Prometheus metrics collection for Postmedia.

This module provides:
- Validation metrics (verdicts, errors by type)
- Probe metrics (latency, failures)
- Transform session metrics (active sessions, exports, output sizes)
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from ..core.config import settings


class MetricsCollector:
    """Central metrics collector for the media engine."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize metrics collector."""
        self.registry = registry or CollectorRegistry()
        self._setup_metrics()

    def _setup_metrics(self):
        """Initialize all engine metrics."""

        self.app_info = Info(
            'postmedia_info',
            'Application information',
            registry=self.registry
        )
        self.app_info.info({
            'version': settings.app.version,
            'environment': settings.app.environment,
            'name': settings.app.app_name
        })

        # Validation metrics
        self.media_validations_total = Counter(
            'postmedia_media_validations_total',
            'Total media validations',
            ['media_type', 'is_valid'],
            registry=self.registry
        )

        self.media_validation_errors_total = Counter(
            'postmedia_media_validation_errors_total',
            'Validation errors by taxonomy type',
            ['media_type', 'error_type'],
            registry=self.registry
        )

        self.media_validation_duration = Histogram(
            'postmedia_media_validation_duration_seconds',
            'Media validation duration in seconds',
            ['media_type'],
            buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry
        )

        self.auto_crop_suggestions_total = Counter(
            'postmedia_auto_crop_suggestions_total',
            'Auto-crop suggestions produced',
            ['aspect_ratio'],
            registry=self.registry
        )

        # Probe metrics
        self.media_probe_duration = Histogram(
            'postmedia_media_probe_duration_seconds',
            'Media probe duration in seconds',
            ['media_type'],
            buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
            registry=self.registry
        )

        self.media_probe_failures_total = Counter(
            'postmedia_media_probe_failures_total',
            'Media probes that failed to decode',
            ['media_type'],
            registry=self.registry
        )

        # Transform session metrics
        self.active_transform_sessions = Gauge(
            'postmedia_active_transform_sessions',
            'Transform sessions currently open',
            registry=self.registry
        )

        self.exports_total = Counter(
            'postmedia_exports_total',
            'Transform session exports',
            ['status'],
            registry=self.registry
        )

        self.export_duration = Histogram(
            'postmedia_export_duration_seconds',
            'Export (render + encode) duration in seconds',
            buckets=[0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry
        )

        self.export_size = Histogram(
            'postmedia_export_size_bytes',
            'Exported raster sizes in bytes',
            buckets=[10240, 102400, 1048576, 5242880, 10485760, 52428800],
            registry=self.registry
        )

    # Validation tracking methods
    def track_media_validation(self, media_type: str, is_valid: bool,
                               error_types: list[str], duration: float):
        """Track a validation verdict."""
        self.media_validations_total.labels(
            media_type=media_type, is_valid=str(is_valid).lower()
        ).inc()

        for error_type in error_types:
            self.media_validation_errors_total.labels(
                media_type=media_type, error_type=error_type
            ).inc()

        self.media_validation_duration.labels(media_type=media_type).observe(duration)

    def track_auto_crop_suggestion(self, aspect_ratio: str):
        """Track an auto-crop suggestion."""
        self.auto_crop_suggestions_total.labels(aspect_ratio=aspect_ratio).inc()

    # Probe tracking methods
    def track_media_probe(self, media_type: str, success: bool, duration: float):
        """Track a probe."""
        self.media_probe_duration.labels(media_type=media_type).observe(duration)
        if not success:
            self.media_probe_failures_total.labels(media_type=media_type).inc()

    # Session tracking methods
    def session_opened(self):
        """Track a transform session opening."""
        self.active_transform_sessions.inc()

    def session_closed(self):
        """Track a transform session closing."""
        self.active_transform_sessions.dec()

    def track_export(self, success: bool, duration: float, file_size: int = 0):
        """Track an export attempt."""
        self.exports_total.labels(status="success" if success else "failure").inc()
        self.export_duration.observe(duration)

        if file_size > 0:
            self.export_size.observe(file_size)

    def get_metrics(self) -> bytes:
        """Get metrics in Prometheus format."""
        return generate_latest(self.registry)


# Global metrics collector
metrics = MetricsCollector()
