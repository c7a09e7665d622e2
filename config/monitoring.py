# config/monitoring.py

import os

from prometheus_client import Counter, Histogram


class MonitoringConfig:
    """Monitoring and logging configuration"""

    MONITORING_ENABLED = os.environ.get("MONITORING_ENABLED", "false").lower() == "true"
    METRICS_ENDPOINT = os.environ.get("METRICS_ENDPOINT", "/metrics")

    # Logging Configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")  # 'json' or 'text'
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    LOG_FILE_NAME = os.environ.get("LOG_FILE_NAME", "roster.log")
    LOG_FILE_MAX_BYTES = int(os.environ.get("LOG_FILE_MAX_BYTES", 10485760))  # 10MB
    LOG_FILE_BACKUP_COUNT = int(os.environ.get("LOG_FILE_BACKUP_COUNT", 10))

    ENABLE_FILE_LOGGING = os.environ.get("ENABLE_FILE_LOGGING", "true").lower() == "true"
    ENABLE_CONSOLE_LOGGING = os.environ.get("ENABLE_CONSOLE_LOGGING", "true").lower() == "true"

    APP_NAME = os.environ.get("APP_NAME", "Roster")
    APP_VERSION = os.environ.get("APP_VERSION", "0.1.0")


class DevelopmentMonitoringConfig(MonitoringConfig):
    """Development-specific monitoring configuration"""

    LOG_LEVEL = "DEBUG"
    LOG_FORMAT = "text"
    ENABLE_FILE_LOGGING = True
    ENABLE_CONSOLE_LOGGING = True


class ProductionMonitoringConfig(MonitoringConfig):
    """Production-specific monitoring configuration"""

    LOG_LEVEL = "INFO"
    LOG_FORMAT = "json"
    ENABLE_FILE_LOGGING = True
    ENABLE_CONSOLE_LOGGING = False  # Usually handled by container orchestration


class TestingMonitoringConfig(MonitoringConfig):
    """Testing-specific monitoring configuration"""

    MONITORING_ENABLED = False
    LOG_LEVEL = "WARNING"
    LOG_FORMAT = "text"
    ENABLE_FILE_LOGGING = False
    ENABLE_CONSOLE_LOGGING = False


class ImporterMonitoring:
    """Prometheus metric helpers for the staff read endpoints."""

    STAFF_LIST_COUNTER = Counter(
        "roster_staff_list_requests_total",
        "Total staff list API requests.",
        labelnames=("status",),
    )
    STAFF_LIST_LATENCY = Histogram(
        "roster_staff_list_request_seconds",
        "Latency histogram for the staff list API.",
        labelnames=("status",),
        buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
    )
    STAFF_LIST_RESULT_SIZE = Histogram(
        "roster_staff_list_result_size",
        "Number of staff records returned by the list endpoint.",
        labelnames=("status",),
        buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500),
    )
    STAFF_DETAIL_COUNTER = Counter(
        "roster_staff_detail_requests_total",
        "Total staff detail API requests.",
        labelnames=("status",),
    )

    @classmethod
    def record_staff_list(cls, *, duration_seconds: float, status: str, result_count: int):
        cls.STAFF_LIST_COUNTER.labels(status=status).inc()
        cls.STAFF_LIST_LATENCY.labels(status=status).observe(max(duration_seconds, 0.0))
        cls.STAFF_LIST_RESULT_SIZE.labels(status=status).observe(float(max(result_count, 0)))

    @classmethod
    def record_staff_detail(cls, *, status: str):
        cls.STAFF_DETAIL_COUNTER.labels(status=status).inc()
