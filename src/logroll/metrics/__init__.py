from .metrics import SinkMetrics, SinkMetricsCollector

__all__ = ["SinkMetrics", "SinkMetricsCollector"]
