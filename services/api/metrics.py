"""Prometheus metrics for the invoice API.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Extraction outcomes
- PDF render duration
- Email delivery outcomes

Rate limiter rejections and notification outcomes are counted where they
happen (services.ratelimit.limiter, services.pipeline.pipeline).

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Extraction metrics
extraction_requests_total = Counter(
    "extraction_requests_total",
    "Total free-text extraction requests",
    ["status"],  # success, low_confidence, rejected, failed
)

extraction_duration_seconds = Histogram(
    "extraction_duration_seconds",
    "Extraction duration in seconds",
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 30.0),
)

# PDF metrics
pdf_render_duration_seconds = Histogram(
    "pdf_render_duration_seconds",
    "PDF render duration in seconds",
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

# Email metrics
emails_sent_total = Counter(
    "emails_sent_total",
    "Invoice emails by outcome",
    ["status"],  # success, failed
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
