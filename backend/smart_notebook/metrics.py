from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Core counters / histograms
ANALYSIS_PASSES = Counter(
    "smart_notebook_analysis_passes_total",
    "Analysis passes by request mode and outcome",
    ["mode", "outcome"],
)

ANNOTATIONS_RENDERED = Counter(
    "smart_notebook_annotations_rendered_total",
    "Annotations placed on the canvas",
    ["annotation_type"],
)

PLACEMENTS_SUPPRESSED = Counter(
    "smart_notebook_placements_suppressed_total",
    "Annotation placements skipped because a marker already occupies the zone",
)

BACKEND_LATENCY = Histogram(
    "smart_notebook_backend_latency_seconds",
    "Duration of calls to the tutoring backend",
    ["operation"],
)


def metrics_endpoint(request=None):
    """FastAPI route handler for /metrics (scraped by Prometheus)."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
