from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

# Keep metrics module-level singletons
jobs_submitted_total = Counter("jobs_submitted_total", "Total write requests routed to the queue")
jobs_enqueued_total = Counter("jobs_enqueued_total", "Jobs enqueued into the ready set", ["type"])
error_count = Counter("error_count", "Total errors encountered by the control plane")
enqueue_latency_seconds = Histogram("enqueue_latency_seconds", "Time to enqueue a job")
request_latency_seconds = Histogram("request_latency_seconds", "HTTP request latency seconds")

# Worker / execution metrics
jobs_executed_total = Counter(
    "jobs_executed_total", "Total jobs executed by workers", ["type", "outcome"]
)
jobs_retried_total = Counter("jobs_retried_total", "Failed jobs scheduled for another attempt")
jobs_failed_total = Counter("jobs_failed_total", "Jobs parked as terminally failed")
jobs_requeued_stalled_total = Counter(
    "jobs_requeued_stalled_total", "Claims that expired and were put back on the ready set"
)
execution_latency_seconds = Histogram("execution_latency_seconds", "Job execution latency seconds")


def metrics_response():
    # Return prometheus metrics as a Response
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
