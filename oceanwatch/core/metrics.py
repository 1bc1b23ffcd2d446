"""
Prometheus metrics for oceanwatch.

Metrics exposed:
- Yoweb fetch counters and latency
- Scrape item and job counters
- Market order import gauges
- Scheduler status gauge
"""
from prometheus_client import Counter, Gauge, Histogram

# Fetch Metrics
fetch_requests_total = Counter(
    "oceanwatch_fetch_requests_total",
    "Total yoweb requests",
    ["host", "outcome"]  # outcome: success, http_error, transport_error
)

fetch_duration_seconds = Histogram(
    "oceanwatch_fetch_duration_seconds",
    "Yoweb request latency in seconds (excluding rate-limit wait)",
    ["host"]
)

# Scrape Metrics
scrape_items_processed_total = Counter(
    "oceanwatch_scrape_items_processed_total",
    "Entities reconciled successfully",
    ["ocean", "stage"]
)

scrape_items_failed_total = Counter(
    "oceanwatch_scrape_items_failed_total",
    "Entities that failed to fetch, parse or reconcile",
    ["ocean", "stage"]
)

scrape_jobs_total = Counter(
    "oceanwatch_scrape_jobs_total",
    "Finished scrape jobs",
    ["ocean", "job_type", "status"]
)

scrape_jobs_running = Gauge(
    "oceanwatch_scrape_jobs_running",
    "Scrape jobs currently running"
)

# Market Metrics
market_orders_imported = Gauge(
    "oceanwatch_market_orders_imported",
    "Market orders stored by the last import",
    ["ocean"]
)

market_csv_rows_skipped_total = Counter(
    "oceanwatch_market_csv_rows_skipped_total",
    "Malformed market CSV rows skipped",
    ["ocean"]
)

# Scheduler Metrics
scheduler_running = Gauge(
    "oceanwatch_scheduler_running",
    "Whether the scrape scheduler is running (1) or stopped (0)"
)
