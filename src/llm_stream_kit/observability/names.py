# src/llm_stream_kit/observability/names.py

"""Standard metric names for llm-stream-kit observability.

Use these constants instead of hardcoded strings for consistency
across the codebase.

Note: All duration metrics are in milliseconds by convention.
Units are handled by the metrics backend (e.g., converted to seconds in Prometheus).
"""

# ============================================================================
# Stream Registry Metrics
# ============================================================================

# Duration
STREAM_DURATION = "stream_duration"

# Counters
STREAMS_STARTED_TOTAL = "streams_started_total"
STREAMS_COMPLETED_TOTAL = "streams_completed_total"
STREAMS_FAILED_TOTAL = "streams_failed_total"
STREAMS_CANCELLED_TOTAL = "streams_cancelled_total"

# Gauges
STREAMS_ACTIVE = "streams_active"


# ============================================================================
# Aggregation Metrics
# ============================================================================

# Counters (units accumulate over the life of a stream)
STREAM_UNITS_EMITTED = "stream_units_emitted"

# Gauges
STREAM_THROUGHPUT = "stream_throughput"


# ============================================================================
# Throttle Metrics
# ============================================================================

# Counters
STREAM_FLUSHES_TOTAL = "stream_flushes_total"


# ============================================================================
# Transport Metrics
# ============================================================================

# Duration
TRANSPORT_FIRST_CHUNK_LATENCY = "transport_first_chunk_latency"

# Counters
TRANSPORT_REQUESTS_TOTAL = "transport_requests_total"
TRANSPORT_CHUNKS_TOTAL = "transport_chunks_total"
TRANSPORT_ERRORS_TOTAL = "transport_errors_total"


# ============================================================================
# Resilience Metrics
# ============================================================================

# Counters
RETRY_ATTEMPTS_TOTAL = "retry_attempts_total"
CIRCUIT_REJECTIONS_TOTAL = "circuit_rejections_total"
