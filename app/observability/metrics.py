from prometheus_client import Counter, Histogram

# -------------------------
# Gateway metrics
# -------------------------

ANALYZE_REQUESTS_TOTAL = Counter(
    "analyze_requests_total",
    "Total analyze requests by terminal outcome",
    ["result"],
)

UPSTREAM_ATTEMPTS_TOTAL = Counter(
    "upstream_attempts_total",
    "Upstream chat-completion attempts by HTTP status (or transport_error)",
    ["status"],
)

UPSTREAM_CALL_SECONDS = Histogram(
    "upstream_call_seconds",
    "Latency of a single upstream chat-completion attempt in seconds",
)

# -------------------------
# Narration metrics
# -------------------------

TTS_REQUESTS_TOTAL = Counter(
    "tts_requests_total",
    "Total text-to-speech forwarding requests",
    ["result"],
)

NARRATION_SCRIPT_CHARS = Histogram(
    "narration_script_chars",
    "Length of condensed narration scripts in characters",
    buckets=(250, 500, 1000, 2000, 3000, 4000),
)
