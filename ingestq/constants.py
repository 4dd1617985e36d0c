"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class ContentType(StrEnum):
    """Kinds of content the ingestion endpoint knows how to dispatch."""

    TWITTER_POST = "twitter_post"


# Reserved storage target for a queue that lives only as long as the process
MEMORY_FILENAME = ":memory:"

# Error names (categories) carried by SimpleError.name
ERROR_SIMPLE = "SimpleError"
ERROR_BUG = "Bug"
ERROR_QUEUE_CONNECT = "QueueConnectError"
ERROR_QUEUE_DISCONNECT = "QueueDisconnectError"
ERROR_MESSAGE_MUST_BE_JSON = "MessageMustBeJson"
ERROR_SEND_FAILURE = "SendFailure"
ERROR_RECEIVE_FAILURE = "ReceiveFailure"
ERROR_PUBLISH_EXHAUSTED = "PublishRetriesExhausted"

# Error names that are never retried by the publisher
NON_RETRYABLE_ERRORS = frozenset({ERROR_MESSAGE_MUST_BE_JSON, ERROR_BUG})

# Structured log keys
LOG_KEY_ERROR = "err"
LOG_KEY_PAYLOAD = "payload"
LOG_KEY_ATTEMPT = "attempt"
LOG_KEY_REQUEST_ID = "request_id"
LOG_KEY_WORKER_ID = "worker_id"

# API constants
REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_UNKNOWN_CONTENT_TYPE = "unable to dispatch URL, unknown contenttype"

# Metrics names
METRIC_MESSAGES_SENT = "queue_messages_sent_total"
METRIC_MESSAGES_RECEIVED = "queue_messages_received_total"
METRIC_PUBLISH_ATTEMPTS = "queue_publish_attempts_total"
METRIC_PUBLISH_FAILURES = "queue_publish_failures_total"
METRIC_RECEIVE_FAILURES = "queue_receive_failures_total"
METRIC_HANDLE_DURATION = "queue_message_handle_seconds"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_PUBLISH = "publish_message"
SPAN_HANDLE_MESSAGE = "handle_message"
