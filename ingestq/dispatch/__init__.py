"""
Dispatch module.
Classifies incoming URLs and publishes accepted ones to the queue.
"""

from ingestq.dispatch.publisher import may_retry, publish
from ingestq.dispatch.urls import Check, CheckResult, InspectUrlResult, inspect_url

__all__ = [
    "publish",
    "may_retry",
    "inspect_url",
    "Check",
    "CheckResult",
    "InspectUrlResult",
]
