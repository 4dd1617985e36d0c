"""
URL classification rule chain.

Decides whether a submitted URL may be dispatched, and as which content type.
Checks record their outcome in a shared history so that a check required by
several others only runs once and callers can see why a URL was rejected.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from urllib.parse import SplitResult, urlsplit

from ingestq.constants import ContentType


class Check(StrEnum):
    """Named checks in the rule chain."""

    IS_ACCEPTABLE = "is_acceptable"
    IS_PLAIN = "is_plain"
    IS_TWITTER_POST = "is_twitter_post"


REASON_PASS = "pass"
REASON_PARSE_FAILED = "URL.canParse failed"
REASON_MUST_BE_HTTPS = "url protocol must be https"
REASON_CONTAINS_DOMAIN_CREDS = "url contains a username or password before the domain"
REASON_SPECIFIES_PORT = "url manually specifies a port"
REASON_REQUIREMENT_NOT_MET = "required url check did not pass"
REASON_CONTAINS_FRAGMENT = "url contains fragment identifier"
REASON_CONTAINS_SEARCH = "url contains search parameters"
REASON_DOMAIN_NOT_TWITTER = "url domain is not 'x.com'"
REASON_NOT_TWITTER_POST_PATH = "url path must be of the format '/{user}/status/{id}'"
REASON_BAD_TWITTER_STATUS_ID = "status id in url contains an invalid character"
REASON_BAD_TWITTER_USERNAME = "username in url contains an invalid character"

HTTPS_DEFAULT_PORT = 443
TWITTER_DOMAIN = "x.com"

_STATUS_ID = re.compile(r"[0-9]+")
_USERNAME = re.compile(r"[A-Za-z0-9_]+")


@dataclass
class CheckResult:
    """Outcome of a single check."""

    passed: bool
    reason: str


CheckHistory = dict[Check, CheckResult]
CheckFn = Callable[[CheckHistory], bool]


@dataclass
class InspectUrlResult:
    """
    Result of classifying a URL.

    `content_type` is None when the URL should not be dispatched.
    """

    checks: CheckHistory = field(default_factory=dict)
    content_type: ContentType | None = None

    @property
    def accepted(self) -> bool:
        return self.content_type is not None


def _record(check: Check, passed: bool, reason: str, checks: CheckHistory) -> bool:
    checks[check] = CheckResult(passed=passed, reason=reason)
    return passed


def _parse(url_raw: str) -> SplitResult | None:
    if any(c.isspace() for c in url_raw):
        return None
    try:
        url = urlsplit(url_raw)
        # Accessing the port validates it.
        url.port
    except ValueError:
        return None
    if not url.scheme or not url.hostname:
        return None
    return url


def is_acceptable_url(url_raw: str, checks: CheckHistory) -> SplitResult | None:
    """
    Check that a URL parses and is safe to fetch.

    Returns:
        The parsed URL, or None if it failed the check.
    """
    def fail(reason: str) -> None:
        _record(Check.IS_ACCEPTABLE, False, reason, checks)
        return None

    url = _parse(url_raw)
    if url is None:
        return fail(REASON_PARSE_FAILED)

    if url.scheme != "https":
        return fail(REASON_MUST_BE_HTTPS)

    if url.username is not None or url.password is not None:
        return fail(REASON_CONTAINS_DOMAIN_CREDS)

    # An explicit default port is dropped by URL normalisation, so allow it.
    if url.port is not None and url.port != HTTPS_DEFAULT_PORT:
        return fail(REASON_SPECIFIES_PORT)

    _record(Check.IS_ACCEPTABLE, True, REASON_PASS, checks)
    return url


def _requires_checks(checks: CheckHistory, required: list[tuple[Check, CheckFn]]) -> bool:
    for check, check_fn in required:
        outcome = checks.get(check)
        if outcome is None:
            check_fn(checks)
            outcome = checks.get(check)
            if outcome is None:
                raise RuntimeError(
                    f"BUG: url check function did not populate check history with {check}"
                )
        if not outcome.passed:
            return False
    return True


def _requires_is_acceptable(url: SplitResult, checks: CheckHistory) -> bool:
    return _requires_checks(
        checks,
        [(Check.IS_ACCEPTABLE, lambda c: is_acceptable_url(url.geturl(), c) is not None)],
    )


def is_plain(url: SplitResult, checks: CheckHistory) -> bool:
    """Check that a URL carries no fragment or query string."""
    def fail(reason: str) -> bool:
        return _record(Check.IS_PLAIN, False, reason, checks)

    if not _requires_is_acceptable(url, checks):
        return fail(REASON_REQUIREMENT_NOT_MET)

    if url.fragment:
        return fail(REASON_CONTAINS_FRAGMENT)

    if url.query:
        return fail(REASON_CONTAINS_SEARCH)

    return _record(Check.IS_PLAIN, True, REASON_PASS, checks)


def is_twitter_post(url: SplitResult, checks: CheckHistory) -> bool:
    """Check that a URL points at a single post: https://x.com/{user}/status/{id}."""
    def fail(reason: str) -> bool:
        return _record(Check.IS_TWITTER_POST, False, reason, checks)

    requirements_met = _requires_checks(
        checks, [(Check.IS_PLAIN, lambda c: is_plain(url, c))]
    ) and _requires_is_acceptable(url, checks)
    if not requirements_met:
        return fail(REASON_REQUIREMENT_NOT_MET)

    if url.hostname != TWITTER_DOMAIN:
        return fail(REASON_DOMAIN_NOT_TWITTER)

    # The path starts with a slash, so a post path splits into exactly
    # ["", user, "status", id].
    parts = url.path.split("/")
    if len(parts) != 4 or parts[0] != "":
        return fail(REASON_NOT_TWITTER_POST_PATH)

    _, username, status, status_id = parts
    if status != "status" or not status_id or not username:
        return fail(REASON_NOT_TWITTER_POST_PATH)

    if not _STATUS_ID.fullmatch(status_id):
        return fail(REASON_BAD_TWITTER_STATUS_ID)

    if not _USERNAME.fullmatch(username):
        return fail(REASON_BAD_TWITTER_USERNAME)

    return _record(Check.IS_TWITTER_POST, True, REASON_PASS, checks)


# Tried in order; the first passing check decides the content type.
CONTENT_CHECKS: list[tuple[ContentType, Callable[[SplitResult, CheckHistory], bool]]] = [
    (ContentType.TWITTER_POST, is_twitter_post),
]


def inspect_url(url_raw: str) -> InspectUrlResult:
    """
    Classify a raw URL.

    Args:
        url_raw: URL as submitted by the client.

    Returns:
        InspectUrlResult with the check history and, if the URL may be
        dispatched, its content type.
    """
    checks: CheckHistory = {}

    url = is_acceptable_url(url_raw, checks)
    if url is None:
        return InspectUrlResult(checks=checks)

    for content_type, check_fn in CONTENT_CHECKS:
        if check_fn(url, checks):
            return InspectUrlResult(checks=checks, content_type=content_type)

    return InspectUrlResult(checks=checks)
