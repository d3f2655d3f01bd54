"""Error hierarchy shared by the pipeline and the HTTP layer."""

from __future__ import annotations


class DiscussionGuideError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500


class InvalidInput(DiscussionGuideError):
    """The request parameters cannot be processed as given."""

    status_code = 400


class RateLimited(DiscussionGuideError):
    """The client exhausted its request budget for the current window."""

    status_code = 429


class BackendUnavailable(DiscussionGuideError):
    """The generation backend failed to answer."""

    status_code = 503


class UnparsableOutput(DiscussionGuideError):
    """No question list could be recovered from backend output."""

    status_code = 502


class GenerationFailed(DiscussionGuideError):
    """No chunk produced usable questions, even after the fallback attempt."""

    status_code = 500
