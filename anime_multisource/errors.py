#!/usr/bin/env python3
"""
Error taxonomy shared by the source clients, resolver and service

Source clients raise these internally and convert them to None / [] at their
public boundary (logged). Only MappingRefreshError, ResolutionNotFound,
ConfigurationInvalid and RequestCancelled ever reach a caller of the service.
"""


class AnimeMultiSourceError(Exception):
    """Base class for every error raised by this package"""


class SourceError(AnimeMultiSourceError):
    """A single catalog call failed"""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class NotFound(SourceError):
    """The catalog has no such entry (never cached as a negative result)"""


class RateLimited(SourceError):
    """The catalog throttled us; retry_after is seconds if the response said so"""

    def __init__(self, source: str, message: str, retry_after=None):
        super().__init__(source, message)
        self.retry_after = retry_after


class Banned(RateLimited):
    """Requests are paused until the ban backoff elapses"""


class TransientFailure(SourceError):
    """Network error, timeout or unexpected status"""


class MalformedResponse(SourceError):
    """Payload could not be parsed"""


class ConfigurationInvalid(AnimeMultiSourceError):
    """Unusable configuration value or identifier"""


class MappingRefreshError(AnimeMultiSourceError):
    """The cross-reference table could not be downloaded or parsed"""


class ResolutionNotFound(AnimeMultiSourceError):
    """No cross-reference row matches the local hint"""


class RequestCancelled(AnimeMultiSourceError):
    """The caller abandoned the request while it was waiting"""
