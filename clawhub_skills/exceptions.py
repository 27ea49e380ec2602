"""Custom exceptions for ClawHub Skills."""


class ClawHubError(Exception):
    """Base exception for ClawHub Skills."""

    pass


class ConfigurationError(ClawHubError):
    """Configuration-related errors."""

    pass


class InvalidSlugError(ClawHubError, ValueError):
    """Malformed skill identifier, rejected before any I/O."""

    def __init__(self, slug: object):
        super().__init__(f"Invalid skill slug: {slug!r}")
        self.slug = slug


class RemoteError(ClawHubError):
    """Registry returned a non-2xx status or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class SkillNotFoundError(ClawHubError):
    """Skill does not exist on the registry."""

    def __init__(self, slug: str):
        super().__init__(f'Skill "{slug}" not found')
        self.slug = slug


class OversizedPackageError(ClawHubError):
    """Downloaded package exceeds the size ceiling."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Package too large ({size} bytes, max {limit})")
        self.size = size
        self.limit = limit


class ExtractionRejectedError(ClawHubError):
    """Archive contents were refused before anything was written."""

    def __init__(self, member: str, reason: str):
        super().__init__(f"Archive member {member!r} rejected: {reason}")
        self.member = member
        self.reason = reason


class LocalIOError(ClawHubError):
    """Filesystem failure reading or writing skill or lock data."""

    def __init__(self, path: object, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
