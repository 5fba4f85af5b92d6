"""Error taxonomy for user cycles

Every error here is fatal for one user's cycle only: the scheduler stops that
user and asks them to authorise again. None of them should take the process down.
"""


class SongADayError(Exception):
    """Base class for cycle-fatal errors."""

    reason = "error"


class FetchError(SongADayError):
    """Listening history could not be fetched or decoded."""

    reason = "fetch_failed"


class AuthError(SongADayError):
    """Credentials could not be exchanged or refreshed."""

    reason = "auth_failed"


class PublishError(SongADayError):
    """A playlist write was rejected or never arrived."""

    reason = "publish_failed"
