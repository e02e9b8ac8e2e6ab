# error taxonomy shared by the coordinator and the HTTP layer


class LedgerError(Exception):
    code = "error"
    status_code = 500
    retryable = False
    default_message = "Internal error"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class ItemNotFound(LedgerError):
    code = "not_found"
    status_code = 404
    default_message = "Blog not found"


class AlreadyVoted(LedgerError):
    code = "already_voted"
    status_code = 400
    default_message = "You have already voted for this blog"


class NotVoted(LedgerError):
    code = "not_voted"
    status_code = 400
    default_message = "You have not voted for this blog"


class RateLimited(LedgerError):
    code = "rate_limited"
    status_code = 429
    default_message = "Rate limit exceeded. Please try again later."

    def __init__(self, retry_after: int, message: str = ""):
        super().__init__(message)
        self.retry_after = retry_after


class VoteConflict(LedgerError):
    """Retry budget exhausted on version conflicts; safe for the client to retry."""

    code = "conflict"
    status_code = 409
    retryable = True
    default_message = "Too many concurrent votes, please retry"


class StoreUnavailable(LedgerError):
    code = "store_unavailable"
    status_code = 503
    default_message = "Vote storage is unavailable"


class WriteConflict(Exception):
    """
    A conditional write kept losing the version race.
    Never leaves the coordinator: callers see VoteConflict.
    """

    def __init__(self, path: str, attempts: int):
        super().__init__(f"conflict writing {path} after {attempts} attempts")
        self.path = path
        self.attempts = attempts
