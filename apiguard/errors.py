"""Guard rejections and store failures.

Every terminal decision other than admit is raised as a ``GuardError``.
The HTTP binding renders ``code``, ``message`` and ``http_status`` as the
error body; nothing inside the engine retries.
"""


class GuardError(Exception):
    """Base guard error."""

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


class UnauthorizedError(GuardError):
    def __init__(self) -> None:
        super().__init__("GEN-UNAUTHORIZED", "Unauthorized", 401)


class ForbiddenError(GuardError):
    def __init__(self) -> None:
        super().__init__("GEN-FORBIDDEN", "Forbidden", 403)


class MethodNotAllowedError(GuardError):
    def __init__(self) -> None:
        super().__init__("GEN-METHOD-NOT-ALLOWED", "Method Not Allowed", 405)


class KeyLimitExceededError(GuardError):
    # 431: "unwilling to process"
    def __init__(self) -> None:
        super().__init__("GEN-UNWILLING", "You have reached the limit for using this API.", 431)


class MethodLimitExceededError(GuardError):
    def __init__(self) -> None:
        super().__init__(
            "GEN-LIMIT-REACHED",
            "The limit for using this API method has been reached",
            429,
        )


class StoreUnavailableError(GuardError):
    """The key store or the ledger could not answer.

    Never read as "no such key" or "no requests yet".
    """

    def __init__(self, detail: str = "Storage backend unavailable") -> None:
        super().__init__("GEN-SERVICE-UNAVAILABLE", detail, 503)
