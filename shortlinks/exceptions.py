"""Error kinds raised by the short-link core.

Every operation of the core either returns a value or raises one of the
exceptions below. Transports (the FastAPI routes, or any other caller) map
them onto their own envelope.

Classes:
    ShortLinkError:
        Base class for every error raised by the core.

    CodeTakenError:
        The requested (custom or generated) code already belongs to a link,
        or a concurrent creator won the race for it.

    CodeGenerationExhaustedError:
        Every generation attempt collided with an existing code.

    InvalidCodeError:
        The code violates the charset or length policy.

    LinkNotFoundError:
        No link exists for the code in the durable store.

    UnauthorizedError:
        The caller's owner id does not match the link's owner.

    StoreUnavailableError:
        The durable store could not be reached or failed the operation.

    CacheUnavailableError:
        The cache could not be reached or failed the operation.

    CacheCleanupError:
        A delete succeeded in the durable store but its cache entries could
        not be removed.

    OperationTimeoutError:
        A cache or store call exceeded its deadline.
"""

__all__ = [
    "ShortLinkError",
    "CodeTakenError",
    "CodeGenerationExhaustedError",
    "InvalidCodeError",
    "LinkNotFoundError",
    "UnauthorizedError",
    "StoreUnavailableError",
    "CacheUnavailableError",
    "CacheCleanupError",
    "OperationTimeoutError",
]


class ShortLinkError(Exception):
    """Base class for short-link errors."""


class CodeTakenError(ShortLinkError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Short code '{code}' is already taken")


class CodeGenerationExhaustedError(ShortLinkError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Failed to generate a unique short code after {attempts} attempts")


class InvalidCodeError(ShortLinkError):
    """Raised when a short code fails the charset or length check."""


class LinkNotFoundError(ShortLinkError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Short link '{code}' not found")


class UnauthorizedError(ShortLinkError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Not allowed to modify short link '{code}'")


class StoreUnavailableError(ShortLinkError):
    """Raised when the durable store fails (connection issues, driver errors, etc.)."""


class CacheUnavailableError(ShortLinkError):
    """Raised when the cache fails (connection issues, protocol errors, etc.)."""


class CacheCleanupError(CacheUnavailableError):
    """Raised when a deleted link's cache entries could not be removed.

    The durable delete has already happened. Callers should treat the link as
    deleted but possibly not fully cleaned up.
    """

    def __init__(self, code: str, keys: list[str]):
        self.code = code
        self.keys = keys
        super().__init__(f"Short link '{code}' deleted but cache cleanup failed for keys {keys}")


class OperationTimeoutError(ShortLinkError):
    """Raised when a cache or store call exceeds its deadline."""
