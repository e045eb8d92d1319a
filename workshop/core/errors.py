"""Error taxonomy for the authorization core.

Every error carries an internal ``detail`` that is logged server-side and a
stable ``code`` used to pick the public, localized message. The detail is
never sent to the caller.
"""

from typing import Optional


class WorkshopError(Exception):
    """Base class for errors that terminate a request."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail


class AuthenticationError(WorkshopError):
    """Credential missing, invalid or expired, or principal unusable."""

    status_code = 401
    code = "UNAUTHENTICATED"


class ForbiddenError(WorkshopError):
    """Authenticated principal lacks the required role or permission."""

    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(WorkshopError):
    """Resource does not exist within the caller's organization."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", detail: str = ""):
        super().__init__(detail or f"{resource} not found")
        self.resource = resource


class ValidationError(WorkshopError):
    """Malformed input to an administrative operation."""

    status_code = 422
    code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str], detail: str = ""):
        super().__init__(detail or "; ".join(errors))
        self.errors = list(errors)


class ConflictError(WorkshopError):
    """Uniqueness or protection invariant would be violated."""

    status_code = 409
    code = "CONFLICT"


class InternalError(WorkshopError):
    """Store, transaction or audit failure during an authorization-critical path."""

    status_code = 500
    code = "INTERNAL_ERROR"


class AuthorizationTimeout(InternalError):
    """Permission resolution exceeded its time budget; treated as a denial."""


# Public messages, keyed by error code then locale.
PUBLIC_MESSAGES: dict[str, dict[str, str]] = {
    "UNAUTHENTICATED": {
        "en": "Authentication required",
        "ar": "يجب تسجيل الدخول",
    },
    "FORBIDDEN": {
        "en": "Access denied",
        "ar": "ليس لديك صلاحية للوصول",
    },
    "NOT_FOUND": {
        "en": "Resource not found",
        "ar": "العنصر غير موجود",
    },
    "VALIDATION_ERROR": {
        "en": "Invalid request",
        "ar": "طلب غير صالح",
    },
    "CONFLICT": {
        "en": "The request conflicts with the current state",
        "ar": "الطلب يتعارض مع الحالة الحالية",
    },
    "INTERNAL_ERROR": {
        "en": "An unexpected error occurred",
        "ar": "حدث خطأ غير متوقع",
    },
}

SUPPORTED_LOCALES = ("en", "ar")


def negotiate_locale(accept_language: Optional[str], default: str = "en") -> str:
    """Pick the first supported locale from an Accept-Language header."""
    if accept_language:
        for part in accept_language.split(","):
            tag = part.split(";")[0].strip().lower()
            primary = tag.split("-")[0]
            if primary in SUPPORTED_LOCALES:
                return primary
    return default if default in SUPPORTED_LOCALES else "en"


def public_message(code: str, locale: str = "en") -> str:
    messages = PUBLIC_MESSAGES.get(code, PUBLIC_MESSAGES["INTERNAL_ERROR"])
    return messages.get(locale, messages["en"])
