"""Error taxonomy for the store-connection core.

Every failure the core can report carries an ``ErrorKind``. Exceptions are
raised for the interactive connect flow; the webhook dispatcher and the
revocation service report the same kinds through result objects instead.
"""

import enum

from fastapi import status


class ErrorKind(str, enum.Enum):
    """Enumerated failure kinds."""

    INVALID_SHOP_DOMAIN = "invalid_shop_domain"
    CSRF_STATE_MISMATCH = "csrf_state_mismatch"
    AUTH_CODE_EXCHANGE_FAILED = "auth_code_exchange_failed"
    METADATA_FETCH_FAILED = "metadata_fetch_failed"
    WEBHOOK_REGISTRATION_FAILED = "webhook_registration_failed"
    SIGNATURE_VERIFICATION_FAILED = "signature_verification_failed"
    PAYLOAD_PARSE_FAILED = "payload_parse_failed"
    HANDLER_FAILED = "handler_failed"
    REVOCATION_FAILED = "revocation_failed"
    STORE_DATA_FETCH_FAILED = "store_data_fetch_failed"


# HTTP status surfaced to callers for each kind
ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_SHOP_DOMAIN: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CSRF_STATE_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTH_CODE_EXCHANGE_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.METADATA_FETCH_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.WEBHOOK_REGISTRATION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.SIGNATURE_VERIFICATION_FAILED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.PAYLOAD_PARSE_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.HANDLER_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.REVOCATION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.STORE_DATA_FETCH_FAILED: status.HTTP_502_BAD_GATEWAY,
}


class StoreLinkError(Exception):
    """Base class for all store-connection errors.

    ``message`` is safe to show to callers: it never contains the client
    secret, access tokens or raw provider response bodies.
    """

    kind: ErrorKind = ErrorKind.HANDLER_FAILED
    message: str = "Store connection error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERROR_STATUS[self.kind]


class InvalidShopDomain(StoreLinkError):
    kind = ErrorKind.INVALID_SHOP_DOMAIN
    message = "Invalid shop domain"


class CsrfStateMismatch(StoreLinkError):
    kind = ErrorKind.CSRF_STATE_MISMATCH
    message = "Invalid or expired state"


class AuthCodeExchangeFailed(StoreLinkError):
    kind = ErrorKind.AUTH_CODE_EXCHANGE_FAILED
    message = "Failed to exchange authorization code"


class MetadataFetchFailed(StoreLinkError):
    kind = ErrorKind.METADATA_FETCH_FAILED
    message = "Failed to fetch shop metadata"


class WebhookRegistrationFailed(StoreLinkError):
    kind = ErrorKind.WEBHOOK_REGISTRATION_FAILED
    message = "Failed to register webhook"


class SignatureVerificationFailed(StoreLinkError):
    kind = ErrorKind.SIGNATURE_VERIFICATION_FAILED
    message = "Invalid webhook signature"


class PayloadParseFailed(StoreLinkError):
    kind = ErrorKind.PAYLOAD_PARSE_FAILED
    message = "Invalid webhook payload"


class HandlerFailed(StoreLinkError):
    kind = ErrorKind.HANDLER_FAILED
    message = "Webhook handler failed"


class RevocationFailed(StoreLinkError):
    kind = ErrorKind.REVOCATION_FAILED
    message = "Failed to revoke access token"


class StoreDataFetchFailed(StoreLinkError):
    kind = ErrorKind.STORE_DATA_FETCH_FAILED
    message = "Failed to fetch store data"
