"""Error taxonomy for the relay.

Every error carries a machine-readable ``kind`` and the HTTP status the
webhook answers with when the error is surfaced to the caller.
"""


class RelayError(Exception):
    """Base class for errors raised while registering or relaying."""

    kind = "relay_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict[str, str]:
        return {"error": self.kind, "detail": self.message}


class MissingSubscriptionId(RelayError):
    kind = "missing_subscription_id"
    status_code = 400


class SubscriptionNotFound(RelayError):
    kind = "subscription_not_found"
    status_code = 404


class InvalidSubscriptionData(RelayError):
    """A stored record is structurally incomplete or holds unusable key material."""

    kind = "invalid_subscription_data"
    status_code = 500


class DecryptionFailure(RelayError):
    """Bad headers, bad tag or bad padding."""

    kind = "decryption_failure"
    status_code = 500


class MultiRecordCiphertext(DecryptionFailure):
    """The body spans more than one content-encoding record."""

    kind = "multi_record_ciphertext"


class MalformedPayload(RelayError):
    """Decrypted plaintext is not a JSON object."""

    kind = "malformed_payload"
    status_code = 500


class StoreUnavailable(RelayError):
    kind = "store_unavailable"
    status_code = 503


class UpstreamRegistrationError(RelayError):
    kind = "upstream_registration_failed"
    status_code = 502


class DownstreamTransientFailure(RelayError):
    """Network or provider error while delivering. Logged, never surfaced."""

    kind = "downstream_transient_failure"


class DownstreamTokenInvalid(RelayError):
    """The push provider reports the token as permanently invalid."""

    kind = "downstream_token_invalid"
