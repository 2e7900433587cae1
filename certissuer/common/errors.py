# certissuer/common/errors.py
"""
Error kinds raised while issuing a certificate.

Every error carries the step that failed and the underlying message:

    str(CryptoError("generate key", "key_size must be at least 1024-bits"))
    -> "generate key: key_size must be at least 1024-bits"
"""


class IssuanceError(Exception):
    """Base class. Issuance is all-or-nothing, so every subclass is terminal."""

    def __init__(self, step: str, message: str):
        super().__init__(f"{step}: {message}")
        self.step = step
        self.message = message


class InvalidArgument(IssuanceError, ValueError):
    """Missing common name, bad subject fields, missing or unreadable CA files."""


class CryptoError(IssuanceError):
    """Key generation, CSR building or signing failed in the crypto layer."""


class MalformedCertificate(IssuanceError):
    """The issued certificate could not be parsed back."""


class ChainVerificationFailed(IssuanceError):
    """The certificate does not chain to the given CA certificate."""

    def __init__(self, step: str, reason: str):
        super().__init__(step, reason)
        self.reason = reason


class StorageError(IssuanceError):
    """Reading or writing the serial file or an output artifact failed."""
