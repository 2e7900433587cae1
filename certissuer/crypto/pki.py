"""
PKI helpers: load certs/keys, certificate validation against a CA cert,
and utility functions like fingerprint.

Functions:
- load_certificate(path_or_bytes) -> cryptography.x509.Certificate
- load_private_key(path_or_bytes, password=None) -> private key object
- load_ca(ca_key_path, ca_cert_path, password=None, serial_path=None) -> CAInputs
- parse_certificate(pem_bytes) -> Certificate, raises MalformedCertificate
- validate_certificate(cert, ca_cert, expected_cn=None) -> (True, None) or (False, reason)
- cert_sha256_fingerprint_hex(cert) -> hex string of SHA256 over DER
"""

import logging
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from certissuer.common.errors import InvalidArgument, MalformedCertificate
from certissuer.common.models import CAInputs
from certissuer.common.utils import now_utc, sha256_hex

logger = logging.getLogger(__name__)


def load_certificate(pem_or_path):
    if isinstance(pem_or_path, (bytes, bytearray)):
        return x509.load_pem_x509_certificate(pem_or_path)
    with open(pem_or_path, "rb") as f:
        data = f.read()
    return x509.load_pem_x509_certificate(data)


def load_private_key(pem_or_path, password=None):
    if isinstance(pem_or_path, (bytes, bytearray)):
        data = pem_or_path
    else:
        with open(pem_or_path, "rb") as f:
            data = f.read()
    return serialization.load_pem_private_key(data, password=password)


def _public_der(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_ca(ca_key_path, ca_cert_path, password=None, serial_path=None) -> CAInputs:
    """
    Load the CA key and certificate from PEM files.

    Missing or unparseable files, and a key that does not belong to the
    certificate, raise InvalidArgument.
    """
    for label, path in (("CA key", ca_key_path), ("CA certificate", ca_cert_path)):
        if not Path(path).is_file():
            raise InvalidArgument("load CA", f"{label} {path} does not exist")

    try:
        ca_cert = load_certificate(ca_cert_path)
    except (OSError, ValueError) as e:
        raise InvalidArgument("load CA", f"cannot read CA certificate {ca_cert_path}: {e}") from e
    try:
        ca_key = load_private_key(ca_key_path, password=password)
    except (OSError, ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidArgument("load CA", f"cannot read CA key {ca_key_path}: {e}") from e

    if _public_der(ca_key.public_key()) != _public_der(ca_cert.public_key()):
        raise InvalidArgument("load CA", f"CA key {ca_key_path} does not match CA certificate {ca_cert_path}")

    logger.debug("Loaded CA %s", ca_cert.subject.rfc4514_string())
    return CAInputs(key=ca_key, certificate=ca_cert, serial_path=serial_path)


def parse_certificate(pem: bytes) -> x509.Certificate:
    """Parse a PEM certificate, failing with MalformedCertificate."""
    try:
        cert = x509.load_pem_x509_certificate(pem)
        # Force decoding of the parts that are parsed lazily.
        _ = (cert.subject, cert.issuer, cert.extensions)
    except ValueError as e:
        raise MalformedCertificate("parse certificate", str(e)) from e
    return cert


def cert_sha256_fingerprint_hex(cert: x509.Certificate) -> str:
    return sha256_hex(cert.public_bytes(serialization.Encoding.DER))


def _verify_signature_chain(cert: x509.Certificate, issuer_cert: x509.Certificate) -> bool:
    """
    Verify that cert was signed by issuer_cert (checks signature only).
    """
    try:
        cert.verify_directly_issued_by(issuer_cert)
        return True
    except (InvalidSignature, ValueError, TypeError):
        return False


def _is_ca(cert: x509.Certificate) -> bool:
    try:
        constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return False
    return constraints.ca


def validate_certificate(cert: x509.Certificate, ca_cert: x509.Certificate, expected_cn: str = None):
    """
    Validate a certificate against the provided CA certificate.

    Returns (True, None) on success, or (False, "reason") on failure.

    Checks performed:
    - Issuer: cert issuer name equals CA subject
    - CA: CA certificate is marked CA:TRUE and inside its validity period
    - Signature: cert signed by CA
    - Validity period: not before <= now <= not after
    - If expected_cn provided: CN on cert must match
    """
    if cert.issuer != ca_cert.subject:
        return False, f"unable to get local issuer certificate (issuer {cert.issuer.rfc4514_string()})"

    if not _is_ca(ca_cert):
        return False, "invalid CA certificate (CA:TRUE missing)"

    # Signature chain check
    if not _verify_signature_chain(cert, ca_cert):
        return False, "certificate signature failure (not signed by CA)"

    # Validity (dates)
    now = now_utc()
    if ca_cert.not_valid_after_utc < now:
        return False, f"CA certificate has expired (on {ca_cert.not_valid_after_utc})"
    if cert.not_valid_before_utc > now:
        return False, f"certificate is not yet valid (valid from {cert.not_valid_before_utc})"
    if cert.not_valid_after_utc < now:
        return False, f"certificate has expired (on {cert.not_valid_after_utc})"

    # CN check if requested
    if expected_cn is not None:
        try:
            cn_attr = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
        except IndexError:
            return False, "CN missing"
        if cn_attr != expected_cn:
            return False, f"CN mismatch (expected {expected_cn}, got {cn_attr})"

    return True, None
