"""
Key generation, CSR building and CA signing for leaf certificates.

Functions:
- get_digest(name) -> hashes.HashAlgorithm
- generate_private_key(key_size) -> RSA private key
- leaf_extensions(public_key, subject_alt_name) -> [(extension, critical), ...]
- build_csr(private_key, subject_name, subject_alt_name, digest) -> CSR signed by the new key
- sign_csr(csr, ca, serial_number, validity_days, subject_alt_name, digest) -> Certificate
- private_key_pem(private_key) -> bytes

The leaf extension set is fixed. sign_csr() applies it again when the CA
signs, it never copies the extensions requested in the CSR.
"""

import logging
from datetime import timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID

from certissuer.common.errors import CryptoError, InvalidArgument
from certissuer.common.utils import now_utc

logger = logging.getLogger(__name__)

DIGESTS = {
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
    "sha3224": hashes.SHA3_224,
    "sha3256": hashes.SHA3_256,
    "sha3384": hashes.SHA3_384,
    "sha3512": hashes.SHA3_512,
}

PUBLIC_EXPONENT = 65537


def get_digest(name: str) -> hashes.HashAlgorithm:
    try:
        return DIGESTS[name.lower().replace("-", "").replace("_", "")]()
    except KeyError:
        raise InvalidArgument("select digest", f"unsupported digest {name!r} (choose from {', '.join(DIGESTS)})") from None


def generate_private_key(key_size: int) -> rsa.RSAPrivateKey:
    try:
        return rsa.generate_private_key(
            public_exponent=PUBLIC_EXPONENT,
            key_size=key_size,
        )
    except (ValueError, TypeError) as e:
        raise CryptoError("generate key", str(e)) from e


def leaf_extensions(public_key, subject_alt_name: x509.SubjectAlternativeName):
    """
    The v3 extensions every issued leaf certificate carries, with the
    computed subjectAltName substituted in.
    """
    return [
        (x509.BasicConstraints(ca=False, path_length=None), True),
        (
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            True,
        ),
        (x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]), False),
        (x509.SubjectKeyIdentifier.from_public_key(public_key), False),
        (subject_alt_name, False),
    ]


def _authority_key_identifier(ca_cert: x509.Certificate) -> x509.AuthorityKeyIdentifier:
    try:
        ski = ca_cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
        return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski)
    except x509.ExtensionNotFound:
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_cert.public_key())


def build_csr(private_key, subject_name: x509.Name, subject_alt_name: x509.SubjectAlternativeName, digest):
    """Build a CSR requesting the leaf extension set, signed by the new key."""
    builder = x509.CertificateSigningRequestBuilder().subject_name(subject_name)
    for extension, critical in leaf_extensions(private_key.public_key(), subject_alt_name):
        builder = builder.add_extension(extension, critical=critical)
    try:
        return builder.sign(private_key, digest)
    except (ValueError, TypeError) as e:
        raise CryptoError("build CSR", str(e)) from e


def sign_csr(
    csr: x509.CertificateSigningRequest,
    ca,
    serial_number: int,
    validity_days: int,
    subject_alt_name: x509.SubjectAlternativeName,
    digest,
) -> x509.Certificate:
    """
    Sign the CSR with the CA key.

    Subject and public key come from the CSR. Extensions are re-supplied
    from leaf_extensions(), so whatever the CSR requested does not matter.
    """
    if not csr.is_signature_valid:
        raise CryptoError("sign certificate", "CSR signature is invalid")

    public_key = csr.public_key()
    now = now_utc()
    try:
        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(ca.certificate.subject)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=validity_days))
        )
        for extension, critical in leaf_extensions(public_key, subject_alt_name):
            builder = builder.add_extension(extension, critical=critical)
        builder = builder.add_extension(_authority_key_identifier(ca.certificate), critical=False)
        cert = builder.sign(ca.key, digest)
    except (ValueError, TypeError, OverflowError) as e:
        raise CryptoError("sign certificate", str(e)) from e

    logger.debug("Signed serial %X for %s", serial_number, csr.subject.rfc4514_string())
    return cert


def private_key_pem(private_key) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
