"""
Issue a leaf certificate signed by a CA.

    subject -> SAN list -> key + CSR -> CA signature -> parse check -> chain check

issue_certificate() works on in-memory values and returns an IssuanceOutput.
issue_to_files() loads the CA from PEM files, keeps the CA serial file up
to date and writes the three artifacts once the certificate has been
verified.
"""

import logging
from typing import NamedTuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from certissuer.common.errors import ChainVerificationFailed, InvalidArgument
from certissuer.common.models import AlternativeNames, CAInputs, IssuanceParameters, SubjectDescriptor
from certissuer.crypto import pki, sign
from certissuer.storage import artifacts, serial

logger = logging.getLogger(__name__)


class IssuanceOutput(NamedTuple):
    private_key: rsa.RSAPrivateKey
    csr: x509.CertificateSigningRequest
    certificate: x509.Certificate


def verify_certificate(certificate: x509.Certificate, ca_certificate: x509.Certificate) -> None:
    """Raise ChainVerificationFailed unless `certificate` chains to `ca_certificate`."""
    ok, reason = pki.validate_certificate(certificate, ca_certificate)
    if not ok:
        raise ChainVerificationFailed("verify certificate", reason)


def issue_certificate(
    ca: CAInputs,
    subject: SubjectDescriptor,
    alt_names: AlternativeNames = AlternativeNames(),
    params: IssuanceParameters = IssuanceParameters(),
) -> IssuanceOutput:
    if not subject.common_name or not subject.common_name.strip():
        raise InvalidArgument("build subject", "common name must not be empty")
    digest = sign.get_digest(params.digest)

    try:
        subject_name = subject.to_x509_name()
    except ValueError as e:
        raise InvalidArgument("build subject", str(e)) from e
    logger.debug("Subject: %s", subject.subject_string())

    try:
        san = x509.SubjectAlternativeName(alt_names.general_names(subject.common_name))
    except ValueError as e:
        raise InvalidArgument("build SAN", str(e)) from e
    logger.debug("subjectAltName: %s", alt_names.subject_alt_name_string(subject.common_name))

    logger.debug("Generating %d-bit RSA key", params.key_size)
    private_key = sign.generate_private_key(params.key_size)
    csr = sign.build_csr(private_key, subject_name, san, digest)

    if ca.serial_path is not None:
        serial_number = serial.next_serial(ca.serial_path)
    else:
        serial_number = x509.random_serial_number()

    logger.debug("Getting CSR signed by %s", ca.certificate.subject.rfc4514_string())
    issued = sign.sign_csr(csr, ca, serial_number, params.validity_days, san, digest)

    certificate = pki.parse_certificate(issued.public_bytes(serialization.Encoding.PEM))
    verify_certificate(certificate, ca.certificate)

    logger.info(
        "Issued certificate for %s, serial %X, valid until %s",
        subject.common_name,
        certificate.serial_number,
        certificate.not_valid_after_utc,
    )
    return IssuanceOutput(private_key, csr, certificate)


def issue_to_files(
    ca_key_path,
    ca_cert_path,
    key_path,
    csr_path,
    cert_path,
    subject: SubjectDescriptor,
    alt_names: AlternativeNames = AlternativeNames(),
    params: IssuanceParameters = IssuanceParameters(),
    ca_password=None,
) -> IssuanceOutput:
    """
    Load the CA from files, issue, then write key, CSR and certificate.
    Nothing is written unless the certificate verified.
    """
    if not subject.common_name or not subject.common_name.strip():
        raise InvalidArgument("build subject", "common name must not be empty")
    ca = pki.load_ca(ca_key_path, ca_cert_path, password=ca_password, serial_path=serial.serial_path_for(ca_cert_path))
    output = issue_certificate(ca, subject, alt_names, params)
    artifacts.write_artifacts(output, key_path, csr_path, cert_path)
    return output
