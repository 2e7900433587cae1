"""
Create a self-signed root CA (RSA key + X.509 certificate).

The certificate carries CA:TRUE, keyCertSign/cRLSign key usage and a
subjectKeyIdentifier, so leaf certificates issued below it get a matching
authorityKeyIdentifier.
"""

import logging
from datetime import timedelta
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID

from certissuer.common.models import CAInputs
from certissuer.common.utils import now_utc
from certissuer.crypto.sign import generate_private_key

logger = logging.getLogger(__name__)


def create_root_ca(
    common_name: str,
    organization: Optional[str] = None,
    country: Optional[str] = None,
    key_size: int = 4096,
    days: int = 3650,
    not_valid_before=None,
) -> CAInputs:
    ca_key = generate_private_key(key_size)

    attributes = []
    if country:
        attributes.append(x509.NameAttribute(NameOID.COUNTRY_NAME, country))
    if organization:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))
    attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    subject = issuer = x509.Name(attributes)

    start = not_valid_before or now_utc()
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(start)
        .not_valid_after(start + timedelta(days=days))
        .add_extension(
            x509.BasicConstraints(ca=True, path_length=None),
            critical=True,
        )
        .add_extension(
            x509.KeyUsage(
                digital_signature=False,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
        .sign(ca_key, hashes.SHA256())
    )

    logger.info("Created root CA %s", subject.rfc4514_string())
    return CAInputs(key=ca_key, certificate=ca_cert)
