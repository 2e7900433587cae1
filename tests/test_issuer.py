import ipaddress
from datetime import timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from certissuer import issuer
from certissuer.common.errors import ChainVerificationFailed, CryptoError, InvalidArgument
from certissuer.common.models import AlternativeNames, CAInputs, IssuanceParameters, SubjectDescriptor, build
from certissuer.common.utils import now_utc
from certissuer.crypto import pki, sign
from certissuer.crypto.ca import create_root_ca
from certissuer.storage import serial


def _issue(ca, cn="example.test", dns=None, ips=None, **params):
    subject = build(SubjectDescriptor, common_name=cn)
    alt_names = AlternativeNames.from_csv(dns, ips)
    return issuer.issue_certificate(ca, subject, alt_names, build(IssuanceParameters, **params))


def _ext(cert, ext_class):
    return cert.extensions.get_extension_for_class(ext_class)


def test_common_name_is_subject_and_first_dns_name(ca):
    cert = _issue(ca, cn="example.test", dns="www.example.test").certificate
    assert cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "example.test"
    dns_names = _ext(cert, x509.SubjectAlternativeName).value.get_values_for_type(x509.DNSName)
    assert dns_names[0] == "example.test"


def test_alternate_name_counts(ca):
    cert = _issue(ca, dns="a.test,b.test,c.test", ips="10.0.0.1,2001:db8::1").certificate
    san = _ext(cert, x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["example.test", "a.test", "b.test", "c.test"]
    assert san.get_values_for_type(x509.IPAddress) == [
        ipaddress.ip_address("10.0.0.1"),
        ipaddress.ip_address("2001:db8::1"),
    ]


def test_fixed_extension_set(ca):
    subject = build(
        SubjectDescriptor,
        common_name="client.example.test",
        country="NO",
        organization="Org",
        email="client@example.test",
    )
    cert = issuer.issue_certificate(ca, subject).certificate

    constraints = _ext(cert, x509.BasicConstraints)
    assert constraints.critical
    assert constraints.value.ca is False

    key_usage = _ext(cert, x509.KeyUsage)
    assert key_usage.critical
    assert key_usage.value.digital_signature
    assert key_usage.value.key_encipherment
    assert not key_usage.value.key_cert_sign

    eku = _ext(cert, x509.ExtendedKeyUsage).value
    assert list(eku) == [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]

    ski = _ext(cert, x509.SubjectKeyIdentifier).value
    assert ski == x509.SubjectKeyIdentifier.from_public_key(cert.public_key())

    aki = _ext(cert, x509.AuthorityKeyIdentifier).value
    ca_ski = _ext(ca.certificate, x509.SubjectKeyIdentifier).value
    assert aki.key_identifier == ca_ski.digest


def test_csr_carries_subject_and_requested_extensions(ca):
    output = _issue(ca, dns="www.example.test", ips="10.0.0.1")
    assert output.csr.is_signature_valid
    assert output.csr.subject == output.certificate.subject
    san = output.csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["example.test", "www.example.test"]
    assert output.csr.public_key().public_numbers() == output.private_key.public_key().public_numbers()


def test_signing_ignores_csr_extensions(ca):
    key = sign.generate_private_key(2048)
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "rogue.test")]))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(x509.SubjectAlternativeName([x509.DNSName("evil.test")]), critical=False)
        .sign(key, hashes.SHA256())
    )
    san = x509.SubjectAlternativeName([x509.DNSName("rogue.test")])
    cert = sign.sign_csr(csr, ca, 1, 30, san, hashes.SHA256())

    assert _ext(cert, x509.BasicConstraints).value.ca is False
    assert _ext(cert, x509.SubjectAlternativeName).value.get_values_for_type(x509.DNSName) == ["rogue.test"]


def test_validity_and_digest(ca):
    cert = _issue(ca, validity_days=30, digest="sha384").certificate
    assert cert.not_valid_after_utc - cert.not_valid_before_utc == timedelta(days=30)
    assert isinstance(cert.signature_hash_algorithm, hashes.SHA384)


def test_verifies_against_issuing_ca(ca):
    cert = _issue(ca).certificate
    issuer.verify_certificate(cert, ca.certificate)
    assert pki.validate_certificate(cert, ca.certificate, expected_cn="example.test") == (True, None)


def test_unrelated_ca_fails_verification(ca, other_ca):
    cert = _issue(ca).certificate
    with pytest.raises(ChainVerificationFailed, match="unable to get local issuer"):
        issuer.verify_certificate(cert, other_ca.certificate)


def test_same_name_different_key_fails_signature(ca):
    impostor = create_root_ca("Test Root CA", organization="certissuer tests", country="NO", key_size=2048)
    cert = _issue(ca).certificate
    with pytest.raises(ChainVerificationFailed, match="signature failure"):
        issuer.verify_certificate(cert, impostor.certificate)


def test_expired_certificate_is_reported(ca, monkeypatch):
    cert = _issue(ca, validity_days=1).certificate
    monkeypatch.setattr(pki, "now_utc", lambda: now_utc() + timedelta(days=2))
    with pytest.raises(ChainVerificationFailed, match="certificate has expired") as excinfo:
        issuer.verify_certificate(cert, ca.certificate)
    assert excinfo.value.step == "verify certificate"


def test_expired_ca_fails_issuance():
    expired = create_root_ca("Old CA", key_size=2048, days=10, not_valid_before=now_utc() - timedelta(days=20))
    with pytest.raises(ChainVerificationFailed, match="CA certificate has expired"):
        _issue(expired)


def test_successive_issuances_get_distinct_serials(ca, tmp_path):
    ca_with_serial = CAInputs(key=ca.key, certificate=ca.certificate, serial_path=tmp_path / "ca.srl")
    first = _issue(ca_with_serial).certificate
    second = _issue(ca_with_serial).certificate
    assert second.serial_number == first.serial_number + 1
    assert (tmp_path / "ca.srl").read_text() == serial.format_serial(second.serial_number) + "\n"


def test_serials_differ_without_serial_file(ca):
    assert _issue(ca).certificate.serial_number != _issue(ca).certificate.serial_number


def test_missing_common_name_fails_before_key_generation(ca, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("key generated")

    monkeypatch.setattr(sign, "generate_private_key", fail)
    subject = SubjectDescriptor.model_construct(common_name="")
    with pytest.raises(InvalidArgument, match="common name"):
        issuer.issue_certificate(ca, subject)


def test_key_size_out_of_range_is_crypto_error(ca):
    with pytest.raises(CryptoError) as excinfo:
        _issue(ca, key_size=512)
    assert excinfo.value.step == "generate key"


def test_unknown_digest_is_invalid_argument(ca):
    with pytest.raises(InvalidArgument, match="unsupported digest"):
        _issue(ca, digest="md4")


def test_parse_certificate_rejects_garbage():
    from certissuer.common.errors import MalformedCertificate

    with pytest.raises(MalformedCertificate):
        pki.parse_certificate(b"-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n")


def test_unicode_common_name_is_issued_with_a_label_san(ca):
    cert = _issue(ca, cn="bücher.test", dns="münchen.test").certificate
    assert cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "bücher.test"
    dns_names = _ext(cert, x509.SubjectAlternativeName).value.get_values_for_type(x509.DNSName)
    assert dns_names == ["xn--bcher-kva.test", "xn--mnchen-3ya.test"]


def test_unvalidated_long_common_name_is_invalid_argument(ca, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("key generated")

    monkeypatch.setattr(sign, "generate_private_key", fail)
    subject = SubjectDescriptor.model_construct(common_name="x" * 70)
    with pytest.raises(InvalidArgument) as excinfo:
        issuer.issue_certificate(ca, subject)
    assert excinfo.value.step == "build subject"


def test_output_private_key_is_rsa(ca):
    output = _issue(ca)
    assert issuer.IssuanceOutput.__annotations__["private_key"] is rsa.RSAPrivateKey
    assert isinstance(output.private_key, rsa.RSAPrivateKey)
    assert output.private_key.key_size == 2048
