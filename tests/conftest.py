import pytest
from cryptography.hazmat.primitives import serialization

from certissuer.crypto.ca import create_root_ca
from certissuer.crypto.sign import private_key_pem


@pytest.fixture(scope="session")
def ca():
    return create_root_ca("Test Root CA", organization="certissuer tests", country="NO", key_size=2048)


@pytest.fixture(scope="session")
def other_ca():
    return create_root_ca("Unrelated Root CA", key_size=2048)


@pytest.fixture
def ca_files(tmp_path, ca):
    """The session CA written to tmp_path as ca.key / ca.crt."""
    key_path = tmp_path / "ca.key"
    cert_path = tmp_path / "ca.crt"
    key_path.write_bytes(private_key_pem(ca.key))
    cert_path.write_bytes(ca.certificate.public_bytes(serialization.Encoding.PEM))
    return key_path, cert_path
