# certissuer/common/models.py
"""
Immutable request models for certificate issuance.

- SubjectDescriptor: distinguished name fields, common name required
- AlternativeNames: extra DNS names and IP addresses for subjectAltName
- IssuanceParameters: key size, validity, digest
- CAInputs: CA private key + certificate (+ optional serial file path)

Models are built once from parsed arguments and passed explicitly.
Use build() to get InvalidArgument instead of pydantic's ValidationError.
"""

import os
from pathlib import Path
from typing import Optional, Tuple, Type, TypeVar

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes
from cryptography.x509.oid import NameOID
from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress, ValidationError, field_validator

from certissuer.common.errors import InvalidArgument
from certissuer.common.utils import split_csv

DEFAULT_KEY_SIZE = int(os.getenv("CERTISSUER_KEY_SIZE", "2048"))
DEFAULT_DAYS = int(os.getenv("CERTISSUER_DAYS", "825"))
DEFAULT_DIGEST = os.getenv("CERTISSUER_DIGEST", "sha256")

# (model field, OID, OpenSSL short name) in distinguished name order
SUBJECT_FIELDS = (
    ("country", NameOID.COUNTRY_NAME, "C"),
    ("state", NameOID.STATE_OR_PROVINCE_NAME, "ST"),
    ("locality", NameOID.LOCALITY_NAME, "L"),
    ("organization", NameOID.ORGANIZATION_NAME, "O"),
    ("organizational_unit", NameOID.ORGANIZATIONAL_UNIT_NAME, "OU"),
    ("common_name", NameOID.COMMON_NAME, "CN"),
    ("email", NameOID.EMAIL_ADDRESS, "emailAddress"),
)

# ub-common-name, RFC 5280
MAX_COMMON_NAME = 64

M = TypeVar("M", bound=BaseModel)


def dns_a_label(name: str) -> str:
    """bücher.test -> xn--bcher-kva.test; ASCII names pass through unchanged."""
    try:
        return name.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise ValueError(f"{name!r} is not a valid DNS name ({e})") from None


def build(model_cls: Type[M], step: str = "parse arguments", **data) -> M:
    """Validate `data` into `model_cls`, raising InvalidArgument on failure."""
    try:
        return model_cls(**data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or model_cls.__name__}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidArgument(step, problems) from e


class SubjectDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    common_name: str
    country: Optional[str] = None
    state: Optional[str] = None
    locality: Optional[str] = None
    organization: Optional[str] = None
    organizational_unit: Optional[str] = None
    email: Optional[str] = None

    @field_validator("common_name")
    @classmethod
    def common_name_must_be_set(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("common name must not be empty")
        if len(v) > MAX_COMMON_NAME:
            raise ValueError(f"common name must be at most {MAX_COMMON_NAME} characters, got {len(v)}")
        # The common name doubles as DNS.1.
        dns_a_label(v)
        return v

    @field_validator("country", "state", "locality", "organization", "organizational_unit", "email")
    @classmethod
    def blank_means_absent(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("country")
    @classmethod
    def country_is_two_letters(cls, v):
        if v is not None and (len(v) != 2 or not v.isalpha()):
            raise ValueError("country must be a two-letter code")
        return v

    def present_fields(self):
        """Yield (oid, short_name, value) for every set field, in DN order."""
        for field, oid, short_name in SUBJECT_FIELDS:
            value = getattr(self, field)
            if value is not None:
                yield oid, short_name, value

    def subject_string(self) -> str:
        """OpenSSL-style subject, e.g. /C=NO/O=Example/CN=example.test"""
        return "".join(f"/{short_name}={value}" for _, short_name, value in self.present_fields())

    def to_x509_name(self) -> x509.Name:
        return x509.Name([x509.NameAttribute(oid, value) for oid, _, value in self.present_fields()])


class AlternativeNames(BaseModel):
    """Alternates only; the common name is prepended as DNS.1 when rendered."""

    model_config = ConfigDict(frozen=True)

    dns: Tuple[str, ...] = ()
    ips: Tuple[IPvAnyAddress, ...] = ()

    @field_validator("dns", mode="before")
    @classmethod
    def dns_as_a_labels(cls, v):
        return tuple(dns_a_label(name.strip()) for name in v if name and name.strip())

    @field_validator("ips", mode="before")
    @classmethod
    def drop_empty_ips(cls, v):
        return tuple(str(addr).strip() for addr in v if addr and str(addr).strip())

    @classmethod
    def from_csv(cls, dns_csv: Optional[str] = None, ip_csv: Optional[str] = None) -> "AlternativeNames":
        return build(cls, dns=split_csv(dns_csv), ips=split_csv(ip_csv))

    def dns_names(self, common_name: str) -> Tuple[str, ...]:
        return (dns_a_label(common_name),) + self.dns

    def general_names(self, common_name: str):
        names = [x509.DNSName(name) for name in self.dns_names(common_name)]
        names.extend(x509.IPAddress(addr) for addr in self.ips)
        return names

    def subject_alt_name_string(self, common_name: str) -> str:
        """e.g. DNS.1:example.test,DNS.2:www.example.test,IP.1:10.0.0.1"""
        entries = [f"DNS.{i}:{name}" for i, name in enumerate(self.dns_names(common_name), start=1)]
        entries += [f"IP.{i}:{addr}" for i, addr in enumerate(self.ips, start=1)]
        return ",".join(entries)


class IssuanceParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    key_size: int = Field(DEFAULT_KEY_SIZE, gt=0)
    validity_days: int = Field(DEFAULT_DAYS, gt=0)
    digest: str = DEFAULT_DIGEST

    @field_validator("digest")
    @classmethod
    def normalize_digest(cls, v):
        return v.strip().lower().replace("-", "")


class CAInputs(BaseModel):
    """CA material. Read-only; only the serial file is updated."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: CertificateIssuerPrivateKeyTypes
    certificate: x509.Certificate
    serial_path: Optional[Path] = None
