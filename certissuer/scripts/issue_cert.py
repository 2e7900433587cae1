#!/usr/bin/env python3

"""
Issue a leaf certificate signed by an existing CA.
Usage:
    python -m certissuer.scripts.issue_cert -n server.example.test \
        -a www.example.test -i 10.0.0.1 \
        certs/ca.key certs/ca.crt certs/server.key certs/server.csr certs/server.crt
Produces:
    <key>   new RSA private key (mode 0600)
    <csr>   certificate signing request
    <cert>  certificate signed by the CA, verified against it
Updates:
    <CA certificate>.srl  CA serial number file
"""

import argparse
import logging
import sys
from pathlib import Path

from certissuer.common.errors import InvalidArgument, IssuanceError
from certissuer.common.models import (
    DEFAULT_DAYS,
    DEFAULT_DIGEST,
    DEFAULT_KEY_SIZE,
    AlternativeNames,
    IssuanceParameters,
    SubjectDescriptor,
    build,
)
from certissuer.common.utils import colon_hex
from certissuer.crypto import pki
from certissuer.issuer import issue_to_files

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


class _ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with 1, like every other failure."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"ERROR: {self.prog}: {message}\n")


def make_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="issue-cert",
        description="Issue a TLS certificate signed by a CA",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-n", "--cn", required=True, help="Common Name (also DNS.1 in subjectAltName)")
    parser.add_argument("-k", "--keysize", type=int, default=DEFAULT_KEY_SIZE, help="RSA key size in bits (default: %(default)s)")
    parser.add_argument("-d", "--days", type=int, default=DEFAULT_DAYS, help="Validity in days (default: %(default)s)")
    parser.add_argument("-m", "--digest", default=DEFAULT_DIGEST, help="Signature digest (default: %(default)s)")
    parser.add_argument("-c", "--country", help="Country (2-letter code)")
    parser.add_argument("-s", "--state", help="State or province")
    parser.add_argument("-l", "--locality", help="Locality")
    parser.add_argument("-o", "--organization", help="Organization")
    parser.add_argument("-u", "--unit", help="Organizational unit")
    parser.add_argument("-e", "--email", help="E-mail address")
    parser.add_argument("-a", "--alt-dns", help="Comma-separated alternate DNS names")
    parser.add_argument("-i", "--alt-ip", help="Comma-separated alternate IP addresses")
    parser.add_argument("-p", "--ca-password-file", help="File holding the CA key password")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("ca_key", help="Existing CA private key (PEM)")
    parser.add_argument("ca_cert", help="Existing CA certificate (PEM)")
    parser.add_argument("key", help="Output path of the new private key")
    parser.add_argument("csr", help="Output path of the new CSR")
    parser.add_argument("cert", help="Output path of the new certificate")
    return parser


def _read_password(path):
    if path is None:
        return None
    try:
        return Path(path).read_bytes().rstrip(b"\r\n")
    except OSError as e:
        raise InvalidArgument("read CA password", f"cannot read {path}: {e}") from e


def _print_certificate(cert):
    print(f"    subject: {cert.subject.rfc4514_string()}")
    print(f"    issuer:  {cert.issuer.rfc4514_string()}")
    print(f"    serial:  {colon_hex(cert.serial_number.to_bytes((cert.serial_number.bit_length() + 7) // 8, 'big'))}")
    print(f"    valid:   {cert.not_valid_before_utc} .. {cert.not_valid_after_utc}")
    print(f"    sha256:  {pki.cert_sha256_fingerprint_hex(cert)}")


def run(args) -> None:
    subject = build(
        SubjectDescriptor,
        common_name=args.cn,
        country=args.country,
        state=args.state,
        locality=args.locality,
        organization=args.organization,
        organizational_unit=args.unit,
        email=args.email,
    )
    alt_names = AlternativeNames.from_csv(args.alt_dns, args.alt_ip)
    params = build(IssuanceParameters, key_size=args.keysize, validity_days=args.days, digest=args.digest)

    logger.debug("Subject %s, subjectAltName %s", subject.subject_string(), alt_names.subject_alt_name_string(subject.common_name))
    output = issue_to_files(
        args.ca_key,
        args.ca_cert,
        args.key,
        args.csr,
        args.cert,
        subject,
        alt_names,
        params,
        ca_password=_read_password(args.ca_password_file),
    )

    print(f"[+] Certificate issued for CN={subject.common_name}:")
    print(f"    {args.key}")
    print(f"    {args.csr}")
    print(f"    {args.cert}")
    if args.verbose:
        _print_certificate(output.certificate)


def main(argv=None) -> int:
    args = make_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        run(args)
    except IssuanceError as e:
        sys.stderr.write(f"ERROR: {e}\n")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
