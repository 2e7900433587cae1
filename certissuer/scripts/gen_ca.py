#!/usr/bin/env python3

"""
Generate a self-signed root CA for issuing test certificates.
Usage:
    python -m certissuer.scripts.gen_ca --cn "Test Root CA" --out certs/ca
Produces:
    <out>.key   (private key, mode 0600)
    <out>.crt   (self-signed X.509 certificate)
"""

import argparse
import logging
import sys

from cryptography.hazmat.primitives import serialization

from certissuer.common.errors import IssuanceError
from certissuer.crypto.ca import create_root_ca
from certissuer.crypto.sign import private_key_pem
from certissuer.storage.artifacts import write_files


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="gen-ca", description="Create a self-signed root CA")
    parser.add_argument("--cn", required=True, help="Common Name (CN) for the Root CA")
    parser.add_argument("--org", help="Organization")
    parser.add_argument("--country", help="Country (2-letter code)")
    parser.add_argument("--keysize", type=int, default=4096, help="RSA key size in bits (default: %(default)s)")
    parser.add_argument("--days", type=int, default=3650, help="Validity in days (default: %(default)s)")
    parser.add_argument("--out", required=True, help="Output path without extension")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        ca = create_root_ca(args.cn, organization=args.org, country=args.country, key_size=args.keysize, days=args.days)
        write_files(
            [
                (args.out + ".key", private_key_pem(ca.key), 0o600),
                (args.out + ".crt", ca.certificate.public_bytes(serialization.Encoding.PEM), 0o644),
            ]
        )
    except (IssuanceError, ValueError) as e:
        sys.stderr.write(f"ERROR: {e}\n")
        return 1

    print("[+] Root CA generated:")
    print(f"    {args.out}.key")
    print(f"    {args.out}.crt")
    return 0


if __name__ == "__main__":
    sys.exit(main())
