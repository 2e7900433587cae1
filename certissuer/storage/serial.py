#!/usr/bin/env python3
"""
certissuer/storage/serial.py

CA serial-number file.

File format (same as `openssl x509 -CAserial`), one line:
    <last issued serial, upper-case hex padded to whole octets>\n

Functions:
- serial_path_for(ca_cert_path) -> Path of the serial file next to the CA certificate
- next_serial(path) -> int, allocates the next serial under an exclusive lock
- format_serial(serial) -> str, serial as written to the file (0C, 0100)

If the file does not exist, it is created with a random starting serial.
Read, increment and write happen while holding fcntl.flock(LOCK_EX), so
concurrent issuers against the same CA never hand out the same serial.
"""

import fcntl
import logging
import os
from pathlib import Path

from cryptography import x509

from certissuer.common.errors import StorageError

logger = logging.getLogger(__name__)

# X.509 serials are at most 20 octets and must be positive.
MAX_SERIAL = (1 << 159) - 1


def serial_path_for(ca_cert_path) -> Path:
    """ca.crt -> ca.srl in the same directory."""
    return Path(ca_cert_path).with_suffix(".srl")


def format_serial(serial: int) -> str:
    """Upper-case hex padded to whole octets, as OpenSSL writes it (0C, 0100)."""
    digits = max(2, (serial.bit_length() + 7) // 8 * 2)
    return f"{serial:0{digits}X}"


def _parse_serial(text: str, path) -> int:
    try:
        return int(text.strip(), 16)
    except ValueError:
        raise StorageError("allocate serial", f"serial file {path} is corrupt: {text.strip()!r}") from None


def next_serial(path) -> int:
    """
    Allocate and persist the next serial number in `path`.
    """
    path = Path(path)
    try:
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise StorageError("allocate serial", f"cannot open serial file {path}: {e}") from e

    with os.fdopen(fd, "r+", encoding="ascii") as f:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            current = f.read()
            if current.strip():
                serial = _parse_serial(current, path) + 1
                if serial > MAX_SERIAL:
                    serial = 1
            else:
                serial = x509.random_serial_number()
                logger.info("Created serial file %s", path)

            f.seek(0)
            f.truncate()
            f.write(format_serial(serial) + "\n")
            f.flush()
            os.fsync(f.fileno())
        except OSError as e:
            raise StorageError("allocate serial", f"cannot update serial file {path}: {e}") from e
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    logger.debug("Allocated serial %X from %s", serial, path)
    return serial
