#!/usr/bin/env python3
"""
certissuer/storage/artifacts.py

Write the issued key, CSR and certificate as PEM files.

- The private key file is created with mode 0600.
- All three files are staged as "<path>.tmp" and only then renamed into
  place. If any step fails, staged and already renamed files are removed,
  so a run leaves either all three artifacts or none.
"""

import logging
import os
from pathlib import Path

from cryptography.hazmat.primitives import serialization

from certissuer.common.errors import StorageError
from certissuer.crypto.sign import private_key_pem

logger = logging.getLogger(__name__)


def _tmp_path(path: Path) -> Path:
    return path.with_name(path.name + ".tmp")


def _stage(path: Path, data: bytes, mode: int) -> Path:
    tmp_path = _tmp_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    os.chmod(tmp_path, mode)
    return tmp_path


def _remove(paths) -> None:
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)


def write_files(files):
    """
    Write [(path, data, mode), ...] all-or-nothing.
    Returns the written paths in the same order.
    """
    files = [(Path(path), data, mode) for path, data, mode in files]
    committed = []
    current = None
    try:
        for path, data, mode in files:
            current = path
            _stage(path, data, mode)
        for path, _, _ in files:
            current = path
            os.replace(_tmp_path(path), path)
            committed.append(path)
    except OSError as e:
        _remove(committed)
        _remove([_tmp_path(path) for path, _, _ in files])
        raise StorageError("write artifacts", f"cannot write {current}: {e}") from e

    for path in committed:
        logger.debug("Wrote %s", path)
    return committed


def write_artifacts(output, key_path, csr_path, cert_path):
    """
    Save an IssuanceOutput to the three given paths.
    Returns the paths as (key, csr, cert).
    """
    key_file, csr_file, cert_file = write_files(
        [
            (key_path, private_key_pem(output.private_key), 0o600),
            (csr_path, output.csr.public_bytes(serialization.Encoding.PEM), 0o644),
            (cert_path, output.certificate.public_bytes(serialization.Encoding.PEM), 0o644),
        ]
    )
    logger.info("Saved key %s, CSR %s, certificate %s", key_file, csr_file, cert_file)
    return key_file, csr_file, cert_file
