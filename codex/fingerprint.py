"""Content fingerprints over canonical text.

A fingerprint is the SHA-256 digest of the UTF-8 encoding of the canonical
form produced by ``codex.canonical.canonicalize``. It is stored as 32 raw
bytes in a ledger entry and surfaced externally as ``0x`` + 64 lowercase hex
characters.

``fingerprint_file`` is the file-reading collaborator: it is the only place
where the pipeline can fail, and it reports the failing path.
"""

from __future__ import annotations

import hashlib
import pathlib
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from codex.canonical import CANONICALIZATION_PROTOCOL, canonicalize
from codex.hardening import (
    NormalizationInputError,
    SourceFileNotFound,
    Validators,
    ZERO_HASH,
)
from codex.observability import LogLayer, get_logger, timed_operation

DIGEST_SIZE = 32

logger = get_logger("fingerprint", LogLayer.FINGERPRINT)


@dataclass(frozen=True)
class FingerprintResult:
    """Canonical text together with its digest."""
    canonical: str
    digest: bytes
    protocol: str = CANONICALIZATION_PROTOCOL
    source_path: Optional[str] = None

    @property
    def hex(self) -> str:
        return to_hex(self.digest)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "protocol": self.protocol,
            "content_hash": self.hex,
            "canonical_length": len(self.canonical.encode("utf-8")),
        }
        if self.source_path:
            d["source_path"] = self.source_path
        return d


def fingerprint(canonical: Union[str, bytes]) -> bytes:
    """Hash canonical text (str is UTF-8 encoded, bytes are hashed as given)."""
    data = canonical.encode("utf-8") if isinstance(canonical, str) else bytes(canonical)
    return hashlib.sha256(data).digest()


def to_hex(digest: bytes) -> str:
    """Render a digest as ``0x`` + lowercase hex."""
    return "0x" + bytes(digest).hex()


def from_hex(value: str) -> bytes:
    """Parse a (0x-prefixed) 64-char hex digest into 32 bytes."""
    return Validators.validate_digest(value).unwrap()


def is_zero_hash(digest: bytes) -> bool:
    return bytes(digest) == ZERO_HASH


def fingerprint_text(text: Optional[str]) -> FingerprintResult:
    """Canonicalize ``text`` and fingerprint the result."""
    canonical = canonicalize(text)
    return FingerprintResult(canonical=canonical, digest=fingerprint(canonical))


@timed_operation(logger, "fingerprint_file")
def fingerprint_file(path: Union[str, pathlib.Path]) -> FingerprintResult:
    """Read a UTF-8 text file and fingerprint its canonical form.

    Raises:
        SourceFileNotFound: the path does not exist
        NormalizationInputError: the path is not a readable UTF-8 file
    """
    p = pathlib.Path(path)
    if not p.exists():
        logger.warning("Source file not found", error_code="SourceFileNotFound", path=str(p))
        raise SourceFileNotFound(p)
    if not p.is_file():
        raise NormalizationInputError(p, "Not a regular file")

    try:
        raw = p.read_bytes().decode("utf-8")
    except UnicodeDecodeError as e:
        logger.warning("Source file is not valid UTF-8", error_code="NormalizationInputError", path=str(p))
        raise NormalizationInputError(p, f"File is not valid UTF-8 ({e.reason} at byte {e.start})") from e
    except OSError as e:
        logger.warning("Source file unreadable", error_code="NormalizationInputError", path=str(p))
        raise NormalizationInputError(p, f"File could not be read ({e.strerror or e})") from e

    result = fingerprint_text(raw)
    logger.info("Fingerprinted source file", path=str(p), content_hash=result.hex)
    return FingerprintResult(
        canonical=result.canonical,
        digest=result.digest,
        protocol=result.protocol,
        source_path=str(p),
    )
