"""
Codex: canonical text fingerprinting and a curated artifact ledger

A single curator registers and supersedes versioned metadata records for
literary and narrative artifacts. Each record may be bound to the SHA-256
fingerprint of its canonical source text, so two copies of a document that
differ only in incidental formatting share a fingerprint.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────┐
    │                               CODEX                                  │
    │                                                                      │
    │  FRONT END                                                           │
    │    cli.py           codex hash / ledger / curator / config           │
    │    store.py         JSON snapshot persistence                        │
    │                                                                      │
    │  LEDGER                                                              │
    │    ledger.py        Append-only versioned entries, query surface     │
    │    governance.py    Curator gate, two-step curator transfer          │
    │    events.py        Event bus and event log for indexers             │
    │                                                                      │
    │  FINGERPRINTING                                                      │
    │    canonical.py     Markdown + text canonicalization (hnp-2)         │
    │    fingerprint.py   SHA-256 over canonical text                      │
    │                                                                      │
    │  SUPPORT                                                             │
    │    hardening.py     Error taxonomy and input validators              │
    │    observability.py Structured logging, correlation ids              │
    │    config.py        YAML and environment configuration               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.1.0"


# Lazy imports to keep `codex.canonical` usable without loading the ledger stack
def __getattr__(name):
    """Lazy import codex modules on first access."""

    if name in ("canonicalize", "normalize_markdown", "normalize_text",
                "CANONICALIZATION_PROTOCOL"):
        from codex import canonical
        return getattr(canonical, name)

    if name in ("fingerprint_file", "fingerprint_text",
                "FingerprintResult", "to_hex", "from_hex"):
        from codex import fingerprint
        return getattr(fingerprint, name)

    if name in ("Entry", "Ledger"):
        from codex import ledger
        return getattr(ledger, name)

    if name in ("CuratorGovernance", "CuratorState", "TransferPhase"):
        from codex import governance
        return getattr(governance, name)

    if name in ("CodexError", "AccessDenied", "IndexOutOfRange", "AlreadyDeprecated",
                "InvalidTarget", "NormalizationInputError", "SourceFileNotFound",
                "ValidationError", "ZERO_ADDRESS", "ZERO_HASH"):
        from codex import hardening
        return getattr(hardening, name)

    if name in ("save_ledger", "load_ledger", "StoreError"):
        from codex import store
        return getattr(store, name)

    raise AttributeError(f"module 'codex' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Canonicalization
    "canonicalize",
    "normalize_markdown",
    "normalize_text",
    "CANONICALIZATION_PROTOCOL",
    # Fingerprinting
    "fingerprint_file",
    "fingerprint_text",
    "FingerprintResult",
    "to_hex",
    "from_hex",
    # Ledger
    "Entry",
    "Ledger",
    "CuratorGovernance",
    "CuratorState",
    "TransferPhase",
    # Errors
    "CodexError",
    "AccessDenied",
    "IndexOutOfRange",
    "AlreadyDeprecated",
    "InvalidTarget",
    "NormalizationInputError",
    "SourceFileNotFound",
    "ValidationError",
    "ZERO_ADDRESS",
    "ZERO_HASH",
    # Persistence
    "save_ledger",
    "load_ledger",
    "StoreError",
]
