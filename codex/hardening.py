"""
Codex Error Taxonomy and Input Hardening

This module provides the typed failures raised across the package and the
validators that guard every ledger mutation. It addresses:

1. The error taxonomy (access, range, deprecation, governance, input)
2. Input validation with normalization (addresses, digests, indices)
3. Validation results that can be inspected or raised

Security Model:
    - All inputs are untrusted until validated
    - Validation completes before any state is touched
    - Addresses are compared in normalized (lowercase) form

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

# All-zero sentinels for "absent" address and "no text supplied" hash.
ZERO_ADDRESS = "0x" + "0" * 40
ZERO_HASH = bytes(32)


# =============================================================================
# ERROR TYPES
# =============================================================================

class CodexError(Exception):
    """Base exception for all codex failures."""
    pass


class AccessDenied(CodexError):
    """Caller is not allowed to perform a gated operation."""

    def __init__(self, caller: str, action: str):
        self.caller = caller
        self.action = action
        super().__init__(f"{caller} is not authorized to {action}")


class IndexOutOfRange(CodexError):
    """Index or range start does not name an existing entry."""

    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"index {index} out of range (ledger holds {length} entries)")


class AlreadyDeprecated(CodexError):
    """Attempt to deprecate an entry that is no longer active."""

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"entry {index} is already deprecated")


class InvalidTarget(CodexError):
    """Curator transfer aimed at the zero address, a malformed address, or the current curator."""

    def __init__(self, target: Any, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"invalid transfer target {target!r}: {reason}")


class NormalizationInputError(CodexError):
    """Source text for fingerprinting could not be read."""

    def __init__(self, path: Any, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{reason}: {self.path}")


class SourceFileNotFound(NormalizationInputError):
    """Source text file does not exist."""

    def __init__(self, path: Any):
        super().__init__(path, "File not found")


class ValidationError(CodexError):
    """Malformed input value."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise the first ValidationError if validation failed."""
        if not self.is_valid:
            raise self.errors[0]

    def unwrap(self) -> Any:
        """Return the sanitized value, raising if validation failed."""
        self.raise_if_invalid()
        return self.sanitized_value

    @classmethod
    def success(cls, sanitized_value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    # Patterns
    ADDRESS_PATTERN = re.compile(r'^0x[a-f0-9]{40}$')
    HEX64_PATTERN = re.compile(r'^[a-f0-9]{64}$')

    @classmethod
    def validate_text(cls, value: Any, field_name: str) -> ValidationResult:
        """Validate a free-form text field. Content is kept byte-for-byte."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_address(cls, value: Any, field_name: str = "address") -> ValidationResult:
        """Validate a 20-byte address written as 0x + 40 hex chars."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])

        lower = value.strip().lower()
        if not cls.ADDRESS_PATTERN.match(lower):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be a valid address (0x + 40 hex)", value)
            ])

        return ValidationResult.success(lower)

    @classmethod
    def validate_identity(cls, value: Any, field_name: str = "curator") -> ValidationResult:
        """Validate an address that must not be the zero sentinel."""
        result = cls.validate_address(value, field_name)
        if result.is_valid and result.sanitized_value == ZERO_ADDRESS:
            return ValidationResult.failure([
                ValidationError(field_name, "Zero address is not a valid identity", value)
            ])
        return result

    @classmethod
    def validate_digest(cls, value: Any, field_name: str = "content_hash") -> ValidationResult:
        """Validate a SHA-256 digest given as 32 raw bytes or (0x-prefixed) hex."""
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 32:
                return ValidationResult.failure([
                    ValidationError(field_name, f"Must be 32 bytes, got {len(value)}", value)
                ])
            return ValidationResult.success(bytes(value))

        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected bytes or hex string, got {type(value).__name__}", value)
            ])

        hex_part = value.strip().lower()
        if hex_part.startswith("0x"):
            hex_part = hex_part[2:]
        if not cls.HEX64_PATTERN.match(hex_part):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be 64 hex characters", value)
            ])

        return ValidationResult.success(bytes.fromhex(hex_part))

    @classmethod
    def validate_index(
        cls,
        value: Any,
        field_name: str = "index",
        minimum: int = 0,
        maximum: Optional[int] = None,
    ) -> ValidationResult:
        """Validate an integer index or count."""
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])

        errors = []
        if value < minimum:
            errors.append(ValidationError(field_name, f"Below minimum ({minimum})", value))
        if maximum is not None and value > maximum:
            errors.append(ValidationError(field_name, f"Exceeds maximum ({maximum})", value))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(value)


# =============================================================================
# STATE MACHINE INVARIANTS
# =============================================================================

class InvariantViolation(CodexError):
    """State machine invariant violated."""
    pass


class InvariantChecker:
    """Enforces state machine invariants."""

    @staticmethod
    def check_state_transition(
        current_state: Enum,
        target_state: Enum,
        valid_transitions: Dict[Enum, Set[Enum]],
    ) -> None:
        """Verify state transition is valid."""
        valid_targets = valid_transitions.get(current_state, set())
        if target_state not in valid_targets:
            raise InvariantViolation(
                f"Invalid state transition: {current_state.value} -> {target_state.value}. "
                f"Valid targets: {sorted(s.value for s in valid_targets)}"
            )

