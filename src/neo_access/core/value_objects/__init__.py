"""Value objects for neo-access."""

from .identifiers import (
    MAX_IDENTIFIER_LENGTH,
    validate_identifier,
    validate_optional_identifier,
    parse_action,
    ResourceType,
    PermissionKey,
)

__all__ = [
    "MAX_IDENTIFIER_LENGTH",
    "validate_identifier",
    "validate_optional_identifier",
    "parse_action",
    "ResourceType",
    "PermissionKey",
]
