"""Value objects for identifiers in neo-access.

Identifiers for tenants, users, roles and permissions are plain strings at
the API boundary; this module validates them once, where they enter, and
defines the validated resource-type and permission-key value objects.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union

from ...config.constants import PermissionAction
from ..exceptions import ValidationError


MAX_IDENTIFIER_LENGTH = 255
RESOURCE_TYPE_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")


def validate_identifier(value: Optional[str], field_name: str = "Identifier") -> str:
    """Validate a non-empty identifier and return it stripped."""
    if value is None or not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    stripped = value.strip()
    if not stripped:
        raise ValidationError(f"{field_name} must not be empty")
    if len(stripped) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(f"{field_name} must be at most {MAX_IDENTIFIER_LENGTH} characters")
    return stripped


def validate_optional_identifier(value: Optional[str], field_name: str = "Identifier") -> Optional[str]:
    """Validate an identifier that may be absent."""
    if value is None:
        return None
    return validate_identifier(value, field_name)


def parse_action(action: Union[str, PermissionAction]) -> PermissionAction:
    """Parse an action, rejecting anything outside the PermissionAction enum."""
    if isinstance(action, PermissionAction):
        return action
    if isinstance(action, str):
        try:
            return PermissionAction(action.strip().lower())
        except ValueError:
            pass
    raise ValidationError(
        f"Unknown permission action: {action!r}",
        details={"allowed": PermissionAction.values()},
    )


@dataclass(frozen=True)
class ResourceType:
    """Validated resource-type identifier, e.g. ``documents`` or ``audit_logs``."""

    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not RESOURCE_TYPE_PATTERN.match(self.value):
            raise ValidationError(
                f"Resource type must be lowercase snake_case (max 64 characters), got: {self.value!r}"
            )

    @classmethod
    def of(cls, value: Union[str, "ResourceType"]) -> "ResourceType":
        """Coerce a string or ResourceType into a ResourceType."""
        if isinstance(value, ResourceType):
            return value
        return cls(value.strip() if isinstance(value, str) else value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PermissionKey:
    """Identity of one effective capability: (resource, action, resource_id).

    ``resource_id`` is None for grants on the whole resource type.
    """

    resource: str
    action: PermissionAction
    resource_id: Optional[str] = None

    @property
    def is_scoped(self) -> bool:
        """Whether the key is limited to one resource instance."""
        return self.resource_id is not None

    @property
    def code(self) -> str:
        """Human readable ``resource:action[:resource_id]`` code."""
        base = f"{self.resource}:{self.action.value}"
        return f"{base}:{self.resource_id}" if self.resource_id else base

    def __str__(self) -> str:
        return self.code
