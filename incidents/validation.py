"""Field-level validation for incident creation."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator
from core.config import settings
from incidents.errors import IncidentValidationError


class IncidentDraft(BaseModel):
    """Sanitized fields accepted by IncidentStore.create()."""

    model_config = ConfigDict(extra="ignore", validate_default=True)

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    severity: Optional[str] = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def validate_text(cls, value: Any, info: ValidationInfo) -> str:
        label = info.field_name.capitalize()
        if not value or not isinstance(value, str):
            raise ValueError(f"{label} is required")

        min_length, max_length = settings.length_limits(info.field_name)
        if len(value) < min_length:
            raise ValueError(f"{label} must be at least {min_length} characters")
        if len(value) > max_length:
            raise ValueError(f"{label} must not exceed {max_length} characters")
        return value

    @field_validator("category", mode="before")
    @classmethod
    def validate_category(cls, value: Any) -> str:
        categories = settings.categories_list
        if value not in categories:
            raise ValueError(f"Invalid category. Must be one of: {', '.join(categories)}")
        return value

    @field_validator("severity", mode="before")
    @classmethod
    def validate_severity(cls, value: Any) -> str:
        severities = settings.severities_list
        if value not in severities:
            raise ValueError(f"Invalid severity. Must be one of: {', '.join(severities)}")
        return value


@dataclass
class ValidationResult:
    """Outcome of validate_create_incident()."""
    ok: bool
    errors: List[str] = field(default_factory=list)
    value: Optional[Dict[str, str]] = None


def _error_message(error: Dict[str, Any]) -> str:
    # Our validators raise ValueError; keep their text without pydantic's prefix.
    ctx = error.get("ctx") or {}
    if "error" in ctx:
        return str(ctx["error"])
    location = ".".join(str(part) for part in error.get("loc", ())) or "body"
    return f"{location}: {error['msg']}"


def validate_create_incident(raw: Any) -> ValidationResult:
    """
    Validate raw incident fields.

    Args:
        raw: Mapping of candidate fields (request body, CSV row, ...)

    Returns:
        ValidationResult; `value` holds title, description, category and
        severity when `ok` is True
    """
    try:
        draft = IncidentDraft.model_validate(raw)
    except ValidationError as e:
        return ValidationResult(ok=False, errors=[_error_message(err) for err in e.errors()])
    return ValidationResult(ok=True, value=draft.model_dump())


def require_valid_incident(raw: Any) -> Dict[str, str]:
    """
    Validate raw incident fields or raise.

    Raises:
        IncidentValidationError: If validation fails
    """
    result = validate_create_incident(raw)
    if not result.ok:
        raise IncidentValidationError(result.errors)
    return result.value
