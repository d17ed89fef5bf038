"""Stack parameter declarations and validation."""

import re
from dataclasses import dataclass
from typing import Any, Mapping

from .exceptions import ParameterValidationError

DOMAIN_NAME_PATTERN = r"[a-z0-9]+[-.a-z0-9]*(\.[a-z][a-z]+)+"
OPERATOR_EMAIL_PATTERN = r".+@[a-z0-9]+[-.a-z0-9]*(\.[a-z][a-z]+)+"


@dataclass(frozen=True)
class ParameterDeclaration:
  """A template parameter and its constraints."""

  name: str
  type: str = "String"
  description: str = ""
  min_length: int | None = None
  max_length: int | None = None
  allowed_pattern: str | None = None
  constraint_description: str | None = None
  default: str | None = None

  @classmethod
  def from_template(cls, name: str, body: Mapping[str, Any]) -> "ParameterDeclaration":
    """Build a declaration from a template ``Parameters`` entry."""
    min_length = body.get("MinLength")
    max_length = body.get("MaxLength")
    default = body.get("Default")
    return cls(
      name=name,
      type=body.get("Type", "String"),
      description=body.get("Description", ""),
      min_length=int(min_length) if min_length is not None else None,
      max_length=int(max_length) if max_length is not None else None,
      allowed_pattern=body.get("AllowedPattern"),
      constraint_description=body.get("ConstraintDescription"),
      default=str(default) if default is not None else None,
    )

  def validate(self, value: Any) -> str:
    """Check a supplied value against the constraints.

    Returns:
      The value as a string.

    Raises:
      ParameterValidationError: If any constraint is violated.
    """
    if self.type != "String":
      raise ParameterValidationError(self.name, f"has unsupported type {self.type}")
    if not isinstance(value, str):
      raise ParameterValidationError(self.name, "must be a string")

    if self.min_length is not None and len(value) < self.min_length:
      self._fail(f"must be at least {self.min_length} characters")
    if self.max_length is not None and len(value) > self.max_length:
      self._fail(f"must be at most {self.max_length} characters")
    # CloudFormation patterns must match the whole value
    if self.allowed_pattern is not None and not re.fullmatch(self.allowed_pattern, value):
      self._fail(f"must match pattern {self.allowed_pattern}")
    return value

  def _fail(self, message: str) -> None:
    if self.constraint_description:
      message = f"{message} ({self.constraint_description})"
    raise ParameterValidationError(self.name, message)


def validate_parameters(
  declarations: Mapping[str, ParameterDeclaration],
  supplied: Mapping[str, Any],
) -> dict[str, str]:
  """Validate supplied values against all declarations.

  Args:
    declarations: Parameter declarations keyed by name
    supplied: Values provided for this deployment

  Returns:
    The effective parameter values, defaults included.

  Raises:
    ParameterValidationError: For the first unknown, missing or invalid parameter.
  """
  for name in supplied:
    if name not in declarations:
      raise ParameterValidationError(name, "is not declared by the template")

  values: dict[str, str] = {}
  for name, declaration in declarations.items():
    value = supplied.get(name, declaration.default)
    if value is None:
      raise ParameterValidationError(name, "is required")
    values[name] = declaration.validate(value)
  return values


DOMAIN_NAME = ParameterDeclaration(
  name="DomainName",
  description="The base domain name for the web site (no 'www')",
  min_length=4,
  max_length=253,
  allowed_pattern=DOMAIN_NAME_PATTERN,
  constraint_description=(
    "Provide a valid domain name using only lowercase letters, numbers, and dash (-)"
  ),
)

OPERATOR_EMAIL = ParameterDeclaration(
  name="OperatorEmail",
  description="Initial email address to receive Git change notifications",
  min_length=6,
  allowed_pattern=OPERATOR_EMAIL_PATTERN,
  constraint_description="Provide a valid email address",
)
