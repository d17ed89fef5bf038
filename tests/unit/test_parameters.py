"""Tests for stack parameter validation."""

import pytest

from gitsite.exceptions import ParameterValidationError
from gitsite.parameters import (
  DOMAIN_NAME,
  OPERATOR_EMAIL,
  ParameterDeclaration,
  validate_parameters,
)

DECLARATIONS = {"DomainName": DOMAIN_NAME, "OperatorEmail": OPERATOR_EMAIL}


class TestDomainName:
  """Test the DomainName constraints."""

  @pytest.mark.parametrize("value", ["example.com", "my-site.example.co.uk", "a1.io"])
  def test_accepts_valid_domains(self, value: str) -> None:
    """Lowercase domains with a letter-only TLD are accepted."""
    assert DOMAIN_NAME.validate(value) == value

  def test_rejects_uppercase(self) -> None:
    """Uppercase letters break the pattern."""
    with pytest.raises(ParameterValidationError) as exc_info:
      DOMAIN_NAME.validate("Example.com")
    assert exc_info.value.parameter == "DomainName"
    assert "lowercase letters" in str(exc_info.value)

  def test_rejects_too_short(self) -> None:
    """Three characters are below MinLength."""
    with pytest.raises(ParameterValidationError, match="at least 4"):
      DOMAIN_NAME.validate("a.b")

  def test_rejects_too_long(self) -> None:
    """More than 253 characters are above MaxLength."""
    with pytest.raises(ParameterValidationError, match="at most 253"):
      DOMAIN_NAME.validate("a" * 250 + ".com")

  def test_pattern_must_match_whole_value(self) -> None:
    """A valid prefix followed by junk is rejected."""
    with pytest.raises(ParameterValidationError, match="must match pattern"):
      DOMAIN_NAME.validate("example.com/")

  def test_rejects_numeric_tld(self) -> None:
    """The final label must be letters only."""
    with pytest.raises(ParameterValidationError):
      DOMAIN_NAME.validate("example.c0m")


class TestOperatorEmail:
  """Test the OperatorEmail constraints."""

  def test_accepts_email(self) -> None:
    """A plain address is accepted."""
    assert OPERATOR_EMAIL.validate("ops@example.org") == "ops@example.org"

  def test_rejects_missing_at(self) -> None:
    """Addresses need an @."""
    with pytest.raises(ParameterValidationError, match="OperatorEmail"):
      OPERATOR_EMAIL.validate("example.org")

  def test_rejects_short_value(self) -> None:
    """Five characters are below MinLength."""
    with pytest.raises(ParameterValidationError, match="at least 6"):
      OPERATOR_EMAIL.validate("a@b.c")


class TestValidateParameters:
  """Test validation of a full parameter set."""

  def test_returns_values(self) -> None:
    """Valid values are returned unchanged."""
    values = validate_parameters(
      DECLARATIONS, {"DomainName": "example.com", "OperatorEmail": "ops@example.org"}
    )
    assert values == {"DomainName": "example.com", "OperatorEmail": "ops@example.org"}

  def test_missing_required(self) -> None:
    """A parameter without value or default is required."""
    with pytest.raises(ParameterValidationError, match="OperatorEmail' is required"):
      validate_parameters(DECLARATIONS, {"DomainName": "example.com"})

  def test_unknown_parameter(self) -> None:
    """Values for undeclared parameters are rejected."""
    with pytest.raises(ParameterValidationError, match="not declared"):
      validate_parameters(
        DECLARATIONS,
        {"DomainName": "example.com", "OperatorEmail": "ops@example.org", "Extra": "x"},
      )

  def test_default_used(self) -> None:
    """Defaults fill in missing values."""
    declarations = {"Stage": ParameterDeclaration(name="Stage", default="prod")}
    assert validate_parameters(declarations, {}) == {"Stage": "prod"}

  def test_non_string_value(self) -> None:
    """String parameters only take strings."""
    with pytest.raises(ParameterValidationError, match="must be a string"):
      validate_parameters(DECLARATIONS, {"DomainName": 42, "OperatorEmail": "ops@example.org"})


class TestFromTemplate:
  """Test building declarations from template bodies."""

  def test_reads_constraints(self) -> None:
    """Lengths are converted to integers and patterns kept."""
    declaration = ParameterDeclaration.from_template(
      "DomainName",
      {"Type": "String", "MinLength": "4", "MaxLength": 253, "AllowedPattern": "[a-z.]+"},
    )
    assert declaration.min_length == 4
    assert declaration.max_length == 253
    assert declaration.allowed_pattern == "[a-z.]+"
    assert declaration.default is None
