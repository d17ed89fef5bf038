"""Parsed representation of a CloudFormation template."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..exceptions import TemplateError
from ..parameters import ParameterDeclaration

UNSUPPORTED_SECTIONS = ("Conditions", "Transform")


@dataclass(frozen=True)
class ResourceDeclaration:
  """One entry of the template's ``Resources`` section."""

  logical_id: str
  type: str
  properties: Mapping[str, Any] = field(default_factory=dict)
  depends_on: tuple[str, ...] = ()
  deletion_policy: str = "Delete"
  update_replace_policy: str = "Delete"

  @property
  def retain(self) -> bool:
    return self.deletion_policy == "Retain"

  @classmethod
  def from_template(cls, logical_id: str, body: Mapping[str, Any]) -> "ResourceDeclaration":
    if not isinstance(body, Mapping) or "Type" not in body:
      raise TemplateError(f"Resource '{logical_id}' has no Type")

    depends_on = body.get("DependsOn", ())
    if isinstance(depends_on, str):
      depends_on = (depends_on,)

    return cls(
      logical_id=logical_id,
      type=body["Type"],
      properties=body.get("Properties") or {},
      depends_on=tuple(depends_on),
      deletion_policy=body.get("DeletionPolicy", "Delete"),
      update_replace_policy=body.get("UpdateReplacePolicy", "Delete"),
    )


@dataclass(frozen=True)
class OutputDeclaration:
  """One entry of the template's ``Outputs`` section."""

  name: str
  value: Any
  description: str = ""


@dataclass
class StackTemplate:
  """Parameters, mappings, resources and outputs of a stack."""

  resources: dict[str, ResourceDeclaration]
  parameters: dict[str, ParameterDeclaration] = field(default_factory=dict)
  mappings: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
  outputs: dict[str, OutputDeclaration] = field(default_factory=dict)
  description: str = ""

  @classmethod
  def from_dict(cls, data: Mapping[str, Any]) -> "StackTemplate":
    """Parse a template document."""
    for section in UNSUPPORTED_SECTIONS:
      if section in data:
        raise TemplateError(f"Template section '{section}' is not supported")

    resources = data.get("Resources")
    if not resources:
      raise TemplateError("Template contains no Resources section")

    return cls(
      resources={
        logical_id: ResourceDeclaration.from_template(logical_id, body)
        for logical_id, body in resources.items()
      },
      parameters={
        name: ParameterDeclaration.from_template(name, body)
        for name, body in (data.get("Parameters") or {}).items()
      },
      mappings=dict(data.get("Mappings") or {}),
      outputs={
        name: OutputDeclaration(
          name=name,
          value=body["Value"],
          description=body.get("Description", ""),
        )
        for name, body in (data.get("Outputs") or {}).items()
      },
      description=data.get("Description", ""),
    )

  @classmethod
  def from_file(cls, path: Path | str) -> "StackTemplate":
    """Load a JSON or YAML template (long-form intrinsics only)."""
    text = Path(path).read_text()
    try:
      data = json.loads(text)
    except json.JSONDecodeError:
      try:
        data = yaml.safe_load(text)
      except yaml.YAMLError as e:
        raise TemplateError(f"Cannot parse template {path}: {e}") from e
    if not isinstance(data, Mapping):
      raise TemplateError(f"Template {path} is not a mapping")
    return cls.from_dict(data)
