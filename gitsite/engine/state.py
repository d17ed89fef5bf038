"""Persisted record of applied resources."""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

LOG = logging.getLogger(__name__)


@dataclass
class ResourceState:
  """Last applied state of one resource."""

  logical_id: str
  type: str
  physical_id: str
  properties: dict[str, Any] = field(default_factory=dict)
  attributes: dict[str, Any] = field(default_factory=dict)
  depends_on: list[str] = field(default_factory=list)
  deletion_policy: str = "Delete"
  update_replace_policy: str = "Delete"

  @property
  def retain(self) -> bool:
    return self.deletion_policy == "Retain"


@dataclass
class StackState:
  """Everything the engine knows about a deployed stack."""

  stack_name: str
  region: str
  parameters: dict[str, str] = field(default_factory=dict)
  resources: dict[str, ResourceState] = field(default_factory=dict)
  outputs: dict[str, Any] = field(default_factory=dict)

  def to_dict(self) -> dict[str, Any]:
    return asdict(self)

  @classmethod
  def from_dict(cls, data: dict[str, Any]) -> "StackState":
    return cls(
      stack_name=data["stack_name"],
      region=data["region"],
      parameters=dict(data.get("parameters", {})),
      resources={
        logical_id: ResourceState(**body)
        for logical_id, body in data.get("resources", {}).items()
      },
      outputs=dict(data.get("outputs", {})),
    )


class StateStore:
  """Stores one JSON document per stack in a directory."""

  def __init__(self, directory: Path | str) -> None:
    self.directory = Path(directory)

  def path(self, stack_name: str) -> Path:
    return self.directory / f"{stack_name}.json"

  def load(self, stack_name: str) -> StackState | None:
    path = self.path(stack_name)
    if not path.exists():
      return None
    with open(path) as f:
      return StackState.from_dict(json.load(f))

  def save(self, state: StackState) -> None:
    self.directory.mkdir(parents=True, exist_ok=True)
    path = self.path(state.stack_name)
    # Write then rename so a crash never leaves a truncated document
    tmp_path = path.with_suffix(".json.tmp")
    with open(tmp_path, "w") as f:
      json.dump(state.to_dict(), f, indent=2, sort_keys=True)
    os.replace(tmp_path, path)
    LOG.debug("Saved state for %s to %s", state.stack_name, path)

  def delete(self, stack_name: str) -> None:
    self.path(stack_name).unlink(missing_ok=True)
