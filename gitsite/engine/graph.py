"""Dependency graph over template resources."""

from typing import Iterable, Mapping

from ..exceptions import DependencyCycleError, UnknownReferenceError
from .intrinsics import PSEUDO_PARAMETERS, references
from .template import ResourceDeclaration


def resource_dependencies(
  resource: ResourceDeclaration,
  resource_ids: Iterable[str],
  parameter_names: Iterable[str] = (),
) -> set[str]:
  """Logical ids a resource depends on, explicitly or through references.

  Raises:
    UnknownReferenceError: If a dependency or reference names nothing declared.
  """
  resource_ids = set(resource_ids)
  parameter_names = set(parameter_names)

  result = set()
  for target in resource.depends_on:
    if target not in resource_ids:
      raise UnknownReferenceError(resource.logical_id, target)
    result.add(target)

  for target in references(resource.properties):
    if target in resource_ids:
      result.add(target)
    elif target not in parameter_names and target not in PSEUDO_PARAMETERS:
      raise UnknownReferenceError(resource.logical_id, target)

  result.discard(resource.logical_id)
  return result


class DependencyGraph:
  """Creation order of resources, derived from their dependency edges."""

  def __init__(self, edges: Mapping[str, Iterable[str]]) -> None:
    self.edges: dict[str, set[str]] = {node: set(deps) for node, deps in edges.items()}
    for node, deps in self.edges.items():
      for dep in deps:
        if dep not in self.edges:
          raise UnknownReferenceError(node, dep)
    self._generations = self._compute_generations()

  @classmethod
  def from_resources(
    cls,
    resources: Mapping[str, ResourceDeclaration],
    parameter_names: Iterable[str] = (),
  ) -> "DependencyGraph":
    parameter_names = set(parameter_names)
    return cls(
      {
        logical_id: resource_dependencies(resource, resources, parameter_names)
        for logical_id, resource in resources.items()
      }
    )

  def dependencies(self, node: str) -> set[str]:
    return set(self.edges[node])

  def dependents(self, node: str) -> set[str]:
    return {other for other, deps in self.edges.items() if node in deps}

  def generations(self) -> list[list[str]]:
    """Batches of resources; each batch only depends on earlier batches."""
    return [list(batch) for batch in self._generations]

  def order(self) -> list[str]:
    """Topological creation order."""
    return [node for batch in self._generations for node in batch]

  def teardown_order(self) -> list[str]:
    """Reverse creation order: dependents before their dependencies."""
    return list(reversed(self.order()))

  def _compute_generations(self) -> list[list[str]]:
    remaining = {node: set(deps) for node, deps in self.edges.items()}
    generations = []
    while remaining:
      ready = sorted(node for node, deps in remaining.items() if not deps)
      if not ready:
        raise DependencyCycleError(self._find_cycle(remaining))
      generations.append(ready)
      for node in ready:
        del remaining[node]
      for deps in remaining.values():
        deps.difference_update(ready)
    return generations

  @staticmethod
  def _find_cycle(remaining: Mapping[str, set[str]]) -> list[str]:
    # Every remaining node has an unresolved dependency, so walking the
    # first dependency repeatedly must revisit a node.
    node = min(remaining)
    path: list[str] = []
    seen: dict[str, int] = {}
    while node not in seen:
      seen[node] = len(path)
      path.append(node)
      node = min(remaining[node])
    return path[seen[node] :] + [node]
