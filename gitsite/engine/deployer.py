"""Apply and destroy engine for stack templates.

Resources are applied generation by generation: everything in a generation
depends only on resources from earlier generations, so the members of a
generation are applied in parallel while every dependency chain stays
serialized. Properties are resolved right before a resource is applied,
after all of its producers have been recorded in the stack state.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping

import boto3

from ..exceptions import (
  DeletionError,
  IncompleteCreateError,
  ProvisioningError,
  TemplateError,
  UnsupportedRegionError,
)
from ..parameters import validate_parameters
from ..providers.base import ProviderContext, ProviderRegistry
from .graph import DependencyGraph
from .intrinsics import Resolver, UnresolvedReference
from .state import ResourceState, StackState, StateStore
from .template import StackTemplate

LOG = logging.getLogger(__name__)


class ChangeAction(Enum):
  CREATE = "Create"
  UPDATE = "Update"
  REPLACE = "Replace"
  DELETE = "Delete"
  NO_CHANGE = "NoChange"


@dataclass(frozen=True)
class Change:
  """What happens, or happened, to one resource."""

  logical_id: str
  resource_type: str
  action: ChangeAction
  # Inputs depend on resources that are not applied yet
  pending: bool = False


@dataclass
class Plan:
  changes: list[Change]
  generations: list[list[str]]

  @property
  def is_empty(self) -> bool:
    return all(change.action is ChangeAction.NO_CHANGE for change in self.changes)

  def logical_ids(self, action: ChangeAction) -> list[str]:
    return [change.logical_id for change in self.changes if change.action is action]


@dataclass
class ApplyResult:
  changes: list[Change]
  outputs: dict[str, Any]
  orphaned: list[str] = field(default_factory=list)

  @property
  def changed(self) -> bool:
    return bool(self.changes)


@dataclass
class DriftReport:
  in_sync: list[str] = field(default_factory=list)
  deleted: list[str] = field(default_factory=list)

  @property
  def drifted(self) -> bool:
    return bool(self.deleted)


@dataclass
class _Failure:
  logical_id: str
  resource_type: str
  error: BaseException
  # Physical resource left behind by a create that failed part way
  partial: ResourceState | None = None


class _PartialCreate(Exception):
  def __init__(self, resource: ResourceState, cause: BaseException) -> None:
    super().__init__(str(cause))
    self.resource = resource
    self.cause = cause


def _find_in_map_calls(value: Any) -> Iterable[list[Any]]:
  if isinstance(value, dict):
    if len(value) == 1 and "Fn::FindInMap" in value:
      yield value["Fn::FindInMap"]
    for item in value.values():
      yield from _find_in_map_calls(item)
  elif isinstance(value, list):
    for item in value:
      yield from _find_in_map_calls(item)


class StackDeployer:
  """Plans, applies and destroys one stack.

  Args:
    template: Parsed stack template
    registry: Providers for every resource type in the template
    store: Where stack state is persisted
    stack_name: Name of the stack
    region: Deployment region
    account_id: AWS account id, used for AWS::AccountId
    session: boto3 session for provider clients
    max_workers: Upper bound on resources applied concurrently
    context: Prebuilt provider context, replaces stack_name/region/session
  """

  def __init__(
    self,
    template: StackTemplate,
    registry: ProviderRegistry,
    store: StateStore,
    *,
    stack_name: str,
    region: str,
    account_id: str = "",
    session: boto3.Session | None = None,
    max_workers: int = 4,
    context: ProviderContext | None = None,
  ) -> None:
    self.template = template
    self.registry = registry
    self.store = store
    self.stack_name = stack_name
    self.region = region
    self.max_workers = max(1, max_workers)
    self.context = context or ProviderContext(
      stack_name=stack_name, region=region, account_id=account_id, session=session
    )

  # Validation and planning

  def validate(self, parameters: Mapping[str, Any]) -> dict[str, str]:
    """Check parameters, regions and resource types before anything is touched."""
    values = validate_parameters(self.template.parameters, parameters)
    self._check_regions()
    for resource in self.template.resources.values():
      self.registry.get(resource.type)
    return values

  def graph(self) -> DependencyGraph:
    return DependencyGraph.from_resources(self.template.resources, self.template.parameters)

  def plan(self, parameters: Mapping[str, Any]) -> Plan:
    """Preview the changes a deploy would make."""
    values = self.validate(parameters)
    graph = self.graph()
    state = self._load_state()
    resolver = self._resolver(values, state)

    changes = []
    # Resources that will get a new physical id
    renewed: set[str] = set()
    for logical_id in graph.order():
      declaration = self.template.resources[logical_id]
      current = state.resources.get(logical_id)
      if current is None or current.type != declaration.type:
        action = ChangeAction.CREATE if current is None else ChangeAction.REPLACE
        changes.append(Change(logical_id, declaration.type, action))
        renewed.add(logical_id)
        continue

      if graph.dependencies(logical_id) & renewed:
        changes.append(Change(logical_id, declaration.type, ChangeAction.UPDATE, pending=True))
        continue

      properties = resolver.resolve(declaration.properties)
      provider = self.registry.get(declaration.type)
      if properties == current.properties:
        action = ChangeAction.NO_CHANGE
      elif provider.requires_replacement(current.properties, properties):
        action = ChangeAction.REPLACE
        renewed.add(logical_id)
      else:
        action = ChangeAction.UPDATE
      changes.append(Change(logical_id, declaration.type, action))

    for logical_id in self._removed(state):
      changes.append(
        Change(logical_id, state.resources[logical_id].type, ChangeAction.DELETE)
      )
    return Plan(changes=changes, generations=graph.generations())

  # Apply

  def deploy(self, parameters: Mapping[str, Any], refresh: bool = False) -> ApplyResult:
    """Converge the stack to the template.

    Args:
      parameters: Stack parameter values
      refresh: Forget resources that were deleted outside the engine first,
        so they are recreated

    Raises:
      ParameterValidationError, UnsupportedRegionError, PlanningError,
      TemplateError: Before any resource is touched.
      ProvisioningError: A provider failed; resources created in this attempt
        have been rolled back unless retained.
    """
    values = self.validate(parameters)
    graph = self.graph()
    state = self._load_state()
    if refresh:
      for logical_id in self.detect_drift(state).deleted:
        LOG.warning("Resource %s no longer exists and will be recreated", logical_id)
        del state.resources[logical_id]
    state.parameters = values

    changes: list[Change] = []
    created: list[str] = []
    superseded: list[ResourceState] = []

    for generation in graph.generations():
      failure = None
      for logical_id, outcome in self._apply_generation(generation, graph, values, state):
        if isinstance(outcome, _Failure):
          failure = failure or outcome
          if outcome.partial is not None:
            previous = state.resources.get(logical_id)
            if previous is not None:
              superseded.append(previous)
            state.resources[logical_id] = outcome.partial
            created.append(logical_id)
          continue
        change, new_state, previous = outcome
        state.resources[logical_id] = new_state
        if change.action is not ChangeAction.NO_CHANGE:
          changes.append(change)
        if change.action in (ChangeAction.CREATE, ChangeAction.REPLACE):
          created.append(logical_id)
        if change.action is ChangeAction.REPLACE and previous is not None:
          superseded.append(previous)

      if failure is not None:
        rolled_back = self._rollback(state, created, superseded)
        self.store.save(state)
        raise ProvisioningError(
          failure.logical_id, failure.resource_type, failure.error, rolled_back
        ) from failure.error
      self.store.save(state)

    self._cleanup_superseded(superseded)

    orphaned = []
    removed = self._removed(state)
    for logical_id in self._teardown_order(state, removed):
      resource = state.resources[logical_id]
      if self._delete(state, resource):
        changes.append(Change(logical_id, resource.type, ChangeAction.DELETE))
      else:
        orphaned.append(logical_id)

    state.outputs = self._resolve_outputs(values, state)
    self.store.save(state)
    LOG.info("Stack %s converged with %d change(s)", self.stack_name, len(changes))
    return ApplyResult(changes=changes, outputs=dict(state.outputs), orphaned=orphaned)

  def _apply_generation(
    self,
    generation: list[str],
    graph: DependencyGraph,
    values: Mapping[str, str],
    state: StackState,
  ) -> list[tuple[str, Any]]:
    workers = min(self.max_workers, len(generation))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gitsite-apply") as pool:
      futures = {
        logical_id: pool.submit(self._converge, logical_id, graph, values, state)
        for logical_id in generation
      }
      results: list[tuple[str, Any]] = []
      for logical_id, future in futures.items():
        try:
          results.append((logical_id, future.result()))
        except _PartialCreate as e:
          resource_type = self.template.resources[logical_id].type
          LOG.error(
            "Failed to complete %s (%s) after creating %s: %s",
            logical_id,
            resource_type,
            e.resource.physical_id,
            e.cause,
          )
          results.append((logical_id, _Failure(logical_id, resource_type, e.cause, e.resource)))
        except Exception as e:
          resource_type = self.template.resources[logical_id].type
          LOG.error("Failed to apply %s (%s): %s", logical_id, resource_type, e)
          results.append((logical_id, _Failure(logical_id, resource_type, e)))
    return results

  def _converge(
    self,
    logical_id: str,
    graph: DependencyGraph,
    values: Mapping[str, str],
    state: StackState,
  ) -> tuple[Change, ResourceState, ResourceState | None]:
    declaration = self.template.resources[logical_id]
    provider = self.registry.get(declaration.type)
    current = state.resources.get(logical_id)
    properties = self._resolver(values, state).resolve(declaration.properties)

    def record(physical_id: str, attributes: dict[str, Any]) -> ResourceState:
      return ResourceState(
        logical_id=logical_id,
        type=declaration.type,
        physical_id=physical_id,
        properties=properties,
        attributes=attributes,
        depends_on=sorted(graph.dependencies(logical_id)),
        deletion_policy=declaration.deletion_policy,
        update_replace_policy=declaration.update_replace_policy,
      )

    if current is not None and current.type == declaration.type:
      if current.properties == properties:
        unchanged = replace(
          current,
          depends_on=sorted(graph.dependencies(logical_id)),
          deletion_policy=declaration.deletion_policy,
          update_replace_policy=declaration.update_replace_policy,
        )
        return Change(logical_id, declaration.type, ChangeAction.NO_CHANGE), unchanged, None

      if not provider.requires_replacement(current.properties, properties):
        LOG.info("Updating %s (%s)", logical_id, declaration.type)
        result = provider.update(current.physical_id, current.properties, properties, self.context)
        change = Change(logical_id, declaration.type, ChangeAction.UPDATE)
        return change, record(result.physical_id, result.attributes), None

    action = ChangeAction.CREATE if current is None else ChangeAction.REPLACE
    LOG.info("%s %s (%s)", "Creating" if current is None else "Replacing", logical_id, declaration.type)
    try:
      result = provider.create(logical_id, properties, self.context)
    except IncompleteCreateError as e:
      raise _PartialCreate(record(e.physical_id, {}), e.cause) from e
    change = Change(logical_id, declaration.type, action)
    return change, record(result.physical_id, result.attributes), current

  def _rollback(
    self,
    state: StackState,
    created: list[str],
    superseded: list[ResourceState],
  ) -> list[str]:
    """Delete resources created in this attempt, newest first."""
    previous = {resource.logical_id: resource for resource in superseded}
    rolled_back = []
    for logical_id in reversed(created):
      resource = state.resources[logical_id]
      if resource.retain:
        LOG.warning("Keeping retained resource %s (%s)", logical_id, resource.physical_id)
        continue
      provider = self.registry.get(resource.type)
      try:
        provider.delete(resource.physical_id, resource.properties, self.context)
      except Exception as e:
        LOG.error("Rollback of %s failed, resource is still recorded: %s", logical_id, e)
        continue
      rolled_back.append(logical_id)
      if logical_id in previous:
        state.resources[logical_id] = previous[logical_id]
      else:
        del state.resources[logical_id]
    return rolled_back

  def _cleanup_superseded(self, superseded: list[ResourceState]) -> None:
    """Remove physical resources replaced during a successful apply."""
    for resource in superseded:
      if resource.update_replace_policy == "Retain":
        LOG.info("Keeping replaced resource %s (%s)", resource.logical_id, resource.physical_id)
        continue
      provider = self.registry.get(resource.type)
      try:
        provider.delete(resource.physical_id, resource.properties, self.context)
      except Exception as e:
        LOG.warning(
          "Could not delete replaced resource %s (%s): %s",
          resource.logical_id,
          resource.physical_id,
          e,
        )

  # Destroy

  def destroy(self) -> ApplyResult:
    """Delete every resource of the stack except retained ones."""
    state = self.store.load(self.stack_name)
    if state is None:
      LOG.info("Stack %s has no recorded resources", self.stack_name)
      return ApplyResult(changes=[], outputs={})

    changes = []
    orphaned = []
    for logical_id in self._teardown_order(state, list(state.resources)):
      resource = state.resources[logical_id]
      if self._delete(state, resource):
        changes.append(Change(logical_id, resource.type, ChangeAction.DELETE))
      else:
        orphaned.append(logical_id)

    self.store.delete(self.stack_name)
    return ApplyResult(changes=changes, outputs={}, orphaned=orphaned)

  def _delete(self, state: StackState, resource: ResourceState) -> bool:
    """Delete one resource and drop it from state.

    Returns:
      False if the resource is retained and was only forgotten.
    """
    if resource.retain:
      LOG.info("Retaining %s (%s)", resource.logical_id, resource.physical_id)
      del state.resources[resource.logical_id]
      return False

    LOG.info("Deleting %s (%s)", resource.logical_id, resource.type)
    provider = self.registry.get(resource.type)
    try:
      provider.delete(resource.physical_id, resource.properties, self.context)
    except Exception as e:
      self.store.save(state)
      raise DeletionError(resource.logical_id, e) from e
    del state.resources[resource.logical_id]
    return True

  # Drift and outputs

  def detect_drift(self, state: StackState | None = None) -> DriftReport:
    """Check that every recorded resource still exists."""
    state = state or self._load_state()
    report = DriftReport()
    for logical_id, resource in state.resources.items():
      provider = self.registry.get(resource.type)
      if provider.exists(resource.physical_id, resource.properties, self.context):
        report.in_sync.append(logical_id)
      else:
        report.deleted.append(logical_id)
    return report

  def outputs(self) -> dict[str, Any]:
    state = self.store.load(self.stack_name)
    return dict(state.outputs) if state else {}

  def _resolve_outputs(self, values: Mapping[str, str], state: StackState) -> dict[str, Any]:
    resolver = self._resolver(values, state)
    return {
      name: resolver.resolve(output.value) for name, output in self.template.outputs.items()
    }

  # Helpers

  def _load_state(self) -> StackState:
    state = self.store.load(self.stack_name)
    if state is None:
      return StackState(stack_name=self.stack_name, region=self.region)
    return state

  def _removed(self, state: StackState) -> list[str]:
    return [logical_id for logical_id in state.resources if logical_id not in self.template.resources]

  def _teardown_order(self, state: StackState, logical_ids: list[str]) -> list[str]:
    selected = set(logical_ids)
    graph = DependencyGraph(
      {
        logical_id: [dep for dep in state.resources[logical_id].depends_on if dep in selected]
        for logical_id in logical_ids
      }
    )
    return graph.teardown_order()

  def _check_regions(self) -> None:
    """Reject regions missing from any mapping keyed by AWS::Region."""
    values = [r.properties for r in self.template.resources.values()]
    values += [o.value for o in self.template.outputs.values()]
    for call in _find_in_map_calls(values):
      if len(call) != 3 or call[1] != {"Ref": "AWS::Region"}:
        continue
      mapping = self.template.mappings.get(call[0])
      if mapping is None:
        raise TemplateError(f"Fn::FindInMap references unknown mapping {call[0]}")
      if self.region not in mapping:
        raise UnsupportedRegionError(self.region)

  def _resolver(self, values: Mapping[str, str], state: StackState) -> Resolver:
    context = self.context

    def physical_id(logical_id: str) -> str:
      resource = state.resources.get(logical_id)
      if resource is None:
        raise UnresolvedReference(logical_id)
      return resource.physical_id

    def attribute(logical_id: str, name: str) -> Any:
      resource = state.resources.get(logical_id)
      if resource is None:
        raise UnresolvedReference(logical_id)
      if name not in resource.attributes:
        raise TemplateError(f"Resource {logical_id} has no attribute {name}")
      return resource.attributes[name]

    pseudo = {
      "AWS::Region": self.region,
      "AWS::StackName": self.stack_name,
      "AWS::StackId": (
        f"arn:{context.partition}:cloudformation:{self.region}:"
        f"{context.account_id}:stack/{self.stack_name}"
      ),
      "AWS::AccountId": context.account_id,
      "AWS::Partition": context.partition,
      "AWS::URLSuffix": "amazonaws.com",
    }
    return Resolver(
      parameters=values,
      mappings=self.template.mappings,
      pseudo=pseudo,
      physical_id=physical_id,
      attribute=attribute,
    )
