"""Base classes shared by all resource providers."""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

import boto3

from ..exceptions import IncompleteCreateError, TemplateError

LOG = logging.getLogger(__name__)


@dataclass
class ProviderResult:
  """Physical id and readable attributes of an applied resource."""

  physical_id: str
  attributes: dict[str, Any] = field(default_factory=dict)


class ProviderContext:
  """Stack-wide settings and AWS clients handed to providers.

  boto3 sessions are not thread-safe, clients are; clients are therefore
  created under a lock and shared between worker threads.
  """

  def __init__(
    self,
    *,
    stack_name: str,
    region: str,
    account_id: str = "",
    session: boto3.Session | None = None,
  ) -> None:
    self.stack_name = stack_name
    self.region = region
    self.account_id = account_id
    self._session = session
    self._clients: dict[tuple[str, str], Any] = {}
    self._lock = threading.Lock()

  @property
  def partition(self) -> str:
    if self.region.startswith("cn-"):
      return "aws-cn"
    if self.region.startswith("us-gov-"):
      return "aws-us-gov"
    return "aws"

  def client(self, service: str, region_name: str | None = None) -> Any:
    """Return a cached boto3 client for a service."""
    region_name = region_name or self.region
    key = (service, region_name)
    with self._lock:
      if key not in self._clients:
        if self._session is None:
          self._session = boto3.Session(region_name=self.region)
        self._clients[key] = self._session.client(service, region_name=region_name)
      return self._clients[key]


def generate_name(context: ProviderContext, logical_id: str, max_length: int = 64) -> str:
  """Unique physical name for resources the template leaves unnamed."""
  suffix = uuid.uuid4().hex[:12].upper()
  prefix = f"{context.stack_name}-{logical_id}"[: max_length - len(suffix) - 1]
  return f"{prefix}-{suffix}"


@contextmanager
def completing(physical_id: str) -> Iterator[None]:
  """Steps that run after the physical resource exists.

  Failures are raised as IncompleteCreateError carrying the physical id, so
  the engine can record the resource and roll it back.
  """
  try:
    yield
  except Exception as e:
    raise IncompleteCreateError(physical_id, e) from e


class ResourceProvider(ABC):
  """Creates, updates and deletes one CloudFormation resource type."""

  resource_type = ""
  # Properties whose change needs a new physical resource
  replace_on: frozenset[str] = frozenset()

  @abstractmethod
  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    ...

  @abstractmethod
  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    ...

  @abstractmethod
  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    ...

  @abstractmethod
  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    ...

  def requires_replacement(
    self, previous: Mapping[str, Any], properties: Mapping[str, Any]
  ) -> bool:
    return any(previous.get(key) != properties.get(key) for key in self.replace_on)


class ProviderRegistry:
  """Lookup of providers by resource type."""

  def __init__(self, providers: Iterable[ResourceProvider] = ()) -> None:
    self._providers: dict[str, ResourceProvider] = {}
    for provider in providers:
      self.register(provider)

  def register(self, provider: ResourceProvider) -> None:
    self._providers[provider.resource_type] = provider

  def get(self, resource_type: str) -> ResourceProvider:
    try:
      return self._providers[resource_type]
    except KeyError:
      raise TemplateError(f"Resource type not supported: {resource_type}") from None

  def __contains__(self, resource_type: str) -> bool:
    return resource_type in self._providers

  def types(self) -> list[str]:
    return sorted(self._providers)
