"""Pytest fixtures for CDK construct and provisioning engine tests."""

import itertools
import threading
from typing import Any, Callable, Iterable, Mapping

import aws_cdk as cdk
import pytest

from gitsite.app import synthesize_site
from gitsite.config import SiteConfig
from gitsite.engine import StateStore
from gitsite.exceptions import PipelineError
from gitsite.pipeline import Artifact, ArtifactStore, FunctionInvoker, Pipeline, SourceRepository
from gitsite.providers import ProviderContext, ProviderRegistry, ProviderResult, ResourceProvider

Attributes = Callable[[str, Mapping[str, Any]], dict[str, Any]]


class FakeCloud:
  """In-memory stand-in for the AWS account the providers talk to."""

  def __init__(self) -> None:
    self.resources: dict[str, tuple[str, dict[str, Any]]] = {}
    self.calls: list[tuple[str, str]] = []
    self.fail_on: set[str] = set()
    self._counter = itertools.count(1)
    self._lock = threading.Lock()

  def next_id(self, logical_id: str) -> str:
    with self._lock:
      return f"{logical_id.lower()}-{next(self._counter)}"

  def record(self, action: str, target: str) -> None:
    with self._lock:
      self.calls.append((action, target))

  def actions(self, action: str) -> list[str]:
    return [target for name, target in self.calls if name == action]

  def remove_outside_engine(self, physical_id: str) -> None:
    del self.resources[physical_id]


class FakeProvider(ResourceProvider):
  """Provider keeping resources in a FakeCloud.

  Args:
    resource_type: Type handled by this provider
    cloud: Shared fake account
    name_key: Property holding the physical name, generated when absent
    replace_on: Properties whose change forces replacement
    attributes: Builds GetAtt attributes from physical id and properties
  """

  def __init__(
    self,
    resource_type: str,
    cloud: FakeCloud,
    *,
    name_key: str | None = None,
    replace_on: Iterable[str] = (),
    attributes: Attributes | None = None,
  ) -> None:
    self.resource_type = resource_type
    self.cloud = cloud
    self.name_key = name_key
    self.replace_on = frozenset(replace_on)
    self.attributes = attributes or (lambda physical_id, properties: {})

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    self.cloud.record("create", logical_id)
    if logical_id in self.cloud.fail_on:
      raise RuntimeError(f"{logical_id} could not be created")
    physical_id = (self.name_key and properties.get(self.name_key)) or self.cloud.next_id(
      logical_id
    )
    self.cloud.resources[physical_id] = (self.resource_type, dict(properties))
    return ProviderResult(physical_id, self.attributes(physical_id, properties))

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    self.cloud.record("update", physical_id)
    self.cloud.resources[physical_id] = (self.resource_type, dict(properties))
    return ProviderResult(physical_id, self.attributes(physical_id, properties))

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    self.cloud.record("delete", physical_id)
    self.cloud.resources.pop(physical_id, None)

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    return physical_id in self.cloud.resources


def site_registry(cloud: FakeCloud) -> ProviderRegistry:
  """Fake providers for every resource type of the site stack."""

  def bucket(name: str, properties: Mapping[str, Any]) -> dict[str, Any]:
    return {
      "Arn": f"arn:aws:s3:::{name}",
      "DomainName": f"{name}.s3.amazonaws.com",
      "WebsiteURL": f"http://{name}.s3-website-us-east-1.amazonaws.com",
    }

  def repository(repository_id: str, properties: Mapping[str, Any]) -> dict[str, Any]:
    name = properties["RepositoryName"]
    return {
      "Arn": f"arn:aws:codecommit:us-east-1:123456789012:{name}",
      "Name": name,
      "CloneUrlHttp": f"https://git-codecommit.us-east-1.amazonaws.com/v1/repos/{name}",
      "CloneUrlSsh": f"ssh://git-codecommit.us-east-1.amazonaws.com/v1/repos/{name}",
    }

  def arn(service: str) -> Attributes:
    return lambda name, properties: {"Arn": f"arn:aws:{service}::123456789012:{name}"}

  return ProviderRegistry(
    [
      FakeProvider(
        "AWS::S3::Bucket", cloud, name_key="BucketName", replace_on={"BucketName"}, attributes=bucket
      ),
      FakeProvider("AWS::CertificateManager::Certificate", cloud, replace_on={"DomainName"}),
      FakeProvider(
        "AWS::CloudFront::Distribution",
        cloud,
        attributes=lambda dist_id, properties: {"DomainName": f"{dist_id}.cloudfront.net"},
      ),
      FakeProvider(
        "AWS::Route53::HostedZone",
        cloud,
        replace_on={"Name"},
        attributes=lambda zone_id, properties: {"NameServers": ["ns-1.awsdns-01.org"]},
      ),
      FakeProvider("AWS::Route53::RecordSetGroup", cloud),
      FakeProvider(
        "AWS::SNS::Topic",
        cloud,
        attributes=lambda topic_arn, properties: {"TopicArn": topic_arn},
      ),
      FakeProvider("AWS::CodeCommit::Repository", cloud, attributes=repository),
      FakeProvider("AWS::IAM::Role", cloud, name_key="RoleName", attributes=arn("iam")),
      FakeProvider("AWS::Lambda::Function", cloud, name_key="FunctionName", attributes=arn("lambda")),
      FakeProvider(
        "AWS::CodePipeline::Pipeline",
        cloud,
        name_key="Name",
        replace_on={"Name"},
        attributes=lambda name, properties: {"Version": "1"},
      ),
    ]
  )


@pytest.fixture
def app() -> cdk.App:
  """Create a CDK App for testing."""
  return cdk.App()


@pytest.fixture
def stack(app: cdk.App) -> cdk.Stack:
  """Create a CDK Stack for testing."""
  return cdk.Stack(app, "TestStack", env=cdk.Environment(region="us-east-1"))


@pytest.fixture
def cloud() -> FakeCloud:
  return FakeCloud()


@pytest.fixture
def store(tmp_path) -> StateStore:
  return StateStore(tmp_path / "state")


@pytest.fixture
def site_config() -> SiteConfig:
  return SiteConfig(domain="example.com", operator_email="webmaster@example.org")


@pytest.fixture(scope="session")
def site_template() -> dict[str, Any]:
  """Synthesized template of the example.com stack, shared by the session."""
  return synthesize_site(SiteConfig(domain="example.com", operator_email="webmaster@example.org"))


@pytest.fixture
def site_providers(cloud: FakeCloud) -> ProviderRegistry:
  return site_registry(cloud)


@pytest.fixture
def make_provider(cloud: FakeCloud) -> Callable[..., FakeProvider]:
  """Factory for fake providers sharing the test's cloud."""

  def make(resource_type: str, **kwargs: Any) -> FakeProvider:
    return FakeProvider(resource_type, cloud, **kwargs)

  return make


class MemorySource(SourceRepository):
  """Branch trees kept in memory, keyed by commit id."""

  def __init__(self, trees: dict[str, dict[str, bytes]], head: str) -> None:
    self.trees = trees
    self.head = head
    self.requests: list[tuple[str, str | None]] = []

  def snapshot(self, branch: str, commit_id: str | None = None) -> tuple[str, dict[str, bytes]]:
    self.requests.append((branch, commit_id))
    commit_id = commit_id or self.head
    if commit_id not in self.trees:
      raise PipelineError(f"Unknown commit {commit_id}")
    return commit_id, self.trees[commit_id]


class MemoryStore(ArtifactStore):
  def __init__(self) -> None:
    self.objects: dict[str, bytes] = {}

  def put(self, key: str, data: bytes) -> Artifact:
    self.objects[key] = data
    return Artifact("artifacts", key, str(len(self.objects)))


class ScriptedInvoker(FunctionInvoker):
  """Returns or raises queued outcomes; optionally blocks until released."""

  def __init__(self, outcomes: list[Any] | None = None, gate: threading.Event | None = None) -> None:
    self.outcomes = list(outcomes or [])
    self.gate = gate
    self.started = threading.Event()
    self.calls: list[tuple[str, Artifact]] = []

  def invoke(self, user_parameters: str, artifact: Artifact) -> Mapping[str, Any]:
    self.calls.append((user_parameters, artifact))
    self.started.set()
    if self.gate is not None:
      self.gate.wait(5)
    outcome = self.outcomes.pop(0) if self.outcomes else {"status": "succeeded"}
    if isinstance(outcome, Exception):
      raise outcome
    return outcome


TREES = {
  "c1": {"index.html": b"<h1>one</h1>", "css/site.css": b"body {}"},
  "c2": {"index.html": b"<h1>two</h1>"},
}


@pytest.fixture
def make_pipeline():
  """Factory for pipelines over in-memory parts; shut down after the test."""
  pipelines: list[Pipeline] = []

  def make(invoker: ScriptedInvoker | None = None, **kwargs: Any) -> Pipeline:
    kwargs.setdefault("branch", "master")
    kwargs.setdefault("user_parameters", "example.com")
    kwargs.setdefault("timeout", 5.0)
    pipeline = Pipeline(
      "site",
      source=MemorySource(TREES, head="c2"),
      store=MemoryStore(),
      invoker=invoker or ScriptedInvoker(),
      **kwargs,
    )
    pipelines.append(pipeline)
    return pipeline

  yield make
  for pipeline in pipelines:
    pipeline.shutdown()


@pytest.fixture
def scripted_invoker():
  return ScriptedInvoker
