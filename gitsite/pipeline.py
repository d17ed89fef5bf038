"""Orchestration pipeline publishing a branch to the site bucket.

A run moves Idle -> SourceFetch -> BuildOutput -> Invoke and ends in
Succeeded or Failed. Runs are single-flight: a trigger that arrives while a
run is active is queued and executed afterwards, in arrival order. A failed
run never touches the provisioned infrastructure.
"""

import io
import json
import logging
import threading
import time
import uuid
import zipfile
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

import boto3

from .exceptions import PipelineError, PipelineStateError
from .functions import site_sync

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0
# Fixed timestamp so identical trees produce identical archives
ARCHIVE_DATE_TIME = (1980, 1, 1, 0, 0, 0)


class RunState(Enum):
  IDLE = "Idle"
  SOURCE_FETCH = "SourceFetch"
  BUILD_OUTPUT = "BuildOutput"
  INVOKE = "Invoke"
  SUCCEEDED = "Succeeded"
  FAILED = "Failed"


TRANSITIONS = {
  RunState.IDLE: {RunState.SOURCE_FETCH},
  RunState.SOURCE_FETCH: {RunState.BUILD_OUTPUT, RunState.FAILED},
  RunState.BUILD_OUTPUT: {RunState.INVOKE, RunState.FAILED},
  RunState.INVOKE: {RunState.SUCCEEDED, RunState.FAILED},
  RunState.SUCCEEDED: set(),
  RunState.FAILED: set(),
}


@dataclass(frozen=True)
class Artifact:
  """A stored build output."""

  bucket: str
  key: str
  version: str | None = None

  def to_dict(self) -> dict[str, Any]:
    return {"bucket": self.bucket, "key": self.key, "version": self.version}


@dataclass
class PipelineRun:
  """One execution of the pipeline."""

  run_id: str
  commit_id: str | None = None
  state: RunState = RunState.IDLE
  history: list[RunState] = field(default_factory=lambda: [RunState.IDLE])
  artifact: Artifact | None = None
  result: Mapping[str, Any] | None = None
  error: str | None = None
  attempts: int = 0

  @property
  def finished(self) -> bool:
    return self.state in (RunState.SUCCEEDED, RunState.FAILED)

  def advance(self, state: RunState) -> None:
    if state not in TRANSITIONS[self.state]:
      raise PipelineStateError(
        f"Run {self.run_id} cannot move from {self.state.value} to {state.value}"
      )
    LOG.info("Run %s: %s -> %s", self.run_id, self.state.value, state.value)
    self.state = state
    self.history.append(state)


def build_archive(tree: Mapping[str, bytes]) -> bytes:
  """Zip a source tree deterministically."""
  buffer = io.BytesIO()
  with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
    for path in sorted(tree):
      info = zipfile.ZipInfo(path.lstrip("/"), date_time=ARCHIVE_DATE_TIME)
      info.compress_type = zipfile.ZIP_DEFLATED
      archive.writestr(info, tree[path])
  return buffer.getvalue()


# Sources


class SourceRepository(ABC):
  """Snapshots the tree of a branch."""

  @abstractmethod
  def snapshot(self, branch: str, commit_id: str | None = None) -> tuple[str, dict[str, bytes]]:
    """Return the commit id and the file tree at that commit.

    Without ``commit_id`` the current head of the branch is used.
    """


class CodeCommitSource(SourceRepository):
  def __init__(self, repository_name: str, client: Any = None) -> None:
    self.repository_name = repository_name
    self.client = client or boto3.client("codecommit")

  def head(self, branch: str) -> str:
    response = self.client.get_branch(repositoryName=self.repository_name, branchName=branch)
    return response["branch"]["commitId"]

  def snapshot(self, branch: str, commit_id: str | None = None) -> tuple[str, dict[str, bytes]]:
    commit_id = commit_id or self.head(branch)
    tree: dict[str, bytes] = {}
    self._walk(commit_id, "/", tree)
    LOG.info("Fetched %d files of %s at %s", len(tree), self.repository_name, commit_id)
    return commit_id, tree

  def _walk(self, commit_id: str, folder: str, tree: dict[str, bytes]) -> None:
    response = self.client.get_folder(
      repositoryName=self.repository_name, commitSpecifier=commit_id, folderPath=folder
    )
    for entry in response.get("files", []):
      blob = self.client.get_blob(repositoryName=self.repository_name, blobId=entry["blobId"])
      tree[entry["absolutePath"].lstrip("/")] = blob["content"]
    for sub_folder in response.get("subFolders", []):
      self._walk(commit_id, sub_folder["absolutePath"], tree)


# Artifact stores


class ArtifactStore(ABC):
  @abstractmethod
  def put(self, key: str, data: bytes) -> Artifact:
    ...


class S3ArtifactStore(ArtifactStore):
  """Stores artifacts in a versioned bucket, each upload gets its own version."""

  def __init__(self, bucket: str, prefix: str = "", client: Any = None) -> None:
    self.bucket = bucket
    self.prefix = prefix
    self.client = client or boto3.client("s3")

  def put(self, key: str, data: bytes) -> Artifact:
    key = f"{self.prefix}{key}"
    response = self.client.put_object(Bucket=self.bucket, Key=key, Body=data)
    return Artifact(self.bucket, key, response.get("VersionId"))


# Invokers


class FunctionInvoker(ABC):
  @abstractmethod
  def invoke(self, user_parameters: str, artifact: Artifact) -> Mapping[str, Any]:
    """Run the glue function on an artifact.

    Raises:
      PipelineError: If the function reports a failure.
    """


class LambdaInvoker(FunctionInvoker):
  """Invokes the deployed sync function synchronously."""

  def __init__(self, function_name: str, client: Any = None) -> None:
    self.function_name = function_name
    self.client = client or boto3.client("lambda")

  def invoke(self, user_parameters: str, artifact: Artifact) -> Mapping[str, Any]:
    response = self.client.invoke(
      FunctionName=self.function_name,
      InvocationType="RequestResponse",
      Payload=json.dumps({"domain": user_parameters, "artifact": artifact.to_dict()}).encode(),
    )
    payload = json.loads(response["Payload"].read() or b"{}")
    if response.get("FunctionError"):
      raise PipelineError(
        f"Function {self.function_name} failed: {payload.get('errorMessage', 'unknown error')}"
      )
    if payload.get("status") == "failed":
      raise PipelineError(f"Function {self.function_name} failed: {payload.get('error')}")
    return payload


class LocalSyncInvoker(FunctionInvoker):
  """Runs the sync in-process with the caller's credentials."""

  def __init__(self, client: Any = None) -> None:
    self.client = client or boto3.client("s3")

  def invoke(self, user_parameters: str, artifact: Artifact) -> Mapping[str, Any]:
    result = site_sync.sync_artifact(
      self.client, user_parameters, artifact.bucket, artifact.key, artifact.version
    )
    return result.to_dict()


# Pipeline


@dataclass(frozen=True)
class PipelineDefinition:
  branch: str = "master"
  user_parameters: str = ""
  timeout: float = DEFAULT_TIMEOUT
  max_attempts: int = 1
  backoff: float = 1.0


class Pipeline:
  """Source -> build -> invoke, one run at a time.

  Args:
    name: Pipeline name, also the artifact key prefix
    source: Where the branch tree comes from
    store: Where archives are kept
    invoker: Runs the glue function
    branch: Branch to publish
    user_parameters: Passed to the function, the domain name
    timeout: Seconds to wait for the invocation
    max_attempts: Invocation attempts before the run fails
    backoff: Base delay between attempts, doubled each time
  """

  def __init__(
    self,
    name: str,
    *,
    source: SourceRepository,
    store: ArtifactStore,
    invoker: FunctionInvoker,
    branch: str = "master",
    user_parameters: str = "",
    timeout: float = DEFAULT_TIMEOUT,
    max_attempts: int = 1,
    backoff: float = 1.0,
  ) -> None:
    self.name = name
    self.source = source
    self.store = store
    self.invoker = invoker
    self.runs: list[PipelineRun] = []
    self._definition = PipelineDefinition(
      branch=branch,
      user_parameters=user_parameters,
      timeout=timeout,
      max_attempts=max(1, max_attempts),
      backoff=backoff,
    )
    self._lock = threading.Lock()
    self._active: PipelineRun | None = None
    # One worker: queued runs execute one after another in FIFO order
    self._runner = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{name}-run")
    # One sync at a time: the content bucket has a single writer
    self._invoke_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{name}-invoke")
    self._last_invocation: Future | None = None

  def __enter__(self) -> "Pipeline":
    return self

  def __exit__(self, *exc_info: Any) -> None:
    self.shutdown()

  @property
  def branch(self) -> str:
    return self._definition.branch

  @property
  def definition(self) -> PipelineDefinition:
    return self._definition

  @property
  def active(self) -> PipelineRun | None:
    return self._active

  def update(self, **changes: Any) -> PipelineDefinition:
    """Change the definition for future runs without starting one."""
    with self._lock:
      self._definition = replace(self._definition, **changes)
      LOG.info("Updated pipeline %s: %s", self.name, changes)
      return self._definition

  def trigger(self, commit_id: str | None = None) -> "Future[PipelineRun]":
    """Queue a run; it starts once every earlier run has finished."""
    run = PipelineRun(run_id=uuid.uuid4().hex[:12], commit_id=commit_id)
    with self._lock:
      self.runs.append(run)
    LOG.info("Queued run %s of %s for %s", run.run_id, self.name, commit_id or "branch head")
    return self._runner.submit(self._execute, run)

  def run(self, commit_id: str | None = None) -> PipelineRun:
    return self.trigger(commit_id).result()

  def shutdown(self, wait: bool = True) -> None:
    self._runner.shutdown(wait=wait)
    # Timed out invocations are not cancelled, do not wait for them
    self._invoke_pool.shutdown(wait=False)

  def _execute(self, run: PipelineRun) -> PipelineRun:
    with self._lock:
      definition = self._definition
      self._active = run
    try:
      run.advance(RunState.SOURCE_FETCH)
      run.commit_id, tree = self.source.snapshot(definition.branch, run.commit_id)

      run.advance(RunState.BUILD_OUTPUT)
      run.artifact = self.store.put(f"{self.name}/{run.commit_id}.zip", build_archive(tree))

      run.advance(RunState.INVOKE)
      run.result = self._invoke(run, definition)
      run.advance(RunState.SUCCEEDED)
    except Exception as e:
      run.error = str(e)
      LOG.error("Run %s of %s failed in %s: %s", run.run_id, self.name, run.state.value, e)
      run.advance(RunState.FAILED)
    finally:
      with self._lock:
        self._active = None
    return run

  def _invoke(self, run: PipelineRun, definition: PipelineDefinition) -> Mapping[str, Any]:
    error: Exception | None = None
    for attempt in range(1, definition.max_attempts + 1):
      run.attempts = attempt
      self._await_previous_invocation(run)
      future = self._invoke_pool.submit(
        self.invoker.invoke, definition.user_parameters, run.artifact
      )
      self._last_invocation = future
      try:
        return future.result(timeout=definition.timeout)
      except FutureTimeout:
        error = PipelineError(f"Invocation timed out after {definition.timeout}s")
      except Exception as e:
        error = e
      if attempt < definition.max_attempts:
        delay = definition.backoff * 2 ** (attempt - 1)
        LOG.warning(
          "Attempt %d of run %s failed (%s), retrying in %.1fs", attempt, run.run_id, error, delay
        )
        time.sleep(delay)
    raise error

  def _await_previous_invocation(self, run: PipelineRun) -> None:
    """Block until a timed out invocation has finished writing."""
    previous = self._last_invocation
    if previous is None or previous.done():
      return
    LOG.warning(
      "Run %s of %s waits for a timed out invocation to finish", run.run_id, self.name
    )
    wait([previous])
