"""Fan-out of repository events to independent subscribers.

The repository side only publishes. Each subscriber is called on its own
executor task, so one that raises or hangs never delays or prevents
delivery to the others.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import boto3

from .pipeline import Pipeline, PipelineRun

LOG = logging.getLogger(__name__)

BRANCH_PREFIX = "refs/heads/"
# SNS rejects longer subjects
MAX_SUBJECT_LENGTH = 100


@dataclass(frozen=True)
class RepositoryEvent:
  """A change to one branch of a repository."""

  repository: str
  branch: str
  commit_id: str
  event_name: str = "updateReference"
  time: str = ""

  @classmethod
  def from_codecommit_record(cls, record: dict[str, Any]) -> list["RepositoryEvent"]:
    """Events for a CodeCommit trigger record, one per updated reference."""
    repository = record["eventSourceARN"].rsplit(":", 1)[-1]
    events = []
    for reference in record.get("codecommit", {}).get("references", []):
      ref = reference.get("ref", "")
      events.append(
        cls(
          repository=repository,
          branch=ref[len(BRANCH_PREFIX) :] if ref.startswith(BRANCH_PREFIX) else ref,
          commit_id=reference.get("commit", ""),
          event_name=record.get("eventName", "updateReference"),
          time=record.get("eventTime", ""),
        )
      )
    return events

  @classmethod
  def now(cls, repository: str, branch: str, commit_id: str) -> "RepositoryEvent":
    return cls(
      repository=repository,
      branch=branch,
      commit_id=commit_id,
      time=datetime.now(timezone.utc).isoformat(),
    )

  def summary(self) -> str:
    return f"{self.event_name} in {self.repository}: {self.branch} at {self.commit_id[:7]}"


Handler = Callable[[RepositoryEvent], Any]


@dataclass
class Delivery:
  """Outcome of handing one event to one subscriber."""

  subscriber: str
  future: Future

  @property
  def done(self) -> bool:
    return self.future.done()

  def result(self, timeout: float | None = None) -> Any:
    return self.future.result(timeout)

  def error(self, timeout: float | None = None) -> BaseException | None:
    return self.future.exception(timeout)


class EventBus:
  """Delivers repository events to every registered subscriber."""

  def __init__(self, max_workers: int = 8) -> None:
    self._subscribers: dict[str, Handler] = {}
    self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gitsite-event")

  def __enter__(self) -> "EventBus":
    return self

  def __exit__(self, *exc_info: Any) -> None:
    self.shutdown()

  @property
  def subscribers(self) -> list[str]:
    return list(self._subscribers)

  def subscribe(self, name: str, handler: Handler) -> None:
    if name in self._subscribers:
      raise ValueError(f"Subscriber {name} is already registered")
    self._subscribers[name] = handler

  def unsubscribe(self, name: str) -> None:
    self._subscribers.pop(name, None)

  def publish(self, event: RepositoryEvent) -> list[Delivery]:
    """Hand the event to every subscriber without waiting for any of them."""
    LOG.info("Publishing %s", event.summary())
    return [
      Delivery(name, self._executor.submit(self._deliver, name, handler, event))
      for name, handler in list(self._subscribers.items())
    ]

  def shutdown(self, wait: bool = True) -> None:
    self._executor.shutdown(wait=wait)

  def _deliver(self, name: str, handler: Handler, event: RepositoryEvent) -> Any:
    try:
      return handler(event)
    except Exception:
      LOG.exception("Subscriber %s failed for commit %s", name, event.commit_id)
      raise


class NotificationChannel:
  """Publishes a change summary to the site's SNS topic."""

  def __init__(self, topic_arn: str, client: Any = None) -> None:
    self.topic_arn = topic_arn
    self.client = client or boto3.client("sns")

  def __call__(self, event: RepositoryEvent) -> str:
    subject = f"Activity in {event.repository} Git repository"[:MAX_SUBJECT_LENGTH]
    message = "\n".join(
      [
        event.summary(),
        "",
        f"Repository: {event.repository}",
        f"Branch: {event.branch}",
        f"Commit: {event.commit_id}",
        f"Time: {event.time or 'unknown'}",
      ]
    )
    response = self.client.publish(TopicArn=self.topic_arn, Subject=subject, Message=message)
    return response["MessageId"]


class PipelineTrigger:
  """Starts a pipeline run for events on the pipeline's branch."""

  def __init__(self, pipeline: Pipeline) -> None:
    self.pipeline = pipeline

  def __call__(self, event: RepositoryEvent) -> "Future[PipelineRun] | None":
    if event.branch != self.pipeline.branch:
      LOG.debug("Ignoring %s, pipeline follows %s", event.branch, self.pipeline.branch)
      return None
    return self.pipeline.trigger(event.commit_id)
