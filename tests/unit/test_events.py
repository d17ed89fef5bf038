"""Tests for repository event fan-out."""

import threading
from unittest.mock import MagicMock

import pytest

from gitsite.events import EventBus, NotificationChannel, PipelineTrigger, RepositoryEvent
from gitsite.pipeline import Pipeline, RunState

EVENT = RepositoryEvent(repository="example.com", branch="master", commit_id="0123456789abcdef")

RECORD = {
  "eventSourceARN": "arn:aws:codecommit:us-east-1:123456789012:example.com",
  "eventName": "ReferenceChanges",
  "eventTime": "2024-05-01T12:00:00.000+0000",
  "codecommit": {
    "references": [
      {"commit": "0123456789abcdef", "ref": "refs/heads/master"},
      {"commit": "fedcba9876543210", "ref": "refs/tags/v1"},
    ]
  },
}


@pytest.fixture
def bus():
  with EventBus(max_workers=4) as bus:
    yield bus


class TestRepositoryEvent:
  """Test event parsing and formatting."""

  def test_from_codecommit_record(self) -> None:
    """Each reference becomes an event; branch refs lose their prefix."""
    events = RepositoryEvent.from_codecommit_record(RECORD)

    assert [e.branch for e in events] == ["master", "refs/tags/v1"]
    assert events[0].repository == "example.com"
    assert events[0].commit_id == "0123456789abcdef"
    assert events[0].event_name == "ReferenceChanges"
    assert events[0].time == "2024-05-01T12:00:00.000+0000"

  def test_summary(self) -> None:
    """Summaries show the short commit id."""
    assert EVENT.summary() == "updateReference in example.com: master at 0123456"

  def test_now_sets_time(self) -> None:
    """Locally created events carry a timestamp."""
    assert RepositoryEvent.now("example.com", "master", "abc").time


class TestEventBus:
  """Test subscriber isolation."""

  def test_all_subscribers_receive(self, bus: EventBus) -> None:
    """Every subscriber gets the event."""
    bus.subscribe("one", lambda event: event.commit_id)
    bus.subscribe("two", lambda event: event.branch)

    deliveries = bus.publish(EVENT)

    assert {d.subscriber: d.result(5) for d in deliveries} == {
      "one": "0123456789abcdef",
      "two": "master",
    }

  def test_failing_subscriber_isolated(self, bus: EventBus) -> None:
    """A raising subscriber does not affect the others."""

    def broken(event: RepositoryEvent) -> None:
      raise RuntimeError("mail server down")

    bus.subscribe("broken", broken)
    bus.subscribe("ok", lambda event: "delivered")

    broken_delivery, ok_delivery = bus.publish(EVENT)

    assert isinstance(broken_delivery.error(5), RuntimeError)
    assert ok_delivery.result(5) == "delivered"
    assert ok_delivery.error(5) is None

  def test_slow_subscriber_does_not_block(self, bus: EventBus) -> None:
    """Delivery to a fast subscriber completes while a slow one hangs."""
    release = threading.Event()
    bus.subscribe("slow", lambda event: release.wait(5))
    bus.subscribe("fast", lambda event: "done")
    try:
      slow, fast = bus.publish(EVENT)
      assert fast.result(5) == "done"
      assert not slow.done
    finally:
      release.set()

  def test_duplicate_subscriber(self, bus: EventBus) -> None:
    """Subscriber names are unique."""
    bus.subscribe("one", print)
    with pytest.raises(ValueError, match="already registered"):
      bus.subscribe("one", print)

  def test_unsubscribe(self, bus: EventBus) -> None:
    """Removed subscribers get nothing."""
    bus.subscribe("one", print)
    bus.unsubscribe("one")
    assert bus.subscribers == []
    assert bus.publish(EVENT) == []


class TestNotificationChannel:
  """Test email notifications via SNS."""

  def test_publishes_summary(self) -> None:
    """The change summary is published to the topic."""
    client = MagicMock()
    client.publish.return_value = {"MessageId": "m-1"}
    channel = NotificationChannel("arn:aws:sns:us-east-1:123456789012:topic", client)

    assert channel(EVENT) == "m-1"

    kwargs = client.publish.call_args.kwargs
    assert kwargs["TopicArn"] == "arn:aws:sns:us-east-1:123456789012:topic"
    assert kwargs["Subject"] == "Activity in example.com Git repository"
    assert "Commit: 0123456789abcdef" in kwargs["Message"]

  def test_subject_truncated(self) -> None:
    """Subjects are cut to the SNS limit."""
    client = MagicMock()
    client.publish.return_value = {"MessageId": "m-2"}
    event = RepositoryEvent(repository="a" * 120, branch="master", commit_id="abc")

    NotificationChannel("arn", client)(event)

    assert len(client.publish.call_args.kwargs["Subject"]) == 100


class TestPipelineTrigger:
  """Test starting pipeline runs from events."""

  def test_other_branch_ignored(self) -> None:
    """Events on other branches start nothing."""
    pipeline = MagicMock(spec=Pipeline)
    pipeline.branch = "master"

    assert PipelineTrigger(pipeline)(RepositoryEvent("example.com", "feature", "abc")) is None
    pipeline.trigger.assert_not_called()

  def test_branch_event_runs_pipeline(self, bus: EventBus, make_pipeline) -> None:
    """An event on the pipeline's branch runs it for that commit."""
    pipeline = make_pipeline()
    bus.subscribe("pipeline", PipelineTrigger(pipeline))

    (delivery,) = bus.publish(RepositoryEvent("example.com", "master", "c1"))
    run = delivery.result(5).result(5)

    assert run.state is RunState.SUCCEEDED
    assert run.commit_id == "c1"
