"""Provider for AWS::SNS::Topic."""

import logging
from typing import Any, Mapping

from botocore.exceptions import ClientError

from .base import ProviderContext, ProviderResult, ResourceProvider, completing, generate_name

LOG = logging.getLogger(__name__)


def _subscription_key(subscription: Mapping[str, Any]) -> tuple[str, str]:
  return subscription["Protocol"], subscription["Endpoint"]


class TopicProvider(ResourceProvider):
  """SNS topic with inline subscriptions."""

  resource_type = "AWS::SNS::Topic"
  replace_on = frozenset({"TopicName"})

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    sns = context.client("sns")
    name = properties.get("TopicName") or generate_name(context, logical_id, max_length=256)
    attributes = {}
    if properties.get("DisplayName"):
      attributes["DisplayName"] = properties["DisplayName"]

    topic_arn = sns.create_topic(Name=name, Attributes=attributes)["TopicArn"]
    with completing(topic_arn):
      for subscription in properties.get("Subscription", []):
        self._subscribe(sns, topic_arn, subscription)
    return ProviderResult(topic_arn, {"TopicArn": topic_arn, "TopicName": name})

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    sns = context.client("sns")
    if previous.get("DisplayName") != properties.get("DisplayName"):
      sns.set_topic_attributes(
        TopicArn=physical_id,
        AttributeName="DisplayName",
        AttributeValue=properties.get("DisplayName", ""),
      )

    wanted = {_subscription_key(s) for s in properties.get("Subscription", [])}
    existing = {}
    paginator = sns.get_paginator("list_subscriptions_by_topic")
    for page in paginator.paginate(TopicArn=physical_id):
      for subscription in page.get("Subscriptions", []):
        existing[_subscription_key(subscription)] = subscription["SubscriptionArn"]

    for key, subscription_arn in existing.items():
      # Unconfirmed email subscriptions cannot be removed
      if key not in wanted and subscription_arn.startswith("arn:"):
        sns.unsubscribe(SubscriptionArn=subscription_arn)
    for subscription in properties.get("Subscription", []):
      if _subscription_key(subscription) not in existing:
        self._subscribe(sns, physical_id, subscription)

    name = physical_id.rsplit(":", 1)[-1]
    return ProviderResult(physical_id, {"TopicArn": physical_id, "TopicName": name})

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    # DeleteTopic is idempotent
    context.client("sns").delete_topic(TopicArn=physical_id)

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    try:
      context.client("sns").get_topic_attributes(TopicArn=physical_id)
      return True
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") == "NotFound":
        return False
      raise

  def _subscribe(self, sns: Any, topic_arn: str, subscription: Mapping[str, Any]) -> None:
    LOG.info(
      "Subscribing %s endpoint %s to %s",
      subscription["Protocol"],
      subscription["Endpoint"],
      topic_arn,
    )
    sns.subscribe(
      TopicArn=topic_arn,
      Protocol=subscription["Protocol"],
      Endpoint=subscription["Endpoint"],
    )
