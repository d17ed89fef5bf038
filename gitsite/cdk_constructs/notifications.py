"""SNS topic announcing repository activity."""

from aws_cdk import Fn
from aws_cdk import aws_sns as sns
from constructs import Construct


class ChangeNotifications(Construct):
  """Topic for Git activity with the operator's email subscribed."""

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    operator_email: str,
  ) -> None:
    super().__init__(scope, id)

    self.topic = sns.CfnTopic(
      self,
      "Topic",
      display_name=Fn.join("", ["Activity in ", domain_name, " Git repository"]),
      subscription=[
        sns.CfnTopic.SubscriptionProperty(endpoint=operator_email, protocol="email"),
      ],
    )
    self.topic.override_logical_id("NotificationTopic")
