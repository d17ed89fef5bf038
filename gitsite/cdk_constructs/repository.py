"""CodeCommit repository holding the site's source tree."""

from aws_cdk import Fn, RemovalPolicy
from aws_cdk import aws_codecommit as codecommit
from aws_cdk import aws_sns as sns
from constructs import Construct


class SiteRepository(Construct):
  """Git repository named after the domain, announcing all events to a topic."""

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    topic: sns.CfnTopic,
    removal_policy: RemovalPolicy = RemovalPolicy.RETAIN,
  ) -> None:
    super().__init__(scope, id)

    self.repository = codecommit.CfnRepository(
      self,
      "Repository",
      repository_name=domain_name,
      repository_description=Fn.join("", ["Git repository for ", domain_name]),
      triggers=[
        codecommit.CfnRepository.RepositoryTriggerProperty(
          name=Fn.join("", ["Activity in ", domain_name, " Git repository"]),
          destination_arn=topic.ref,
          events=["all"],
        )
      ],
    )
    self.repository.override_logical_id("GitRepository")
    self.repository.apply_removal_policy(removal_policy)
