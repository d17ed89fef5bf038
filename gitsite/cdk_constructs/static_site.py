"""Main composite construct for a git-backed static website."""

from aws_cdk import CfnMapping, CfnOutput, RemovalPolicy
from constructs import Construct

from .certificate import SiteCertificate
from .distribution import SiteDistribution
from .dns import SiteDns
from .notifications import ChangeNotifications
from .pipeline import PublishPipeline
from .repository import SiteRepository
from .storage import SiteBuckets
from .sync_function import SiteSyncFunction


class GitBackedSiteConstruct(Construct):
  """Complete git-backed static website infrastructure.

  Creates:
  - S3 buckets for content, www redirect, access logs and pipeline artifacts
  - ACM certificate for the apex and www hosts
  - CloudFront distribution with HTTPS
  - Route 53 hosted zone with apex and www records
  - SNS topic emailing the operator about Git activity
  - CodeCommit repository
  - Lambda function and CodePipeline publishing each commit to the site bucket
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    operator_email: str,
    region_map: CfnMapping,
    branch: str = "master",
    function_code_bucket: str,
    function_code_key: str,
    function_memory: int = 1536,
    function_timeout: int = 300,
    harden_roles: bool = True,
    removal_policy: RemovalPolicy = RemovalPolicy.RETAIN,
  ) -> None:
    super().__init__(scope, id)

    self.storage = SiteBuckets(
      self,
      "Storage",
      domain_name=domain_name,
      removal_policy=removal_policy,
    )

    self.certificate = SiteCertificate(self, "Certificate", domain_name=domain_name)

    self.distribution = SiteDistribution(
      self,
      "Distribution",
      domain_name=domain_name,
      logs_bucket=self.storage.logs_bucket,
      certificate_arn=self.certificate.certificate.ref,
      region_map=region_map,
    )

    self.dns = SiteDns(self, "Dns", domain_name=domain_name)
    self.dns.create_cloudfront_records(self.distribution.distribution)

    self.notifications = ChangeNotifications(
      self,
      "Notifications",
      domain_name=domain_name,
      operator_email=operator_email,
    )

    self.repository = SiteRepository(
      self,
      "Repository",
      domain_name=domain_name,
      topic=self.notifications.topic,
      removal_policy=removal_policy,
    )

    self.sync_function = SiteSyncFunction(
      self,
      "SyncFunction",
      domain_name=domain_name,
      site_bucket=self.storage.site_bucket,
      artifact_bucket=self.storage.artifact_bucket,
      code_bucket=function_code_bucket,
      code_key=function_code_key,
      memory_size=function_memory,
      timeout=function_timeout,
      harden_roles=harden_roles,
    )

    self.pipeline = PublishPipeline(
      self,
      "Pipeline",
      domain_name=domain_name,
      branch=branch,
      repository=self.repository.repository,
      artifact_bucket=self.storage.artifact_bucket,
      function=self.sync_function.function,
      harden_roles=harden_roles,
    )

    # Outputs
    self._output("DomainName", domain_name, "Domain name")
    self._output("WWWDomainName", self.storage.redirect_bucket.ref, "Redirect hostname")
    self._output("LogsBucket", self.storage.logs_bucket.ref, "S3 Bucket with access logs")
    self._output("HostedZoneId", self.dns.hosted_zone.ref, "Route 53 Hosted Zone id")
    self._output(
      "CloudFrontDomain",
      self.distribution.distribution.attr_domain_name,
      "CloudFront distribution domain name",
    )
    self._output(
      "DistributionId", self.distribution.distribution.ref, "CloudFront distribution id"
    )
    self._output("CodePipelineName", self.pipeline.pipeline.ref, "CodePipeline name")
    self._output("GitRepositoryName", domain_name, "Git repository name")
    self._output(
      "GitCloneUrlHttp",
      self.repository.repository.attr_clone_url_http,
      "Git https clone endpoint",
    )
    self._output(
      "GitCloneUrlSsh",
      self.repository.repository.attr_clone_url_ssh,
      "Git ssh clone endpoint",
    )

  def _output(self, name: str, value: str, description: str) -> None:
    output = CfnOutput(self, name, value=value, description=description)
    output.override_logical_id(name)
