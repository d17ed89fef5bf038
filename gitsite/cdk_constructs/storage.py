"""S3 buckets for site content, redirects, access logs and pipeline artifacts."""

from aws_cdk import Fn, RemovalPolicy
from aws_cdk import aws_s3 as s3
from constructs import Construct


class SiteBuckets(Construct):
  """The four buckets of a git-backed site.

  Creates:
  - logs.<domain> receiving S3 and CloudFront access logs
  - <domain> serving the site as an S3 website
  - www.<domain> redirecting every request to <domain>
  - codepipeline.<domain> holding versioned pipeline artifacts
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    removal_policy: RemovalPolicy = RemovalPolicy.RETAIN,
  ) -> None:
    super().__init__(scope, id)

    self.logs_bucket = s3.CfnBucket(
      self,
      "Logs",
      bucket_name=Fn.join("", ["logs.", domain_name]),
      access_control="LogDeliveryWrite",
    )
    self.logs_bucket.override_logical_id("LogsBucket")

    # Bucket name must be the exact domain name for S3 website hosting
    self.site_bucket = s3.CfnBucket(
      self,
      "Site",
      bucket_name=domain_name,
      access_control="PublicRead",
      website_configuration=s3.CfnBucket.WebsiteConfigurationProperty(
        index_document="index.html",
        error_document="error.html",
      ),
      logging_configuration=s3.CfnBucket.LoggingConfigurationProperty(
        destination_bucket_name=self.logs_bucket.ref,
        log_file_prefix=Fn.join("", ["logs/s3/", domain_name, "/"]),
      ),
    )
    self.site_bucket.override_logical_id("SiteBucket")
    self.site_bucket.add_dependency(self.logs_bucket)

    self.redirect_bucket = s3.CfnBucket(
      self,
      "Redirect",
      bucket_name=Fn.join("", ["www.", domain_name]),
      access_control="BucketOwnerFullControl",
      logging_configuration=s3.CfnBucket.LoggingConfigurationProperty(
        destination_bucket_name=self.logs_bucket.ref,
        log_file_prefix=Fn.join("", ["logs/s3/", "www.", domain_name, "/"]),
      ),
      website_configuration=s3.CfnBucket.WebsiteConfigurationProperty(
        redirect_all_requests_to=s3.CfnBucket.RedirectAllRequestsToProperty(
          host_name=domain_name,
          protocol="http",
        ),
      ),
    )
    self.redirect_bucket.override_logical_id("RedirectBucket")
    self.redirect_bucket.add_dependency(self.logs_bucket)

    self.artifact_bucket = s3.CfnBucket(
      self,
      "Artifacts",
      bucket_name=Fn.join("", ["codepipeline.", domain_name]),
      versioning_configuration=s3.CfnBucket.VersioningConfigurationProperty(
        status="Enabled",
      ),
    )
    self.artifact_bucket.override_logical_id("CodePipelineBucket")

    for bucket in self.buckets:
      bucket.apply_removal_policy(removal_policy)

  @property
  def buckets(self) -> list[s3.CfnBucket]:
    return [self.logs_bucket, self.site_bucket, self.redirect_bucket, self.artifact_bucket]
