"""Provider for AWS::S3::Bucket."""

import logging
from typing import Any, Mapping

from botocore.exceptions import ClientError

from .. import regions
from ..exceptions import UnsupportedRegionError
from .base import ProviderContext, ProviderResult, ResourceProvider, completing, generate_name

LOG = logging.getLogger(__name__)

# CloudFormation AccessControl values to canned S3 ACLs
CANNED_ACLS = {
  "Private": "private",
  "PublicRead": "public-read",
  "PublicReadWrite": "public-read-write",
  "AuthenticatedRead": "authenticated-read",
  "LogDeliveryWrite": "log-delivery-write",
  "BucketOwnerRead": "bucket-owner-read",
  "BucketOwnerFullControl": "bucket-owner-full-control",
  "AwsExecRead": "aws-exec-read",
}

PUBLIC_ACLS = {"PublicRead", "PublicReadWrite"}


class BucketProvider(ResourceProvider):
  """S3 bucket with ACL, website, logging and versioning configuration."""

  resource_type = "AWS::S3::Bucket"
  replace_on = frozenset({"BucketName"})

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    s3 = context.client("s3")
    bucket_name = properties.get("BucketName") or generate_name(
      context, logical_id, max_length=63
    ).lower()

    params: dict[str, Any] = {"Bucket": bucket_name}
    if context.region != "us-east-1":
      params["CreateBucketConfiguration"] = {"LocationConstraint": context.region}
    LOG.info("Creating bucket %s", bucket_name)
    s3.create_bucket(**params)

    with completing(bucket_name):
      self._configure(s3, bucket_name, {}, properties)
    return ProviderResult(bucket_name, self._attributes(bucket_name, context))

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    s3 = context.client("s3")
    self._configure(s3, physical_id, previous, properties)
    return ProviderResult(physical_id, self._attributes(physical_id, context))

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    s3 = context.client("s3")
    try:
      self._empty(s3, physical_id)
      s3.delete_bucket(Bucket=physical_id)
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") != "NoSuchBucket":
        raise

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    try:
      context.client("s3").head_bucket(Bucket=physical_id)
      return True
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") in ("404", "NoSuchBucket"):
        return False
      raise

  def _configure(
    self,
    s3: Any,
    bucket_name: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
  ) -> None:
    access_control = properties.get("AccessControl")
    if access_control:
      # New buckets disable ACLs; canned ACLs need object writer ownership
      s3.put_bucket_ownership_controls(
        Bucket=bucket_name,
        OwnershipControls={"Rules": [{"ObjectOwnership": "ObjectWriter"}]},
      )
      if access_control in PUBLIC_ACLS:
        s3.put_public_access_block(
          Bucket=bucket_name,
          PublicAccessBlockConfiguration={
            "BlockPublicAcls": False,
            "IgnorePublicAcls": False,
            "BlockPublicPolicy": False,
            "RestrictPublicBuckets": False,
          },
        )
      s3.put_bucket_acl(Bucket=bucket_name, ACL=CANNED_ACLS[access_control])

    website = properties.get("WebsiteConfiguration")
    if website:
      s3.put_bucket_website(
        Bucket=bucket_name, WebsiteConfiguration=_website_configuration(website)
      )
    elif previous.get("WebsiteConfiguration"):
      s3.delete_bucket_website(Bucket=bucket_name)

    logging_config = properties.get("LoggingConfiguration")
    if logging_config:
      s3.put_bucket_logging(
        Bucket=bucket_name,
        BucketLoggingStatus={
          "LoggingEnabled": {
            "TargetBucket": logging_config["DestinationBucketName"],
            "TargetPrefix": logging_config.get("LogFilePrefix", ""),
          }
        },
      )
    elif previous.get("LoggingConfiguration"):
      s3.put_bucket_logging(Bucket=bucket_name, BucketLoggingStatus={})

    versioning = properties.get("VersioningConfiguration")
    if versioning:
      s3.put_bucket_versioning(
        Bucket=bucket_name,
        VersioningConfiguration={"Status": versioning["Status"]},
      )
    elif previous.get("VersioningConfiguration"):
      s3.put_bucket_versioning(
        Bucket=bucket_name, VersioningConfiguration={"Status": "Suspended"}
      )

  def _empty(self, s3: Any, bucket_name: str) -> None:
    """Delete every object version so the bucket itself can be deleted."""
    paginator = s3.get_paginator("list_object_versions")
    for page in paginator.paginate(Bucket=bucket_name):
      objects = [
        {"Key": item["Key"], "VersionId": item["VersionId"]}
        for item in page.get("Versions", []) + page.get("DeleteMarkers", [])
      ]
      if objects:
        s3.delete_objects(Bucket=bucket_name, Delete={"Objects": objects, "Quiet": True})

  def _attributes(self, bucket_name: str, context: ProviderContext) -> dict[str, Any]:
    attributes = {
      "Arn": f"arn:{context.partition}:s3:::{bucket_name}",
      "DomainName": f"{bucket_name}.s3.amazonaws.com",
      "RegionalDomainName": f"{bucket_name}.s3.{context.region}.amazonaws.com",
    }
    try:
      endpoint = regions.lookup(context.region)
      attributes["WebsiteURL"] = f"http://{endpoint.website_host(bucket_name)}"
    except UnsupportedRegionError:
      LOG.debug("No website endpoint known for %s", context.region)
    return attributes


def _website_configuration(website: Mapping[str, Any]) -> dict[str, Any]:
  """Translate the CloudFormation WebsiteConfiguration to the S3 API shape."""
  redirect = website.get("RedirectAllRequestsTo")
  if redirect:
    target = {"HostName": redirect["HostName"]}
    if "Protocol" in redirect:
      target["Protocol"] = redirect["Protocol"]
    return {"RedirectAllRequestsTo": target}

  config: dict[str, Any] = {"IndexDocument": {"Suffix": website.get("IndexDocument", "index.html")}}
  if "ErrorDocument" in website:
    config["ErrorDocument"] = {"Key": website["ErrorDocument"]}
  return config
