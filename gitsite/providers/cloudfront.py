"""Provider for AWS::CloudFront::Distribution."""

import logging
import time
from typing import Any, Mapping

from botocore.exceptions import ClientError

from .base import ProviderContext, ProviderResult, ResourceProvider

LOG = logging.getLogger(__name__)


def _items(values: list[Any] | None) -> dict[str, Any]:
  values = list(values or [])
  result: dict[str, Any] = {"Quantity": len(values)}
  if values:
    result["Items"] = values
  return result


def distribution_config(
  config: Mapping[str, Any], caller_reference: str
) -> dict[str, Any]:
  """Translate a CloudFormation DistributionConfig into the CloudFront API shape."""
  origins = []
  for origin in config.get("Origins", []):
    api_origin: dict[str, Any] = {
      "Id": origin["Id"],
      "DomainName": origin["DomainName"],
      "OriginPath": origin.get("OriginPath", ""),
    }
    custom = origin.get("CustomOriginConfig")
    if custom:
      api_origin["CustomOriginConfig"] = {
        "HTTPPort": int(custom.get("HTTPPort", 80)),
        "HTTPSPort": int(custom.get("HTTPSPort", 443)),
        "OriginProtocolPolicy": custom["OriginProtocolPolicy"],
      }
    else:
      api_origin["S3OriginConfig"] = {
        "OriginAccessIdentity": origin.get("S3OriginConfig", {}).get(
          "OriginAccessIdentity", ""
        )
      }
    origins.append(api_origin)

  behavior = config["DefaultCacheBehavior"]
  allowed_methods = behavior.get("AllowedMethods", ["GET", "HEAD"])
  cached_methods = behavior.get("CachedMethods", ["GET", "HEAD"])
  forwarded = behavior.get("ForwardedValues", {})
  default_behavior: dict[str, Any] = {
    "TargetOriginId": behavior["TargetOriginId"],
    "ViewerProtocolPolicy": behavior["ViewerProtocolPolicy"],
    "AllowedMethods": {**_items(allowed_methods), "CachedMethods": _items(cached_methods)},
    "Compress": bool(behavior.get("Compress", False)),
    "MinTTL": int(behavior.get("MinTTL", 0)),
    "DefaultTTL": int(behavior.get("DefaultTTL", 86400)),
    "MaxTTL": int(behavior.get("MaxTTL", 31536000)),
    "ForwardedValues": {
      "QueryString": bool(forwarded.get("QueryString", False)),
      "Cookies": {"Forward": forwarded.get("Cookies", {}).get("Forward", "none")},
    },
  }

  api_config: dict[str, Any] = {
    "CallerReference": caller_reference,
    "Comment": config.get("Comment", ""),
    "Enabled": bool(config.get("Enabled", True)),
    "Aliases": _items(config.get("Aliases")),
    "DefaultRootObject": config.get("DefaultRootObject", ""),
    "Origins": _items(origins),
    "DefaultCacheBehavior": default_behavior,
  }

  logging_config = config.get("Logging")
  if logging_config:
    api_config["Logging"] = {
      "Enabled": True,
      "IncludeCookies": bool(logging_config.get("IncludeCookies", False)),
      "Bucket": logging_config["Bucket"],
      "Prefix": logging_config.get("Prefix", ""),
    }

  certificate = config.get("ViewerCertificate")
  if certificate:
    if certificate.get("AcmCertificateArn"):
      api_config["ViewerCertificate"] = {
        "ACMCertificateArn": certificate["AcmCertificateArn"],
        "SSLSupportMethod": certificate.get("SslSupportMethod", "sni-only"),
        "MinimumProtocolVersion": certificate.get("MinimumProtocolVersion", "TLSv1.2_2021"),
      }
    else:
      api_config["ViewerCertificate"] = {"CloudFrontDefaultCertificate": True}

  return api_config


class DistributionProvider(ResourceProvider):
  """CloudFront distribution; deletion disables the distribution first."""

  resource_type = "AWS::CloudFront::Distribution"

  def __init__(self, wait_delay: int = 60, wait_attempts: int = 35) -> None:
    self.wait_delay = wait_delay
    self.wait_attempts = wait_attempts

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    cloudfront = context.client("cloudfront")
    caller_reference = f"{context.stack_name}-{logical_id}-{int(time.time())}"
    response = cloudfront.create_distribution(
      DistributionConfig=distribution_config(
        properties["DistributionConfig"], caller_reference
      )
    )
    distribution = response["Distribution"]
    LOG.info(
      "Created distribution %s (%s)", distribution["Id"], distribution["DomainName"]
    )
    return ProviderResult(distribution["Id"], {"DomainName": distribution["DomainName"]})

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    cloudfront = context.client("cloudfront")
    current = cloudfront.get_distribution_config(Id=physical_id)
    caller_reference = current["DistributionConfig"]["CallerReference"]
    response = cloudfront.update_distribution(
      Id=physical_id,
      IfMatch=current["ETag"],
      DistributionConfig=distribution_config(
        properties["DistributionConfig"], caller_reference
      ),
    )
    return ProviderResult(
      physical_id, {"DomainName": response["Distribution"]["DomainName"]}
    )

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    cloudfront = context.client("cloudfront")
    try:
      current = cloudfront.get_distribution_config(Id=physical_id)
    except cloudfront.exceptions.NoSuchDistribution:
      return

    etag = current["ETag"]
    config = current["DistributionConfig"]
    if config.get("Enabled"):
      LOG.info("Disabling distribution %s before deletion", physical_id)
      config["Enabled"] = False
      response = cloudfront.update_distribution(
        Id=physical_id, IfMatch=etag, DistributionConfig=config
      )
      etag = response["ETag"]

    cloudfront.get_waiter("distribution_deployed").wait(
      Id=physical_id,
      WaiterConfig={"Delay": self.wait_delay, "MaxAttempts": self.wait_attempts},
    )
    cloudfront.delete_distribution(Id=physical_id, IfMatch=etag)

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    try:
      context.client("cloudfront").get_distribution(Id=physical_id)
      return True
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") == "NoSuchDistribution":
        return False
      raise
