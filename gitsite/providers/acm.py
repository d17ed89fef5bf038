"""Provider for AWS::CertificateManager::Certificate."""

import logging
from typing import Any, Mapping

from botocore.exceptions import ClientError

from .base import ProviderContext, ProviderResult, ResourceProvider, completing

LOG = logging.getLogger(__name__)

# CloudFront only accepts certificates issued in us-east-1
CERTIFICATE_REGION = "us-east-1"


class CertificateProvider(ResourceProvider):
  """ACM certificate; creation returns once the certificate is issued."""

  resource_type = "AWS::CertificateManager::Certificate"
  replace_on = frozenset({"DomainName", "SubjectAlternativeNames", "ValidationMethod"})

  def __init__(self, wait_delay: int = 60, wait_attempts: int = 60) -> None:
    self.wait_delay = wait_delay
    self.wait_attempts = wait_attempts

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    acm = context.client("acm", region_name=CERTIFICATE_REGION)

    params: dict[str, Any] = {
      "DomainName": properties["DomainName"],
      "ValidationMethod": properties.get("ValidationMethod", "EMAIL"),
      "IdempotencyToken": logical_id[:32],
    }
    if properties.get("SubjectAlternativeNames"):
      params["SubjectAlternativeNames"] = list(properties["SubjectAlternativeNames"])

    response = acm.request_certificate(**params)
    arn = response["CertificateArn"]
    LOG.info(
      "Requested certificate %s, waiting for %s validation",
      arn,
      params["ValidationMethod"],
    )

    with completing(arn):
      acm.get_waiter("certificate_validated").wait(
        CertificateArn=arn,
        WaiterConfig={"Delay": self.wait_delay, "MaxAttempts": self.wait_attempts},
      )
    return ProviderResult(arn)

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    # Every certificate property forces replacement
    return ProviderResult(physical_id)

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    acm = context.client("acm", region_name=CERTIFICATE_REGION)
    try:
      acm.delete_certificate(CertificateArn=physical_id)
    except acm.exceptions.ResourceNotFoundException:
      LOG.debug("Certificate %s already deleted", physical_id)

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    acm = context.client("acm", region_name=CERTIFICATE_REGION)
    try:
      acm.describe_certificate(CertificateArn=physical_id)
      return True
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
        return False
      raise
