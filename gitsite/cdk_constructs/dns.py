"""Route 53 hosted zone and site records."""

from aws_cdk import Aws, Fn
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_route53 as route53
from constructs import Construct

from ..regions import CLOUDFRONT_HOSTED_ZONE_ID

WWW_TTL = "900"


class SiteDns(Construct):
  """Route 53 hosted zone for the domain."""

  def __init__(self, scope: Construct, id: str, *, domain_name: str) -> None:
    super().__init__(scope, id)

    self.domain_name = domain_name

    self.hosted_zone = route53.CfnHostedZone(
      self,
      "HostedZone",
      name=domain_name,
      hosted_zone_config=route53.CfnHostedZone.HostedZoneConfigProperty(
        comment=Fn.join("", ["Created by gitsite stack: ", Aws.STACK_NAME]),
      ),
    )
    self.hosted_zone.override_logical_id("Route53HostedZone")

  def create_cloudfront_records(
    self, distribution: cloudfront.CfnDistribution
  ) -> route53.CfnRecordSetGroup:
    """Point the apex at CloudFront and www at the apex."""
    apex = Fn.join("", [self.domain_name, "."])

    self.records = route53.CfnRecordSetGroup(
      self,
      "Records",
      hosted_zone_id=self.hosted_zone.ref,
      record_sets=[
        route53.CfnRecordSetGroup.RecordSetProperty(
          name=apex,
          type="A",
          alias_target=route53.CfnRecordSetGroup.AliasTargetProperty(
            hosted_zone_id=CLOUDFRONT_HOSTED_ZONE_ID,
            dns_name=distribution.attr_domain_name,
          ),
        ),
        route53.CfnRecordSetGroup.RecordSetProperty(
          name=Fn.join("", ["www.", self.domain_name, "."]),
          type="CNAME",
          ttl=WWW_TTL,
          resource_records=[apex],
        ),
      ],
    )
    self.records.override_logical_id("Route53RecordSetGroup")
    return self.records
