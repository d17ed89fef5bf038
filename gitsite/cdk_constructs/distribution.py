"""CloudFront distribution in front of the S3 website endpoint."""

from aws_cdk import Aws, CfnMapping, Fn
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_s3 as s3
from constructs import Construct

from ..regions import WEBSITE_ENDPOINT_KEY

ORIGIN_ID = "S3Origin"
DEFAULT_TTL = 300


class SiteDistribution(Construct):
  """CloudFront distribution serving the site bucket over HTTPS.

  The origin is the bucket's regional website endpoint (a custom HTTP origin,
  not the S3 REST API), so index and error documents work for every path.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    logs_bucket: s3.CfnBucket,
    certificate_arn: str,
    region_map: CfnMapping,
  ) -> None:
    super().__init__(scope, id)

    origin_domain = Fn.join(
      "", [domain_name, ".", region_map.find_in_map(Aws.REGION, WEBSITE_ENDPOINT_KEY)]
    )

    self.distribution = cloudfront.CfnDistribution(
      self,
      "Distribution",
      distribution_config=cloudfront.CfnDistribution.DistributionConfigProperty(
        enabled=True,
        aliases=[domain_name, Fn.join("", ["www.", domain_name])],
        default_root_object="index.html",
        origins=[
          cloudfront.CfnDistribution.OriginProperty(
            domain_name=origin_domain,
            id=ORIGIN_ID,
            custom_origin_config=cloudfront.CfnDistribution.CustomOriginConfigProperty(
              http_port=80,
              https_port=443,
              origin_protocol_policy="http-only",
            ),
          )
        ],
        default_cache_behavior=cloudfront.CfnDistribution.DefaultCacheBehaviorProperty(
          target_origin_id=ORIGIN_ID,
          allowed_methods=["GET", "HEAD"],
          compress=True,
          default_ttl=DEFAULT_TTL,
          forwarded_values=cloudfront.CfnDistribution.ForwardedValuesProperty(
            query_string=False,
            cookies=cloudfront.CfnDistribution.CookiesProperty(forward="none"),
          ),
          viewer_protocol_policy="redirect-to-https",
        ),
        logging=cloudfront.CfnDistribution.LoggingProperty(
          bucket=Fn.join("", [logs_bucket.ref, ".s3.amazonaws.com"]),
          prefix=Fn.join("", ["logs/cloudfront/", domain_name, "/"]),
          include_cookies=False,
        ),
        viewer_certificate=cloudfront.CfnDistribution.ViewerCertificateProperty(
          acm_certificate_arn=certificate_arn,
          ssl_support_method="sni-only",
          minimum_protocol_version="TLSv1.2_2021",
        ),
      ),
    )
    self.distribution.override_logical_id("CloudFrontDistribution")
    self.distribution.add_dependency(logs_bucket)
