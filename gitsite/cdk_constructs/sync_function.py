"""Lambda function that publishes pipeline artifacts to the site bucket."""

from typing import Any

from aws_cdk import Aws, Fn
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_s3 as s3
from constructs import Construct

HANDLER = "site_sync.handler"
RUNTIME = "python3.12"


def _bucket_arn(bucket: s3.CfnBucket, suffix: str = "") -> str:
  return Fn.join("", ["arn:", Aws.PARTITION, ":s3:::", bucket.ref, suffix])


class SiteSyncFunction(Construct):
  """Glue function invoked by the pipeline with the Content artifact.

  With ``harden_roles`` the execution role may only write logs, report job
  results, read the artifact bucket and mirror into the site bucket.
  Without it the role gets the original unrestricted S3 and logs access.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    site_bucket: s3.CfnBucket,
    artifact_bucket: s3.CfnBucket,
    code_bucket: str,
    code_key: str,
    memory_size: int = 1536,
    timeout: int = 300,
    harden_roles: bool = True,
  ) -> None:
    super().__init__(scope, id)

    if harden_roles:
      statements = self._hardened_statements(site_bucket, artifact_bucket)
    else:
      statements = [
        {"Effect": "Allow", "Action": "logs:*", "Resource": "arn:aws:logs:*:*:*"},
        {
          "Effect": "Allow",
          "Action": ["codepipeline:PutJobSuccessResult", "codepipeline:PutJobFailureResult"],
          "Resource": "*",
        },
        {
          "Effect": "Allow",
          "Action": "s3:*",
          "Resource": [
            "arn:aws:s3:::*",
            _bucket_arn(artifact_bucket),
            _bucket_arn(artifact_bucket, "/*"),
          ],
        },
      ]

    self.role = iam.CfnRole(
      self,
      "Role",
      assume_role_policy_document={
        "Version": "2012-10-17",
        "Statement": [
          {
            "Effect": "Allow",
            "Principal": {"Service": ["lambda.amazonaws.com"]},
            "Action": ["sts:AssumeRole"],
          }
        ],
      },
      path="/",
      policies=[
        iam.CfnRole.PolicyProperty(
          policy_name=Fn.join("", [domain_name, "-execution-policy"]),
          policy_document={"Version": "2012-10-17", "Statement": statements},
        )
      ],
    )
    self.role.override_logical_id("LambdaExecutionRole")

    self.function = lambda_.CfnFunction(
      self,
      "Function",
      description=Fn.join("", ["Copy Git branch contents to S3 bucket for ", domain_name]),
      role=self.role.attr_arn,
      memory_size=memory_size,
      timeout=timeout,
      runtime=RUNTIME,
      handler=HANDLER,
      code=lambda_.CfnFunction.CodeProperty(s3_bucket=code_bucket, s3_key=code_key),
    )
    self.function.override_logical_id("LambdaFunction")

  def _hardened_statements(
    self, site_bucket: s3.CfnBucket, artifact_bucket: s3.CfnBucket
  ) -> list[dict[str, Any]]:
    return [
      {
        "Effect": "Allow",
        "Action": ["logs:CreateLogGroup", "logs:CreateLogStream", "logs:PutLogEvents"],
        "Resource": Fn.sub("arn:${AWS::Partition}:logs:${AWS::Region}:${AWS::AccountId}:*"),
      },
      {
        # Job result actions do not support resource-level permissions
        "Effect": "Allow",
        "Action": ["codepipeline:PutJobSuccessResult", "codepipeline:PutJobFailureResult"],
        "Resource": "*",
      },
      {
        "Effect": "Allow",
        "Action": ["s3:GetObject", "s3:GetObjectVersion"],
        "Resource": _bucket_arn(artifact_bucket, "/*"),
      },
      {
        "Effect": "Allow",
        "Action": ["s3:ListBucket"],
        "Resource": _bucket_arn(site_bucket),
      },
      {
        "Effect": "Allow",
        "Action": ["s3:GetObject", "s3:PutObject", "s3:PutObjectAcl", "s3:DeleteObject"],
        "Resource": _bucket_arn(site_bucket, "/*"),
      },
    ]
