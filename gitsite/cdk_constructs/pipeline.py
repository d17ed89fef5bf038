"""CodePipeline that hands each commit of the site branch to the sync function."""

from typing import Any

from aws_cdk import Aws, Fn
from aws_cdk import aws_codecommit as codecommit
from aws_cdk import aws_codepipeline as codepipeline
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_s3 as s3
from constructs import Construct

SOURCE_ARTIFACT = "Content"


class PublishPipeline(Construct):
  """Two-stage pipeline: Source (CodeCommit) then Invoke (Lambda).

  Updating the pipeline definition never starts an execution.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    branch: str,
    repository: codecommit.CfnRepository,
    artifact_bucket: s3.CfnBucket,
    function: lambda_.CfnFunction,
    harden_roles: bool = True,
  ) -> None:
    super().__init__(scope, id)

    if harden_roles:
      services = ["codepipeline.amazonaws.com"]
      statements = self._hardened_statements(repository, artifact_bucket, function)
    else:
      services = ["lambda.amazonaws.com", "codepipeline.amazonaws.com"]
      statements = [{"Effect": "Allow", "Action": "*", "Resource": "*"}]

    self.role = iam.CfnRole(
      self,
      "Role",
      assume_role_policy_document={
        "Version": "2012-10-17",
        "Statement": [
          {
            "Effect": "Allow",
            "Principal": {"Service": services},
            "Action": ["sts:AssumeRole"],
          }
        ],
      },
      path="/",
      policies=[
        iam.CfnRole.PolicyProperty(
          policy_name="codepipeline-service",
          policy_document={"Version": "2012-10-17", "Statement": statements},
        )
      ],
    )
    self.role.override_logical_id("CodePipelineRole")

    cp = codepipeline.CfnPipeline
    self.pipeline = cp(
      self,
      "Pipeline",
      name=Fn.join("", [domain_name, "-codepipeline"]),
      artifact_store=cp.ArtifactStoreProperty(type="S3", location=artifact_bucket.ref),
      restart_execution_on_update=False,
      role_arn=self.role.attr_arn,
      stages=[
        cp.StageDeclarationProperty(
          name="Source",
          actions=[
            cp.ActionDeclarationProperty(
              name="SourceAction",
              action_type_id=cp.ActionTypeIdProperty(
                category="Source", owner="AWS", provider="CodeCommit", version="1"
              ),
              configuration={"RepositoryName": repository.attr_name, "BranchName": branch},
              output_artifacts=[cp.OutputArtifactProperty(name=SOURCE_ARTIFACT)],
              run_order=1,
            )
          ],
        ),
        cp.StageDeclarationProperty(
          name="Invoke",
          actions=[
            cp.ActionDeclarationProperty(
              name="InvokeAction",
              input_artifacts=[cp.InputArtifactProperty(name=SOURCE_ARTIFACT)],
              action_type_id=cp.ActionTypeIdProperty(
                category="Invoke", owner="AWS", provider="Lambda", version="1"
              ),
              configuration={"FunctionName": function.ref, "UserParameters": domain_name},
              run_order=1,
            )
          ],
        ),
      ],
    )
    self.pipeline.override_logical_id("CodePipeline")

  def _hardened_statements(
    self,
    repository: codecommit.CfnRepository,
    artifact_bucket: s3.CfnBucket,
    function: lambda_.CfnFunction,
  ) -> list[dict[str, Any]]:
    bucket_arn = Fn.join("", ["arn:", Aws.PARTITION, ":s3:::", artifact_bucket.ref])
    return [
      {
        "Effect": "Allow",
        "Action": [
          "codecommit:GetRepository",
          "codecommit:GetBranch",
          "codecommit:GetCommit",
          "codecommit:UploadArchive",
          "codecommit:GetUploadArchiveStatus",
          "codecommit:CancelUploadArchive",
        ],
        "Resource": repository.attr_arn,
      },
      {
        "Effect": "Allow",
        "Action": ["s3:GetObject", "s3:GetObjectVersion", "s3:PutObject", "s3:GetBucketVersioning"],
        "Resource": [bucket_arn, Fn.join("", [bucket_arn, "/*"])],
      },
      {"Effect": "Allow", "Action": ["lambda:InvokeFunction"], "Resource": function.attr_arn},
      {"Effect": "Allow", "Action": ["lambda:ListFunctions"], "Resource": "*"},
    ]
