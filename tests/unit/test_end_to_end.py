"""Deploy the synthesized site stack through the engine with fake providers."""

from typing import Any

import pytest

from gitsite.engine import ChangeAction, StackDeployer, StackTemplate
from gitsite.exceptions import ParameterValidationError, UnsupportedRegionError

STACK = "GitSite-example-com"
PARAMETERS = {"DomainName": "example.com", "OperatorEmail": "webmaster@example.org"}


@pytest.fixture
def deployer_for(site_template: dict[str, Any], site_providers, store):
  def build(region: str = "us-east-1") -> StackDeployer:
    return StackDeployer(
      StackTemplate.from_dict(site_template),
      site_providers,
      store,
      stack_name=STACK,
      region=region,
      account_id="123456789012",
    )

  return build


def properties_of(cloud, store, logical_id: str) -> dict[str, Any]:
  physical_id = store.load(STACK).resources[logical_id].physical_id
  return cloud.resources[physical_id][1]


class TestSiteDeployment:
  """Test a full deploy of the site stack."""

  def test_outputs(self, deployer_for) -> None:
    """Outputs resolve to the deployed names."""
    outputs = deployer_for().deploy(PARAMETERS).outputs

    assert outputs["DomainName"] == "example.com"
    assert outputs["WWWDomainName"] == "www.example.com"
    assert outputs["LogsBucket"] == "logs.example.com"
    assert outputs["CodePipelineName"] == "example.com-codepipeline"
    assert outputs["GitRepositoryName"] == "example.com"
    assert outputs["CloudFrontDomain"] == f"{outputs['DistributionId']}.cloudfront.net"
    assert outputs["GitCloneUrlHttp"] == (
      "https://git-codecommit.us-east-1.amazonaws.com/v1/repos/example.com"
    )
    assert outputs["GitCloneUrlSsh"].startswith("ssh://")
    assert outputs["HostedZoneId"]

  def test_dependency_order(self, deployer_for, cloud) -> None:
    """Producers are created before the resources referencing them."""
    deployer_for().deploy(PARAMETERS)
    created = cloud.actions("create")

    def before(first: str, then: str) -> bool:
      return created.index(first) < created.index(then)

    assert len(created) == 14
    assert before("LogsBucket", "SiteBucket")
    assert before("LogsBucket", "CloudFrontDistribution")
    assert before("Certificate", "CloudFrontDistribution")
    assert before("CloudFrontDistribution", "Route53RecordSetGroup")
    assert before("Route53HostedZone", "Route53RecordSetGroup")
    assert before("NotificationTopic", "GitRepository")
    assert before("LambdaExecutionRole", "LambdaFunction")
    assert before("GitRepository", "CodePipeline")
    assert before("LambdaFunction", "CodePipeline")
    assert before("CodePipelineRole", "CodePipeline")

  def test_origin_uses_region_endpoint(self, deployer_for, cloud, store) -> None:
    """The origin is the site bucket's website endpoint in the region."""
    deployer_for().deploy(PARAMETERS)

    config = properties_of(cloud, store, "CloudFrontDistribution")["DistributionConfig"]

    assert config["Origins"][0]["DomainName"] == "example.com.s3-website-us-east-1.amazonaws.com"
    assert config["Aliases"] == ["example.com", "www.example.com"]
    assert config["Logging"]["Bucket"] == "logs.example.com.s3.amazonaws.com"

  def test_pipeline_wiring(self, deployer_for, cloud, store) -> None:
    """The pipeline reads from the repository and invokes the function."""
    deployer_for().deploy(PARAMETERS)

    function_id = store.load(STACK).resources["LambdaFunction"].physical_id
    stages = properties_of(cloud, store, "CodePipeline")["Stages"]

    assert stages[0]["Actions"][0]["Configuration"]["RepositoryName"] == "example.com"
    assert stages[1]["Actions"][0]["Configuration"] == {
      "FunctionName": function_id,
      "UserParameters": "example.com",
    }

  def test_hardened_policy_resolved(self, deployer_for, cloud, store) -> None:
    """Sub and Join in role policies resolve to concrete ARNs."""
    deployer_for().deploy(PARAMETERS)

    role = properties_of(cloud, store, "LambdaExecutionRole")
    statements = role["Policies"][0]["PolicyDocument"]["Statement"]

    assert statements[0]["Resource"] == "arn:aws:logs:us-east-1:123456789012:*"
    assert statements[-1]["Resource"] == "arn:aws:s3:::example.com/*"
    assert role["Policies"][0]["PolicyName"] == "example.com-execution-policy"

  def test_redeploy_is_noop(self, deployer_for, cloud) -> None:
    """Deploying the same parameters again changes nothing."""
    deployer_for().deploy(PARAMETERS)
    calls = len(cloud.calls)

    result = deployer_for().deploy(PARAMETERS)

    assert result.changes == []
    assert len(cloud.calls) == calls

  def test_destroy_keeps_retained(self, deployer_for, cloud) -> None:
    """Retained buckets and repository are left behind on destroy."""
    deployer_for().deploy(PARAMETERS)

    result = deployer_for().destroy()

    assert sorted(result.orphaned) == [
      "CodePipelineBucket",
      "GitRepository",
      "LogsBucket",
      "RedirectBucket",
      "SiteBucket",
    ]
    assert all(change.action is ChangeAction.DELETE for change in result.changes)
    assert "example.com" in cloud.resources


class TestSiteValidation:
  """Test rejection before anything is created."""

  def test_unsupported_region(self, deployer_for, cloud) -> None:
    """Regions without a website endpoint are rejected."""
    with pytest.raises(UnsupportedRegionError):
      deployer_for(region="eu-north-1").deploy(PARAMETERS)
    assert cloud.calls == []

  def test_invalid_domain(self, deployer_for, cloud) -> None:
    """Domain names violating the pattern are rejected."""
    with pytest.raises(ParameterValidationError):
      deployer_for().deploy({**PARAMETERS, "DomainName": "Example.com"})
    assert cloud.calls == []
