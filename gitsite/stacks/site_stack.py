"""CDK stack for a single git-backed static website."""

from typing import Any

import aws_cdk as cdk
from constructs import Construct

from gitsite import parameters, regions
from gitsite.cdk_constructs import GitBackedSiteConstruct
from gitsite.config import SiteConfig


def _parameter(scope: Construct, declaration: parameters.ParameterDeclaration) -> cdk.CfnParameter:
  return cdk.CfnParameter(
    scope,
    declaration.name,
    type=declaration.type,
    description=declaration.description,
    min_length=declaration.min_length,
    max_length=declaration.max_length,
    allowed_pattern=declaration.allowed_pattern,
    constraint_description=declaration.constraint_description,
  )


class GitBackedSiteStack(cdk.Stack):
  """Stack for a single git-backed static website.

  The domain and operator email are stack parameters, so the synthesized
  template carries their constraints and can be validated before deploy.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    site_config: SiteConfig,
    **kwargs: Any,
  ) -> None:
    # No bootstrap version rule and no metadata resource: the template is
    # applied directly by the gitsite engine
    kwargs.setdefault(
      "synthesizer", cdk.DefaultStackSynthesizer(generate_bootstrap_version_rule=False)
    )
    kwargs.setdefault("analytics_reporting", False)
    super().__init__(scope, id, **kwargs)

    self.domain_name = _parameter(self, parameters.DOMAIN_NAME)
    self.operator_email = _parameter(self, parameters.OPERATOR_EMAIL)

    self.region_map = cdk.CfnMapping(
      self, regions.MAPPING_NAME, mapping=regions.as_cfn_mapping()
    )

    self.site = GitBackedSiteConstruct(
      self,
      "Site",
      domain_name=self.domain_name.value_as_string,
      operator_email=self.operator_email.value_as_string,
      region_map=self.region_map,
      branch=site_config.branch,
      function_code_bucket=site_config.function_code_bucket,
      function_code_key=site_config.function_code_key,
      function_memory=site_config.function_memory,
      function_timeout=site_config.function_timeout,
      harden_roles=site_config.harden_roles,
      removal_policy=site_config.removal_policy,
    )
