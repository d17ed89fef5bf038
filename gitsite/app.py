#!/usr/bin/env python3
"""CDK application entry point for git-backed static website infrastructure."""

import sys
from pathlib import Path
from typing import Any

# Add the project root to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

import aws_cdk as cdk
import boto3

from gitsite.config import Config, SiteConfig
from gitsite.stacks.site_stack import GitBackedSiteStack


def get_account_id() -> str:
  """Get AWS account ID from current credentials."""
  sts = boto3.client("sts")
  return str(sts.get_caller_identity()["Account"])


def add_site_stack(app: cdk.App, site: SiteConfig) -> GitBackedSiteStack:
  """Add the stack for one site to an app."""
  return GitBackedSiteStack(
    app,
    site.stack_name,
    site_config=site,
    env=cdk.Environment(region=site.region),
    description=f"Git-backed static website infrastructure for {site.domain}",
  )


def synthesize_site(site: SiteConfig) -> dict[str, Any]:
  """Synthesize the stack for one site and return its CloudFormation template."""
  app = cdk.App()
  stack = add_site_stack(app, site)
  assembly = app.synth()
  return assembly.get_stack_by_name(stack.stack_name).template


def main() -> None:
  """Create CDK app with stacks for each configured site."""
  app = cdk.App()

  # Load configuration
  config_path = app.node.try_get_context("config") or "sites.yaml"
  config = Config.from_yaml(Path(config_path))

  # Create a stack for each site
  for site in config.sites:
    add_site_stack(app, site)

  app.synth()


if __name__ == "__main__":
  main()
