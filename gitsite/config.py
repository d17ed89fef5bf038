"""Configuration loader for git-backed sites and the provisioning engine."""

from dataclasses import dataclass, field
from pathlib import Path

import yaml
from aws_cdk import RemovalPolicy

from .exceptions import ConfigError

DEFAULT_FUNCTION_CODE_BUCKET = "gitsite-artifacts"
DEFAULT_FUNCTION_CODE_KEY = "lambda/site-sync.zip"


@dataclass
class SiteConfig:
  """Configuration for a single git-backed static site."""

  domain: str
  operator_email: str
  region: str = "us-east-1"
  branch: str = "master"
  removal_policy: RemovalPolicy = RemovalPolicy.RETAIN
  harden_roles: bool = True
  function_code_bucket: str = DEFAULT_FUNCTION_CODE_BUCKET
  function_code_key: str = DEFAULT_FUNCTION_CODE_KEY
  function_memory: int = 1536
  function_timeout: int = 300

  @property
  def stack_name(self) -> str:
    return f"GitSite-{self.domain.replace('.', '-')}"

  def parameters(self) -> dict[str, str]:
    """Stack parameter values for this site."""
    return {"DomainName": self.domain, "OperatorEmail": self.operator_email}


@dataclass
class EngineConfig:
  """Settings for the provisioning engine."""

  state_dir: str = ".gitsite"
  max_workers: int = 4
  log_level: str = "INFO"


@dataclass
class Config:
  """Multi-site configuration."""

  sites: list[SiteConfig] = field(default_factory=list)
  engine: EngineConfig = field(default_factory=EngineConfig)

  def site(self, domain: str) -> SiteConfig:
    """Return the configuration for a domain."""
    for site in self.sites:
      if site.domain == domain:
        return site
    raise ConfigError(f"No site configured for domain {domain}")

  @classmethod
  def from_yaml(cls, path: Path | str = "sites.yaml") -> "Config":
    """Load configuration from YAML file."""
    try:
      with open(path) as f:
        data = yaml.safe_load(f) or {}
    except FileNotFoundError:
      raise ConfigError(f"Configuration file not found: {path}") from None

    defaults = data.get("defaults", {})
    sites: list[SiteConfig] = []

    for site_data in data.get("sites", []):
      # Merge defaults with site-specific config
      merged = {**defaults, **site_data}

      for key in ("domain", "operator_email"):
        if key not in merged:
          raise ConfigError(f"Site entry is missing '{key}': {site_data}")

      # Convert removal_policy string to enum
      removal_policy_str = str(merged.pop("removal_policy", "retain"))
      removal_policy = {
        "retain": RemovalPolicy.RETAIN,
        "destroy": RemovalPolicy.DESTROY,
      }.get(removal_policy_str.lower(), RemovalPolicy.RETAIN)

      sites.append(
        SiteConfig(
          domain=merged["domain"],
          operator_email=merged["operator_email"],
          region=merged.get("region", "us-east-1"),
          branch=merged.get("branch", "master"),
          removal_policy=removal_policy,
          harden_roles=merged.get("harden_roles", True),
          function_code_bucket=merged.get(
            "function_code_bucket", DEFAULT_FUNCTION_CODE_BUCKET
          ),
          function_code_key=merged.get("function_code_key", DEFAULT_FUNCTION_CODE_KEY),
          function_memory=int(merged.get("function_memory", 1536)),
          function_timeout=int(merged.get("function_timeout", 300)),
        )
      )

    # Parse engine configuration
    engine_data = data.get("engine", {})
    engine = EngineConfig(
      state_dir=engine_data.get("state_dir", ".gitsite"),
      max_workers=int(engine_data.get("max_workers", 4)),
      log_level=str(engine_data.get("log_level", "INFO")).upper(),
    )

    return cls(sites=sites, engine=engine)
