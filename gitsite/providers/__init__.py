"""boto3-backed providers for the resource types of a git-backed site."""

from .acm import CertificateProvider
from .awslambda import FunctionProvider
from .base import (
  ProviderContext,
  ProviderRegistry,
  ProviderResult,
  ResourceProvider,
  generate_name,
)
from .cloudfront import DistributionProvider
from .codecommit import RepositoryProvider
from .codepipeline import PipelineProvider
from .iam import RoleProvider
from .route53 import HostedZoneProvider, RecordSetGroupProvider
from .s3 import BucketProvider
from .sns import TopicProvider


def default_registry() -> ProviderRegistry:
  """Registry with a provider for every resource type the site stack uses."""
  return ProviderRegistry(
    [
      BucketProvider(),
      CertificateProvider(),
      DistributionProvider(),
      HostedZoneProvider(),
      RecordSetGroupProvider(),
      TopicProvider(),
      RepositoryProvider(),
      RoleProvider(),
      FunctionProvider(),
      PipelineProvider(),
    ]
  )


__all__ = [
  "BucketProvider",
  "CertificateProvider",
  "DistributionProvider",
  "FunctionProvider",
  "HostedZoneProvider",
  "PipelineProvider",
  "ProviderContext",
  "ProviderRegistry",
  "ProviderResult",
  "RecordSetGroupProvider",
  "RepositoryProvider",
  "ResourceProvider",
  "RoleProvider",
  "TopicProvider",
  "default_registry",
  "generate_name",
]
