"""CDK stacks for git-backed static website infrastructure."""

from .site_stack import GitBackedSiteStack

__all__ = ["GitBackedSiteStack"]
