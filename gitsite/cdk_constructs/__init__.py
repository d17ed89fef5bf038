"""CDK constructs for git-backed static website infrastructure."""

from .certificate import SiteCertificate
from .distribution import SiteDistribution
from .dns import SiteDns
from .notifications import ChangeNotifications
from .pipeline import PublishPipeline
from .repository import SiteRepository
from .static_site import GitBackedSiteConstruct
from .storage import SiteBuckets
from .sync_function import SiteSyncFunction

__all__ = [
  "ChangeNotifications",
  "GitBackedSiteConstruct",
  "PublishPipeline",
  "SiteBuckets",
  "SiteCertificate",
  "SiteDistribution",
  "SiteDns",
  "SiteRepository",
  "SiteSyncFunction",
]
