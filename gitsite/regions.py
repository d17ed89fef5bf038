"""Region table for S3 static website endpoints.

The table is read once from ``regions.yaml`` when the module is imported and
exposed through read-only mappings. Lookups for regions that are not listed
fail with ``UnsupportedRegionError``.
"""

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from .exceptions import UnsupportedRegionError

MAPPING_NAME = "RegionMap"
HOSTED_ZONE_KEY = "S3hostedzoneID"
WEBSITE_ENDPOINT_KEY = "websiteendpoint"

# Alias target hosted zone for every CloudFront distribution
CLOUDFRONT_HOSTED_ZONE_ID = "Z2FDTNDATAQYW2"

REGIONS_FILE = Path(__file__).with_name("regions.yaml")


@dataclass(frozen=True)
class RegionEndpoint:
  """S3 website endpoint details for one region."""

  region: str
  hosted_zone_id: str
  website_endpoint: str

  def website_host(self, bucket_name: str) -> str:
    """Hostname serving the website of the given bucket."""
    return f"{bucket_name}.{self.website_endpoint}"


@dataclass(frozen=True)
class RegionTable:
  """Immutable, versioned region table."""

  version: int
  entries: Mapping[str, RegionEndpoint]

  @classmethod
  def from_yaml(cls, path: Path | str) -> "RegionTable":
    """Load the table from a YAML file."""
    with open(path) as f:
      data: dict[str, Any] = yaml.safe_load(f)

    entries = {}
    for region, values in data.get("regions", {}).items():
      entries[region] = RegionEndpoint(
        region=region,
        hosted_zone_id=values["hosted_zone_id"],
        website_endpoint=values["website_endpoint"],
      )
    return cls(version=int(data.get("version", 1)), entries=MappingProxyType(entries))

  def lookup(self, region: str) -> RegionEndpoint:
    try:
      return self.entries[region]
    except KeyError:
      raise UnsupportedRegionError(region) from None

  def as_cfn_mapping(self) -> dict[str, dict[str, str]]:
    """Render the table as a CloudFormation ``Mappings`` entry."""
    return {
      region: {
        HOSTED_ZONE_KEY: entry.hosted_zone_id,
        WEBSITE_ENDPOINT_KEY: entry.website_endpoint,
      }
      for region, entry in self.entries.items()
    }


TABLE = RegionTable.from_yaml(REGIONS_FILE)


def lookup(region: str) -> RegionEndpoint:
  """Return the website endpoint for a region or raise UnsupportedRegionError."""
  return TABLE.lookup(region)


def supported_regions() -> tuple[str, ...]:
  return tuple(TABLE.entries)


def as_cfn_mapping() -> dict[str, dict[str, str]]:
  return TABLE.as_cfn_mapping()
