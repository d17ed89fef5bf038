"""Tests for the S3 website region table."""

import pytest

from gitsite import regions
from gitsite.exceptions import UnsupportedRegionError


class TestLookup:
  """Test region lookups."""

  def test_known_region(self) -> None:
    """us-east-1 maps to its website endpoint and hosted zone."""
    entry = regions.lookup("us-east-1")
    assert entry.website_endpoint == "s3-website-us-east-1.amazonaws.com"
    assert entry.hosted_zone_id == "Z3AQBSTGFYJSTF"

  def test_website_host(self) -> None:
    """The website host is the bucket name prefixed to the endpoint."""
    entry = regions.lookup("eu-west-1")
    assert entry.website_host("example.com") == "example.com.s3-website-eu-west-1.amazonaws.com"

  def test_unknown_region(self) -> None:
    """Regions missing from the table raise UnsupportedRegionError."""
    with pytest.raises(UnsupportedRegionError) as exc_info:
      regions.lookup("eu-north-1")
    assert exc_info.value.region == "eu-north-1"

  def test_supported_regions(self) -> None:
    """Supported regions list every table entry."""
    supported = regions.supported_regions()
    assert "us-east-1" in supported
    assert "us-west-2" in supported
    assert "eu-north-1" not in supported


class TestCfnMapping:
  """Test rendering as a template mapping."""

  def test_mapping_keys(self) -> None:
    """Every region carries both mapping keys."""
    mapping = regions.as_cfn_mapping()
    assert set(mapping) == set(regions.supported_regions())
    for values in mapping.values():
      assert set(values) == {regions.HOSTED_ZONE_KEY, regions.WEBSITE_ENDPOINT_KEY}

  def test_table_is_read_only(self) -> None:
    """The loaded table cannot be modified."""
    with pytest.raises(TypeError):
      regions.TABLE.entries["eu-north-1"] = regions.lookup("us-east-1")
