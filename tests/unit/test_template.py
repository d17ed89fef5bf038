"""Tests for template parsing and intrinsic function resolution."""

from typing import Any

import pytest

from gitsite.engine import Resolver, StackTemplate, references
from gitsite.engine.intrinsics import UnresolvedReference
from gitsite.exceptions import TemplateError

MAPPINGS = {"RegionMap": {"us-east-1": {"websiteendpoint": "s3-website-us-east-1.amazonaws.com"}}}


def make_resolver(applied: dict[str, tuple[str, dict[str, Any]]] | None = None) -> Resolver:
  applied = applied or {}

  def physical_id(logical_id: str) -> str:
    if logical_id not in applied:
      raise UnresolvedReference(logical_id)
    return applied[logical_id][0]

  def attribute(logical_id: str, name: str) -> Any:
    if logical_id not in applied:
      raise UnresolvedReference(logical_id)
    return applied[logical_id][1][name]

  return Resolver(
    parameters={"DomainName": "example.com"},
    mappings=MAPPINGS,
    pseudo={"AWS::Region": "us-east-1", "AWS::Partition": "aws", "AWS::AccountId": "123456789012"},
    physical_id=physical_id,
    attribute=attribute,
  )


class TestStackTemplate:
  """Test StackTemplate.from_dict."""

  def test_parses_sections(self) -> None:
    """Resources, parameters, mappings and outputs are read."""
    template = StackTemplate.from_dict(
      {
        "Parameters": {"DomainName": {"Type": "String", "MinLength": 4}},
        "Mappings": MAPPINGS,
        "Resources": {
          "SiteBucket": {
            "Type": "AWS::S3::Bucket",
            "Properties": {"BucketName": {"Ref": "DomainName"}},
            "DependsOn": "LogsBucket",
            "DeletionPolicy": "Retain",
          },
          "LogsBucket": {"Type": "AWS::S3::Bucket"},
        },
        "Outputs": {"DomainName": {"Value": {"Ref": "DomainName"}, "Description": "Domain"}},
      }
    )

    bucket = template.resources["SiteBucket"]
    assert bucket.depends_on == ("LogsBucket",)
    assert bucket.retain is True
    assert bucket.update_replace_policy == "Delete"
    assert template.resources["LogsBucket"].properties == {}
    assert template.parameters["DomainName"].min_length == 4
    assert template.outputs["DomainName"].description == "Domain"
    assert template.mappings == MAPPINGS

  @pytest.mark.parametrize("section", ["Conditions", "Transform"])
  def test_unsupported_sections(self, section: str) -> None:
    """Conditions and transforms are rejected."""
    with pytest.raises(TemplateError, match=section):
      StackTemplate.from_dict({section: {}, "Resources": {"A": {"Type": "T"}}})

  def test_requires_resources(self) -> None:
    """A template without resources is rejected."""
    with pytest.raises(TemplateError, match="no Resources"):
      StackTemplate.from_dict({"Parameters": {}})

  def test_resource_requires_type(self) -> None:
    """Every resource needs a Type."""
    with pytest.raises(TemplateError, match="Broken"):
      StackTemplate.from_dict({"Resources": {"Broken": {"Properties": {}}}})

  def test_from_yaml_file(self, tmp_path) -> None:
    """YAML templates with long-form intrinsics load."""
    path = tmp_path / "template.yaml"
    path.write_text(
      "Resources:\n"
      "  Topic:\n"
      "    Type: AWS::SNS::Topic\n"
      "    Properties:\n"
      "      DisplayName:\n"
      "        Ref: AWS::StackName\n"
    )
    template = StackTemplate.from_file(path)
    assert template.resources["Topic"].properties == {"DisplayName": {"Ref": "AWS::StackName"}}


class TestReferences:
  """Test reference discovery."""

  def test_collects_all_forms(self) -> None:
    """Ref, GetAtt in both forms and Sub variables are found."""
    value = {
      "A": {"Ref": "Bucket"},
      "B": {"Fn::GetAtt": ["Distribution", "DomainName"]},
      "C": {"Fn::GetAtt": "Role.Arn"},
      "D": {"Fn::Sub": "arn:${AWS::Partition}:s3:::${Artifacts}/*"},
      "E": [{"Fn::Sub": ["${Local}-${Topic.TopicName}", {"Local": {"Ref": "Queue"}}]}],
    }
    assert references(value) == {
      "Bucket",
      "Distribution",
      "Role",
      "AWS::Partition",
      "Artifacts",
      "Topic",
      "Queue",
    }


class TestResolver:
  """Test intrinsic function evaluation."""

  def test_parameters_and_pseudo(self) -> None:
    """Ref resolves parameters and pseudo parameters."""
    resolver = make_resolver()
    assert resolver.resolve({"Ref": "DomainName"}) == "example.com"
    assert resolver.resolve({"Ref": "AWS::Region"}) == "us-east-1"

  def test_join_and_find_in_map(self) -> None:
    """Join concatenates resolved items, FindInMap reads the mapping."""
    resolver = make_resolver()
    value = {
      "Fn::Join": [
        ".",
        [
          {"Ref": "DomainName"},
          {"Fn::FindInMap": ["RegionMap", {"Ref": "AWS::Region"}, "websiteendpoint"]},
        ],
      ]
    }
    assert resolver.resolve(value) == "example.com.s3-website-us-east-1.amazonaws.com"

  def test_find_in_map_missing_key(self) -> None:
    """Missing mapping keys raise TemplateError."""
    with pytest.raises(TemplateError, match="RegionMap/eu-north-1"):
      make_resolver().resolve({"Fn::FindInMap": ["RegionMap", "eu-north-1", "websiteendpoint"]})

  def test_resources_and_attributes(self) -> None:
    """Ref and GetAtt read applied resources."""
    resolver = make_resolver({"Topic": ("arn:aws:sns:us-east-1:1:topic", {"TopicName": "topic"})})
    assert resolver.resolve({"Ref": "Topic"}) == "arn:aws:sns:us-east-1:1:topic"
    assert resolver.resolve({"Fn::GetAtt": ["Topic", "TopicName"]}) == "topic"

  def test_sub(self) -> None:
    """Sub replaces pseudo parameters, attributes and local variables."""
    resolver = make_resolver({"Topic": ("arn", {"TopicName": "topic"})})
    value = {"Fn::Sub": ["${AWS::Partition}:${Topic.TopicName}:${Name}", {"Name": "x"}]}
    assert resolver.resolve(value) == "aws:topic:x"

  def test_select(self) -> None:
    """Select picks an element by index."""
    resolver = make_resolver()
    assert resolver.resolve({"Fn::Select": ["1", ["a", "b"]]}) == "b"
    with pytest.raises(TemplateError):
      resolver.resolve({"Fn::Select": [5, ["a"]]})

  def test_no_value_drops_key(self) -> None:
    """AWS::NoValue removes the enclosing key or list item."""
    resolver = make_resolver()
    value = {"Keep": 1, "Drop": {"Ref": "AWS::NoValue"}, "List": [{"Ref": "AWS::NoValue"}, 2]}
    assert resolver.resolve(value) == {"Keep": 1, "List": [2]}

  def test_unapplied_resource(self) -> None:
    """References to resources that are not applied yet raise UnresolvedReference."""
    with pytest.raises(UnresolvedReference) as exc_info:
      make_resolver().resolve({"Ref": "Pending"})
    assert exc_info.value.logical_id == "Pending"
