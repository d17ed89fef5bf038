"""Tests for the resource dependency graph."""

import pytest

from gitsite.engine import DependencyGraph, StackTemplate
from gitsite.exceptions import DependencyCycleError, UnknownReferenceError


def graph_of(resources: dict, parameters: dict | None = None) -> DependencyGraph:
  template = StackTemplate.from_dict({"Parameters": parameters or {}, "Resources": resources})
  return DependencyGraph.from_resources(template.resources, template.parameters)


class TestDependencyGraph:
  """Test ordering and generations."""

  def test_edges_from_references_and_depends_on(self) -> None:
    """Both DependsOn and intrinsic references create edges."""
    graph = graph_of(
      {
        "Logs": {"Type": "T"},
        "Site": {"Type": "T", "DependsOn": ["Logs"]},
        "Cdn": {"Type": "T", "Properties": {"Origin": {"Fn::GetAtt": ["Site", "Arn"]}}},
        "Dns": {"Type": "T", "Properties": {"Target": {"Ref": "Cdn"}, "Name": {"Ref": "Domain"}}},
      },
      {"Domain": {"Type": "String"}},
    )

    assert graph.dependencies("Site") == {"Logs"}
    assert graph.dependencies("Dns") == {"Cdn"}
    assert graph.dependents("Site") == {"Cdn"}
    assert graph.order() == ["Logs", "Site", "Cdn", "Dns"]
    assert graph.teardown_order() == ["Dns", "Cdn", "Site", "Logs"]

  def test_generations_group_independent_resources(self) -> None:
    """Resources without mutual dependencies share a generation."""
    graph = graph_of(
      {
        "B": {"Type": "T"},
        "A": {"Type": "T"},
        "C": {"Type": "T", "Properties": {"X": {"Ref": "A"}, "Y": {"Ref": "B"}}},
      }
    )
    assert graph.generations() == [["A", "B"], ["C"]]

  def test_self_reference_ignored(self) -> None:
    """A resource referring to itself is not a cycle."""
    graph = graph_of({"A": {"Type": "T", "Properties": {"Name": {"Fn::Sub": "${A}"}}}})
    assert graph.order() == ["A"]

  def test_cycle(self) -> None:
    """Cycles are reported with their path."""
    with pytest.raises(DependencyCycleError) as exc_info:
      graph_of(
        {
          "A": {"Type": "T", "Properties": {"X": {"Ref": "B"}}},
          "B": {"Type": "T", "DependsOn": "A"},
        }
      )
    assert exc_info.value.cycle == ["A", "B", "A"]

  def test_unknown_reference(self) -> None:
    """References to undeclared names are planning errors."""
    with pytest.raises(UnknownReferenceError) as exc_info:
      graph_of({"A": {"Type": "T", "Properties": {"X": {"Ref": "Missing"}}}})
    assert exc_info.value.target == "Missing"

  def test_unknown_depends_on(self) -> None:
    """DependsOn must name a declared resource."""
    with pytest.raises(UnknownReferenceError):
      graph_of({"A": {"Type": "T", "DependsOn": "Missing"}})

  def test_pseudo_parameters_are_not_edges(self) -> None:
    """Pseudo parameters resolve without a resource."""
    graph = graph_of({"A": {"Type": "T", "Properties": {"R": {"Ref": "AWS::Region"}}}})
    assert graph.dependencies("A") == set()
