"""Provisioning engine applying CloudFormation-style templates with boto3."""

from .deployer import (
  ApplyResult,
  Change,
  ChangeAction,
  DriftReport,
  Plan,
  StackDeployer,
)
from .graph import DependencyGraph
from .intrinsics import Resolver, references
from .state import ResourceState, StackState, StateStore
from .template import OutputDeclaration, ResourceDeclaration, StackTemplate

__all__ = [
  "ApplyResult",
  "Change",
  "ChangeAction",
  "DependencyGraph",
  "DriftReport",
  "OutputDeclaration",
  "Plan",
  "Resolver",
  "ResourceDeclaration",
  "ResourceState",
  "StackDeployer",
  "StackState",
  "StateStore",
  "StackTemplate",
  "references",
]
