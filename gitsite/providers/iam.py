"""Provider for AWS::IAM::Role."""

import json
import logging
from typing import Any, Mapping

from botocore.exceptions import ClientError

from .base import ProviderContext, ProviderResult, ResourceProvider, completing, generate_name

LOG = logging.getLogger(__name__)


def _document(value: Any) -> str:
  return value if isinstance(value, str) else json.dumps(value)


class RoleProvider(ResourceProvider):
  """IAM role with inline policies."""

  resource_type = "AWS::IAM::Role"
  replace_on = frozenset({"RoleName", "Path"})

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    iam = context.client("iam")
    name = properties.get("RoleName") or generate_name(context, logical_id)

    role = iam.create_role(
      RoleName=name,
      Path=properties.get("Path", "/"),
      AssumeRolePolicyDocument=_document(properties["AssumeRolePolicyDocument"]),
    )["Role"]
    LOG.info("Created role %s", name)
    with completing(name):
      self._put_policies(iam, name, properties.get("Policies", []))
      iam.get_waiter("role_exists").wait(RoleName=name)
    return ProviderResult(name, {"Arn": role["Arn"], "RoleId": role["RoleId"]})

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    iam = context.client("iam")
    if previous.get("AssumeRolePolicyDocument") != properties["AssumeRolePolicyDocument"]:
      iam.update_assume_role_policy(
        RoleName=physical_id,
        PolicyDocument=_document(properties["AssumeRolePolicyDocument"]),
      )

    wanted = {p["PolicyName"] for p in properties.get("Policies", [])}
    for policy in previous.get("Policies", []):
      if policy["PolicyName"] not in wanted:
        iam.delete_role_policy(RoleName=physical_id, PolicyName=policy["PolicyName"])
    self._put_policies(iam, physical_id, properties.get("Policies", []))

    role = iam.get_role(RoleName=physical_id)["Role"]
    return ProviderResult(physical_id, {"Arn": role["Arn"], "RoleId": role["RoleId"]})

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    iam = context.client("iam")
    try:
      for name in iam.list_role_policies(RoleName=physical_id)["PolicyNames"]:
        iam.delete_role_policy(RoleName=physical_id, PolicyName=name)
      iam.delete_role(RoleName=physical_id)
    except iam.exceptions.NoSuchEntityException:
      LOG.debug("Role %s already deleted", physical_id)

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    try:
      context.client("iam").get_role(RoleName=physical_id)
      return True
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") == "NoSuchEntity":
        return False
      raise

  def _put_policies(self, iam: Any, role_name: str, policies: list[Mapping[str, Any]]) -> None:
    for policy in policies:
      iam.put_role_policy(
        RoleName=role_name,
        PolicyName=policy["PolicyName"],
        PolicyDocument=_document(policy["PolicyDocument"]),
      )
