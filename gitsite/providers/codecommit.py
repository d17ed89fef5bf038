"""Provider for AWS::CodeCommit::Repository."""

import logging
from typing import Any, Mapping

from botocore.exceptions import ClientError

from .base import ProviderContext, ProviderResult, ResourceProvider, completing

LOG = logging.getLogger(__name__)


def _triggers(triggers: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
  return [
    {
      "name": trigger["Name"],
      "destinationArn": trigger["DestinationArn"],
      "events": list(trigger["Events"]),
      "branches": list(trigger.get("Branches", [])),
      "customData": trigger.get("CustomData", ""),
    }
    for trigger in triggers
  ]


def _attributes(metadata: Mapping[str, Any]) -> dict[str, Any]:
  return {
    "Arn": metadata["Arn"],
    "Name": metadata["repositoryName"],
    "CloneUrlHttp": metadata["cloneUrlHttp"],
    "CloneUrlSsh": metadata["cloneUrlSsh"],
  }


class RepositoryProvider(ResourceProvider):
  """CodeCommit repository and its triggers."""

  resource_type = "AWS::CodeCommit::Repository"

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    codecommit = context.client("codecommit")
    name = properties["RepositoryName"]
    params = {"repositoryName": name}
    if properties.get("RepositoryDescription"):
      params["repositoryDescription"] = properties["RepositoryDescription"]

    metadata = codecommit.create_repository(**params)["repositoryMetadata"]
    LOG.info("Created repository %s", name)
    if properties.get("Triggers"):
      with completing(metadata["repositoryId"]):
        codecommit.put_repository_triggers(
          repositoryName=name, triggers=_triggers(properties["Triggers"])
        )
    return ProviderResult(metadata["repositoryId"], _attributes(metadata))

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    codecommit = context.client("codecommit")
    name = properties["RepositoryName"]
    if previous.get("RepositoryName") != name:
      codecommit.update_repository_name(oldName=previous["RepositoryName"], newName=name)
    if previous.get("RepositoryDescription") != properties.get("RepositoryDescription"):
      codecommit.update_repository_description(
        repositoryName=name,
        repositoryDescription=properties.get("RepositoryDescription", ""),
      )
    if previous.get("Triggers") != properties.get("Triggers"):
      codecommit.put_repository_triggers(
        repositoryName=name, triggers=_triggers(properties.get("Triggers", []))
      )

    metadata = codecommit.get_repository(repositoryName=name)["repositoryMetadata"]
    return ProviderResult(physical_id, _attributes(metadata))

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    # DeleteRepository succeeds for repositories that no longer exist
    context.client("codecommit").delete_repository(repositoryName=properties["RepositoryName"])

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    try:
      context.client("codecommit").get_repository(repositoryName=properties["RepositoryName"])
      return True
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") == "RepositoryDoesNotExistException":
        return False
      raise
