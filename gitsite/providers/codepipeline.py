"""Provider for AWS::CodePipeline::Pipeline."""

import logging
from typing import Any, Mapping

from botocore.exceptions import ClientError

from .base import ProviderContext, ProviderResult, ResourceProvider, generate_name

LOG = logging.getLogger(__name__)


def _action(action: Mapping[str, Any]) -> dict[str, Any]:
  type_id = action["ActionTypeId"]
  result: dict[str, Any] = {
    "name": action["Name"],
    "actionTypeId": {
      "category": type_id["Category"],
      "owner": type_id["Owner"],
      "provider": type_id["Provider"],
      "version": str(type_id["Version"]),
    },
    "runOrder": int(action.get("RunOrder", 1)),
    "configuration": {key: str(value) for key, value in action.get("Configuration", {}).items()},
    "inputArtifacts": [{"name": a["Name"]} for a in action.get("InputArtifacts", [])],
    "outputArtifacts": [{"name": a["Name"]} for a in action.get("OutputArtifacts", [])],
  }
  if action.get("RoleArn"):
    result["roleArn"] = action["RoleArn"]
  return result


def pipeline_declaration(name: str, properties: Mapping[str, Any]) -> dict[str, Any]:
  """Translate CloudFormation pipeline properties into the CodePipeline API shape.

  ``RestartExecutionOnUpdate`` has no API counterpart: updating the
  declaration never starts an execution by itself.
  """
  store = properties["ArtifactStore"]
  return {
    "name": name,
    "roleArn": properties["RoleArn"],
    "artifactStore": {"type": store.get("Type", "S3"), "location": store["Location"]},
    "stages": [
      {"name": stage["Name"], "actions": [_action(a) for a in stage["Actions"]]}
      for stage in properties["Stages"]
    ],
  }


class PipelineProvider(ResourceProvider):
  """CodePipeline pipeline."""

  resource_type = "AWS::CodePipeline::Pipeline"
  replace_on = frozenset({"Name"})

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    client = context.client("codepipeline")
    name = properties.get("Name") or generate_name(context, logical_id, max_length=100)
    response = client.create_pipeline(pipeline=pipeline_declaration(name, properties))
    LOG.info("Created pipeline %s", name)
    return ProviderResult(name, {"Version": str(response["pipeline"].get("version", 1))})

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    client = context.client("codepipeline")
    declaration = pipeline_declaration(physical_id, properties)
    declaration["version"] = client.get_pipeline(name=physical_id)["pipeline"]["version"]
    response = client.update_pipeline(pipeline=declaration)
    return ProviderResult(physical_id, {"Version": str(response["pipeline"]["version"])})

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    # DeletePipeline is idempotent
    context.client("codepipeline").delete_pipeline(name=physical_id)

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    try:
      context.client("codepipeline").get_pipeline(name=physical_id)
      return True
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") == "PipelineNotFoundException":
        return False
      raise
