"""Provider for AWS::Lambda::Function."""

import logging
import time
from typing import Any, Mapping

from botocore.exceptions import ClientError

from .base import ProviderContext, ProviderResult, ResourceProvider, completing, generate_name

LOG = logging.getLogger(__name__)

CONFIGURATION_KEYS = {
  "Role": "Role",
  "Handler": "Handler",
  "Runtime": "Runtime",
  "Description": "Description",
  "Timeout": "Timeout",
  "MemorySize": "MemorySize",
}


def _code(code: Mapping[str, Any]) -> dict[str, Any]:
  if "ZipFile" in code:
    return {"ZipFile": code["ZipFile"].encode()}
  result = {"S3Bucket": code["S3Bucket"], "S3Key": code["S3Key"]}
  if code.get("S3ObjectVersion"):
    result["S3ObjectVersion"] = code["S3ObjectVersion"]
  return result


def _configuration(properties: Mapping[str, Any]) -> dict[str, Any]:
  config = {
    api_key: properties[key] for key, api_key in CONFIGURATION_KEYS.items() if key in properties
  }
  for key in ("Timeout", "MemorySize"):
    if key in config:
      config[key] = int(config[key])
  if properties.get("Environment"):
    config["Environment"] = {"Variables": dict(properties["Environment"].get("Variables", {}))}
  return config


class FunctionProvider(ResourceProvider):
  """Lambda function from an S3 archive or inline code."""

  resource_type = "AWS::Lambda::Function"
  replace_on = frozenset({"FunctionName"})

  def __init__(self, role_retry_attempts: int = 10, role_retry_delay: float = 3.0) -> None:
    self.role_retry_attempts = role_retry_attempts
    self.role_retry_delay = role_retry_delay

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    client = context.client("lambda")
    name = properties.get("FunctionName") or generate_name(context, logical_id)
    params = {"FunctionName": name, "Code": _code(properties["Code"]), **_configuration(properties)}

    # A role created moments ago may not be assumable by Lambda yet
    for attempt in range(1, self.role_retry_attempts + 1):
      try:
        response = client.create_function(**params)
        break
      except client.exceptions.InvalidParameterValueException as e:
        if "role" not in str(e).lower() or attempt == self.role_retry_attempts:
          raise
        LOG.info("Role for %s not assumable yet, retrying (%d)", name, attempt)
        time.sleep(self.role_retry_delay * attempt)

    with completing(name):
      client.get_waiter("function_active_v2").wait(FunctionName=name)
    LOG.info("Created function %s", name)
    return ProviderResult(name, {"Arn": response["FunctionArn"]})

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    client = context.client("lambda")
    if previous.get("Code") != properties.get("Code"):
      client.update_function_code(FunctionName=physical_id, **_code(properties["Code"]))
      client.get_waiter("function_updated_v2").wait(FunctionName=physical_id)

    response = client.update_function_configuration(
      FunctionName=physical_id, **_configuration(properties)
    )
    client.get_waiter("function_updated_v2").wait(FunctionName=physical_id)
    return ProviderResult(physical_id, {"Arn": response["FunctionArn"]})

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    client = context.client("lambda")
    try:
      client.delete_function(FunctionName=physical_id)
    except client.exceptions.ResourceNotFoundException:
      LOG.debug("Function %s already deleted", physical_id)

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    try:
      context.client("lambda").get_function(FunctionName=physical_id)
      return True
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
        return False
      raise
