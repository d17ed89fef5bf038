"""Providers for AWS::Route53::HostedZone and AWS::Route53::RecordSetGroup."""

import logging
import time
from typing import Any, Mapping

from botocore.exceptions import ClientError

from .base import ProviderContext, ProviderResult, ResourceProvider

LOG = logging.getLogger(__name__)


def _zone_id(value: str) -> str:
  return value.rsplit("/", 1)[-1]


class HostedZoneProvider(ResourceProvider):
  """Public hosted zone."""

  resource_type = "AWS::Route53::HostedZone"
  replace_on = frozenset({"Name"})

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    route53 = context.client("route53")
    params: dict[str, Any] = {
      "Name": properties["Name"],
      "CallerReference": f"{context.stack_name}-{logical_id}-{time.time()}",
    }
    comment = properties.get("HostedZoneConfig", {}).get("Comment")
    if comment:
      params["HostedZoneConfig"] = {"Comment": comment}

    response = route53.create_hosted_zone(**params)
    zone_id = _zone_id(response["HostedZone"]["Id"])
    LOG.info("Created hosted zone %s for %s", zone_id, properties["Name"])
    return ProviderResult(
      zone_id, {"Id": zone_id, "NameServers": response["DelegationSet"]["NameServers"]}
    )

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    route53 = context.client("route53")
    comment = properties.get("HostedZoneConfig", {}).get("Comment", "")
    route53.update_hosted_zone_comment(Id=physical_id, Comment=comment)
    response = route53.get_hosted_zone(Id=physical_id)
    return ProviderResult(
      physical_id,
      {"Id": physical_id, "NameServers": response["DelegationSet"]["NameServers"]},
    )

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    route53 = context.client("route53")
    try:
      route53.delete_hosted_zone(Id=physical_id)
    except route53.exceptions.NoSuchHostedZone:
      LOG.debug("Hosted zone %s already deleted", physical_id)

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    try:
      context.client("route53").get_hosted_zone(Id=physical_id)
      return True
    except ClientError as e:
      if e.response.get("Error", {}).get("Code") == "NoSuchHostedZone":
        return False
      raise


def _record_set(record: Mapping[str, Any]) -> dict[str, Any]:
  """Translate a CloudFormation record set into the Route 53 API shape."""
  result: dict[str, Any] = {"Name": record["Name"], "Type": record["Type"]}
  alias = record.get("AliasTarget")
  if alias:
    result["AliasTarget"] = {
      "HostedZoneId": alias["HostedZoneId"],
      "DNSName": alias["DNSName"],
      "EvaluateTargetHealth": bool(alias.get("EvaluateTargetHealth", False)),
    }
  else:
    result["TTL"] = int(record.get("TTL", 300))
    result["ResourceRecords"] = [{"Value": value} for value in record["ResourceRecords"]]
  return result


def _key(record: Mapping[str, Any]) -> tuple[str, str]:
  return record["Name"], record["Type"]


class RecordSetGroupProvider(ResourceProvider):
  """Group of record sets changed in one batch."""

  resource_type = "AWS::Route53::RecordSetGroup"
  replace_on = frozenset({"HostedZoneId", "HostedZoneName"})

  def create(
    self, logical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> ProviderResult:
    zone_id = self._hosted_zone(properties, context)
    self._change(context, zone_id, [("UPSERT", r) for r in properties["RecordSets"]])
    return ProviderResult(f"{zone_id}:{logical_id}")

  def update(
    self,
    physical_id: str,
    previous: Mapping[str, Any],
    properties: Mapping[str, Any],
    context: ProviderContext,
  ) -> ProviderResult:
    zone_id = self._hosted_zone(properties, context)
    wanted = {_key(r) for r in properties["RecordSets"]}
    changes = [("DELETE", r) for r in previous.get("RecordSets", []) if _key(r) not in wanted]
    changes += [("UPSERT", r) for r in properties["RecordSets"]]
    self._change(context, zone_id, changes)
    return ProviderResult(physical_id)

  def delete(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> None:
    zone_id = self._hosted_zone(properties, context)
    try:
      self._change(context, zone_id, [("DELETE", r) for r in properties["RecordSets"]])
    except ClientError as e:
      # Records or zone already gone
      if e.response.get("Error", {}).get("Code") not in ("InvalidChangeBatch", "NoSuchHostedZone"):
        raise

  def exists(
    self, physical_id: str, properties: Mapping[str, Any], context: ProviderContext
  ) -> bool:
    route53 = context.client("route53")
    zone_id = self._hosted_zone(properties, context)
    for record in properties["RecordSets"]:
      try:
        response = route53.list_resource_record_sets(
          HostedZoneId=zone_id,
          StartRecordName=record["Name"],
          StartRecordType=record["Type"],
          MaxItems="1",
        )
      except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "NoSuchHostedZone":
          return False
        raise
      found = response.get("ResourceRecordSets", [])
      if not found or _key(found[0]) != _key(record):
        return False
    return True

  def _hosted_zone(self, properties: Mapping[str, Any], context: ProviderContext) -> str:
    if properties.get("HostedZoneId"):
      return _zone_id(properties["HostedZoneId"])
    name = properties["HostedZoneName"]
    response = context.client("route53").list_hosted_zones_by_name(DNSName=name, MaxItems="1")
    for zone in response["HostedZones"]:
      if zone["Name"].rstrip(".") == name.rstrip("."):
        return _zone_id(zone["Id"])
    raise ValueError(f"No hosted zone found for {name}")

  def _change(
    self,
    context: ProviderContext,
    zone_id: str,
    changes: list[tuple[str, Mapping[str, Any]]],
  ) -> None:
    context.client("route53").change_resource_record_sets(
      HostedZoneId=zone_id,
      ChangeBatch={
        "Changes": [
          {"Action": action, "ResourceRecordSet": _record_set(record)}
          for action, record in changes
        ]
      },
    )
