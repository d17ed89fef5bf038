"""Lambda handler that mirrors a pipeline artifact into the site bucket.

The artifact is read and unpacked completely before anything is written.
Changed objects are uploaded first; objects missing from the tree are
deleted only after every upload succeeded, so a failed run never leaves the
site with pages removed but their replacements missing.

This module is packaged on its own by scripts/package_sync_function.py and
only depends on boto3, which the Lambda runtime provides.
"""

import hashlib
import io
import mimetypes
import traceback
import zipfile
from dataclasses import dataclass, field
from typing import Any, Mapping

import boto3
from botocore.config import Config

DEFAULT_CONTENT_TYPE = "application/octet-stream"
HTML_CACHE_CONTROL = "no-cache"
OBJECT_ACL = "public-read"
DELETE_BATCH_SIZE = 1000


@dataclass
class SyncResult:
  uploaded: list[str] = field(default_factory=list)
  unchanged: list[str] = field(default_factory=list)
  deleted: list[str] = field(default_factory=list)

  def to_dict(self) -> dict[str, Any]:
    return {
      "status": "succeeded",
      "uploaded": len(self.uploaded),
      "unchanged": len(self.unchanged),
      "deleted": len(self.deleted),
    }


def unpack(data: bytes) -> dict[str, bytes]:
  """Unzip an artifact into a key -> content mapping."""
  tree = {}
  with zipfile.ZipFile(io.BytesIO(data)) as archive:
    for info in archive.infolist():
      key = info.filename.lstrip("/")
      if info.is_dir() or not key:
        continue
      tree[key] = archive.read(info)
  return tree


def read_artifact(s3: Any, bucket: str, key: str, version: str | None = None) -> dict[str, bytes]:
  params = {"Bucket": bucket, "Key": key}
  if version:
    params["VersionId"] = version
  return unpack(s3.get_object(**params)["Body"].read())


def content_type(key: str) -> str:
  return mimetypes.guess_type(key)[0] or DEFAULT_CONTENT_TYPE


def existing_objects(s3: Any, bucket: str) -> dict[str, str]:
  """Map every key in the bucket to its ETag."""
  objects = {}
  for page in s3.get_paginator("list_objects_v2").paginate(Bucket=bucket):
    for obj in page.get("Contents", []):
      objects[obj["Key"]] = obj["ETag"].strip('"')
  return objects


def sync_tree(s3: Any, bucket: str, tree: Mapping[str, bytes], prune: bool = True) -> SyncResult:
  """Make the bucket contents equal to the tree.

  Args:
    s3: boto3 S3 client with write access to the bucket
    bucket: Site bucket name
    tree: Object key -> content
    prune: Delete objects that are not in the tree
  """
  existing = existing_objects(s3, bucket)
  result = SyncResult()

  for key in sorted(tree):
    body = tree[key]
    # Multipart ETags never match, those objects are simply uploaded again
    if existing.get(key) == hashlib.md5(body).hexdigest():
      result.unchanged.append(key)
      continue

    params = {
      "Bucket": bucket,
      "Key": key,
      "Body": body,
      "ContentType": content_type(key),
      "ACL": OBJECT_ACL,
    }
    if params["ContentType"] == "text/html":
      params["CacheControl"] = HTML_CACHE_CONTROL
    s3.put_object(**params)
    print(f"Uploaded {key}")
    result.uploaded.append(key)

  if prune:
    stale = sorted(set(existing) - set(tree))
    for start in range(0, len(stale), DELETE_BATCH_SIZE):
      batch = stale[start : start + DELETE_BATCH_SIZE]
      response = s3.delete_objects(
        Bucket=bucket,
        Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
      )
      if response.get("Errors"):
        failed = ", ".join(error["Key"] for error in response["Errors"])
        raise RuntimeError(f"Could not delete from {bucket}: {failed}")
      for key in batch:
        print(f"Deleted {key}")
      result.deleted.extend(batch)

  print(
    f"Synced {bucket}: {len(result.uploaded)} uploaded, "
    f"{len(result.unchanged)} unchanged, {len(result.deleted)} deleted"
  )
  return result


def sync_artifact(
  s3: Any,
  domain: str,
  bucket: str,
  key: str,
  version: str | None = None,
  prune: bool = True,
) -> SyncResult:
  """Publish one artifact to the site bucket named after the domain."""
  tree = read_artifact(s3, bucket, key, version)
  print(f"Read {len(tree)} files from s3://{bucket}/{key}")
  return sync_tree(s3, domain, tree, prune=prune)


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
  """Entry point for CodePipeline jobs and direct invocations.

  A direct event looks like
  ``{"domain": "example.com", "artifact": {"bucket": ..., "key": ..., "version": ...}}``.
  """
  if "CodePipeline.job" in event:
    return _handle_job(event["CodePipeline.job"])

  try:
    artifact = event["artifact"]
    result = sync_artifact(
      boto3.client("s3"),
      event["domain"],
      artifact["bucket"],
      artifact["key"],
      artifact.get("version"),
      prune=event.get("prune", True),
    )
  except Exception as e:
    print(f"Error: {e}")
    traceback.print_exc()
    return {"status": "failed", "error": str(e)}
  return result.to_dict()


def _handle_job(job: dict[str, Any]) -> dict[str, Any]:
  codepipeline = boto3.client("codepipeline")
  job_id = job["id"]
  print(f"Processing job {job_id}")

  try:
    data = job["data"]
    domain = data["actionConfiguration"]["configuration"]["UserParameters"]
    location = data["inputArtifacts"][0]["location"]["s3Location"]

    # Artifacts are encrypted with the pipeline's key and need SigV4
    credentials = data["artifactCredentials"]
    artifact_s3 = boto3.client(
      "s3",
      aws_access_key_id=credentials["accessKeyId"],
      aws_secret_access_key=credentials["secretAccessKey"],
      aws_session_token=credentials["sessionToken"],
      config=Config(signature_version="s3v4"),
    )
    tree = read_artifact(artifact_s3, location["bucketName"], location["objectKey"])
    print(f"Read {len(tree)} files for {domain}")
    result = sync_tree(boto3.client("s3"), domain, tree)
  except Exception as e:
    print(f"Error: {e}")
    traceback.print_exc()
    codepipeline.put_job_failure_result(
      jobId=job_id,
      failureDetails={"type": "JobFailed", "message": str(e)[:5000]},
    )
    return {"status": "failed", "error": str(e)}

  codepipeline.put_job_success_result(jobId=job_id)
  return result.to_dict()
