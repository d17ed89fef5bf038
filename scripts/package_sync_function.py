#!/usr/bin/env python3
"""Package the site sync function and upload it to S3."""

import argparse
import io
import sys
import zipfile
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

sys.path.insert(0, str(Path(__file__).parent.parent))

from gitsite.config import DEFAULT_FUNCTION_CODE_BUCKET, DEFAULT_FUNCTION_CODE_KEY

SOURCE = Path(__file__).parent.parent / "gitsite" / "functions" / "site_sync.py"


def build_package() -> bytes:
  """Zip the handler module at the archive root."""
  buffer = io.BytesIO()
  with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
    archive.write(SOURCE, arcname=SOURCE.name)
  return buffer.getvalue()


def ensure_bucket(s3, bucket_name: str, region: str) -> None:
  """Create the bucket if it doesn't exist."""
  try:
    s3.head_bucket(Bucket=bucket_name)
    print(f"Using existing bucket: {bucket_name}")
  except ClientError as e:
    error_code = e.response.get("Error", {}).get("Code")
    if error_code != "404":
      raise
    print(f"Creating bucket: {bucket_name}")
    if region == "us-east-1":
      s3.create_bucket(Bucket=bucket_name)
    else:
      s3.create_bucket(
        Bucket=bucket_name,
        CreateBucketConfiguration={"LocationConstraint": region},
      )


def main() -> None:
  """Package site_sync.py and upload it where the stack expects it."""
  parser = argparse.ArgumentParser(description="Upload the site sync function package")
  parser.add_argument(
    "--bucket",
    default=DEFAULT_FUNCTION_CODE_BUCKET,
    help=f"Destination bucket (default: {DEFAULT_FUNCTION_CODE_BUCKET})",
  )
  parser.add_argument(
    "--key",
    default=DEFAULT_FUNCTION_CODE_KEY,
    help=f"Destination key (default: {DEFAULT_FUNCTION_CODE_KEY})",
  )
  parser.add_argument(
    "--region",
    default="us-east-1",
    help="Region of the bucket, must match the site's region (default: us-east-1)",
  )
  args = parser.parse_args()

  if not SOURCE.exists():
    print(f"Error: {SOURCE} does not exist", file=sys.stderr)
    sys.exit(1)

  try:
    s3 = boto3.client("s3", region_name=args.region)
    ensure_bucket(s3, args.bucket, args.region)

    print(f"Packaging {SOURCE.name}...")
    package = build_package()

    print(f"Uploading to s3://{args.bucket}/{args.key}...")
    s3.put_object(Bucket=args.bucket, Key=args.key, Body=package)
    print("Done!")
  except ClientError as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
  main()
