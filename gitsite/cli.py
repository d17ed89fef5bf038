"""Command line interface for provisioning and publishing git-backed sites."""

import argparse
import json
import logging
import sys
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from . import regions
from .app import get_account_id, synthesize_site
from .config import Config, SiteConfig
from .engine import ApplyResult, StackDeployer, StackState, StackTemplate, StateStore
from .events import EventBus, NotificationChannel, PipelineTrigger, RepositoryEvent
from .exceptions import ConfigError, GitSiteError
from .pipeline import (
  CodeCommitSource,
  FunctionInvoker,
  LambdaInvoker,
  LocalSyncInvoker,
  Pipeline,
  RunState,
  S3ArtifactStore,
)
from .providers import default_registry

# Exit code of `drift` when resources have gone missing
DRIFT_EXIT_CODE = 2


def select_site(config: Config, domain: str | None) -> SiteConfig:
  """Pick the site to operate on."""
  if domain:
    return config.site(domain)
  if len(config.sites) == 1:
    return config.sites[0]
  if not config.sites:
    raise ConfigError("No sites configured")
  raise ConfigError("Several sites are configured, choose one with --site")


def build_deployer(config: Config, site: SiteConfig, account_id: str = "") -> StackDeployer:
  template = StackTemplate.from_dict(synthesize_site(site))
  return StackDeployer(
    template,
    default_registry(),
    StateStore(config.engine.state_dir),
    stack_name=site.stack_name,
    region=site.region,
    account_id=account_id,
    session=boto3.Session(region_name=site.region),
    max_workers=config.engine.max_workers,
  )


def print_changes(result: ApplyResult) -> None:
  if not result.changes:
    print("No changes")
  for change in result.changes:
    print(f"  {change.action.value:<8} {change.logical_id} ({change.resource_type})")
  for logical_id in result.orphaned:
    print(f"  Retained {logical_id}")


def print_outputs(outputs: dict[str, Any]) -> None:
  for name, value in outputs.items():
    print(f"{name}: {value}")


def load_deployed_state(config: Config, site: SiteConfig) -> StackState:
  state = StateStore(config.engine.state_dir).load(site.stack_name)
  if state is None:
    raise GitSiteError(f"Stack {site.stack_name} has not been deployed")
  return state


# Commands


def cmd_synth(config: Config, site: SiteConfig, args: argparse.Namespace) -> int:
  template = synthesize_site(site)
  text = json.dumps(template, indent=2)
  if args.output:
    with open(args.output, "w") as f:
      f.write(text + "\n")
    print(f"Wrote {args.output}")
  else:
    print(text)
  return 0


def cmd_plan(config: Config, site: SiteConfig, args: argparse.Namespace) -> int:
  deployer = build_deployer(config, site, get_account_id())
  plan = deployer.plan(site.parameters())
  print(f"Plan for {site.stack_name} in {site.region}:")
  for change in plan.changes:
    suffix = " (pending)" if change.pending else ""
    print(f"  {change.action.value:<8} {change.logical_id} ({change.resource_type}){suffix}")
  return 0


def cmd_deploy(config: Config, site: SiteConfig, args: argparse.Namespace) -> int:
  deployer = build_deployer(config, site, get_account_id())
  print(f"Deploying {site.stack_name} to {site.region}...")
  result = deployer.deploy(site.parameters(), refresh=args.refresh)
  print_changes(result)
  print()
  print_outputs(result.outputs)
  return 0


def cmd_destroy(config: Config, site: SiteConfig, args: argparse.Namespace) -> int:
  if not args.yes:
    answer = input(f"Type {site.domain} to destroy {site.stack_name}: ")
    if answer.strip() != site.domain:
      print("Aborted")
      return 1
  deployer = build_deployer(config, site)
  result = deployer.destroy()
  print_changes(result)
  return 0


def cmd_outputs(config: Config, site: SiteConfig, args: argparse.Namespace) -> int:
  print_outputs(load_deployed_state(config, site).outputs)
  return 0


def cmd_drift(config: Config, site: SiteConfig, args: argparse.Namespace) -> int:
  deployer = build_deployer(config, site)
  report = deployer.detect_drift()
  for logical_id in report.in_sync:
    print(f"  IN_SYNC  {logical_id}")
  for logical_id in report.deleted:
    print(f"  DELETED  {logical_id}")
  if report.drifted:
    print("Run `gitsite deploy --refresh` to recreate deleted resources")
    return DRIFT_EXIT_CODE
  return 0


def cmd_trigger(config: Config, site: SiteConfig, args: argparse.Namespace) -> int:
  state = load_deployed_state(config, site)
  session = boto3.Session(region_name=site.region)
  repository = state.outputs["GitRepositoryName"]
  source = CodeCommitSource(repository, client=session.client("codecommit"))

  invoker: FunctionInvoker
  if args.local:
    invoker = LocalSyncInvoker(client=session.client("s3"))
  else:
    invoker = LambdaInvoker(
      state.resources["LambdaFunction"].physical_id, client=session.client("lambda")
    )

  pipeline = Pipeline(
    state.outputs["CodePipelineName"],
    source=source,
    store=S3ArtifactStore(
      state.resources["CodePipelineBucket"].physical_id, client=session.client("s3")
    ),
    invoker=invoker,
    branch=site.branch,
    user_parameters=site.domain,
    timeout=args.timeout,
    max_attempts=args.attempts,
  )
  commit_id = args.commit or source.head(site.branch)
  event = RepositoryEvent.now(repository, site.branch, commit_id)

  with pipeline, EventBus() as bus:
    bus.subscribe(
      "notifications",
      NotificationChannel(
        state.resources["NotificationTopic"].physical_id, client=session.client("sns")
      ),
    )
    bus.subscribe("pipeline", PipelineTrigger(pipeline))
    deliveries = {delivery.subscriber: delivery for delivery in bus.publish(event)}

    notified = deliveries["notifications"]
    if notified.error() is not None:
      print(f"Warning: notification failed: {notified.error()}", file=sys.stderr)

    run = deliveries["pipeline"].result().result()

  print(f"Run {run.run_id}: {' -> '.join(step.value for step in run.history)}")
  if run.state is RunState.FAILED:
    print(f"Error: {run.error}", file=sys.stderr)
    return 1
  print_outputs(dict(run.result or {}))
  return 0


def cmd_regions(config: Config, site: SiteConfig | None, args: argparse.Namespace) -> int:
  for region in regions.supported_regions():
    endpoint = regions.lookup(region)
    print(f"{region:<16} {endpoint.website_endpoint:<42} {endpoint.hosted_zone_id}")
  return 0


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(
    prog="gitsite", description="Provision and publish git-backed static websites"
  )
  parser.add_argument(
    "--config",
    default="sites.yaml",
    help="Path to the sites configuration (default: sites.yaml)",
  )
  parser.add_argument("--site", help="Domain of the site to operate on")
  subparsers = parser.add_subparsers(dest="command", required=True)

  synth = subparsers.add_parser("synth", help="Print the CloudFormation template")
  synth.add_argument("--output", "-o", help="Write the template to a file")
  synth.set_defaults(func=cmd_synth)

  subparsers.add_parser("plan", help="Preview changes").set_defaults(func=cmd_plan)

  deploy = subparsers.add_parser("deploy", help="Create or update the site stack")
  deploy.add_argument(
    "--refresh",
    action="store_true",
    help="Recreate resources that were deleted outside gitsite",
  )
  deploy.set_defaults(func=cmd_deploy)

  destroy = subparsers.add_parser("destroy", help="Delete the site stack (retained resources stay)")
  destroy.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
  destroy.set_defaults(func=cmd_destroy)

  subparsers.add_parser("outputs", help="Show stack outputs").set_defaults(func=cmd_outputs)
  subparsers.add_parser("drift", help="Check recorded resources still exist").set_defaults(
    func=cmd_drift
  )

  trigger = subparsers.add_parser("trigger", help="Publish the branch head to the site")
  trigger.add_argument("--commit", help="Commit to publish (default: branch head)")
  trigger.add_argument(
    "--local", action="store_true", help="Sync in-process instead of invoking the function"
  )
  trigger.add_argument("--timeout", type=float, default=300.0, help="Invocation timeout in seconds")
  trigger.add_argument("--attempts", type=int, default=1, help="Invocation attempts")
  trigger.set_defaults(func=cmd_trigger)

  subparsers.add_parser("regions", help="List supported regions").set_defaults(func=cmd_regions)
  return parser


def main(argv: list[str] | None = None) -> None:
  """Run a gitsite command."""
  args = build_parser().parse_args(argv)

  try:
    if args.command == "regions":
      logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
      sys.exit(cmd_regions(Config(), None, args))

    config = Config.from_yaml(args.config)
    logging.basicConfig(
      level=getattr(logging, config.engine.log_level, logging.INFO),
      format="%(asctime)s - %(levelname)s - %(message)s",
    )
    site = select_site(config, args.site)
    code = args.func(config, site, args)
  except (GitSiteError, BotoCoreError, ClientError) as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(1)
  sys.exit(code)


if __name__ == "__main__":
  main()
