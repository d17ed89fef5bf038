"""Error types raised by gitsite."""


class GitSiteError(Exception):
  """Base class for all gitsite errors."""


class ConfigError(GitSiteError):
  """The site configuration file is missing or inconsistent."""


class ParameterValidationError(GitSiteError):
  """A stack parameter violates its declared constraints."""

  def __init__(self, parameter: str, message: str) -> None:
    super().__init__(f"Parameter '{parameter}' {message}")
    self.parameter = parameter


class UnsupportedRegionError(GitSiteError):
  """The deployment region has no entry in the region table."""

  def __init__(self, region: str) -> None:
    super().__init__(f"Unsupported region: {region}")
    self.region = region


class TemplateError(GitSiteError):
  """The stack template is malformed or uses unsupported features."""


class PlanningError(GitSiteError):
  """The resource graph cannot be turned into an execution plan."""


class DependencyCycleError(PlanningError):
  """Resources depend on each other in a cycle."""

  def __init__(self, cycle: list[str]) -> None:
    super().__init__(f"Circular dependency between resources: {' -> '.join(cycle)}")
    self.cycle = cycle


class UnknownReferenceError(PlanningError):
  """A resource references a name that is not declared in the template."""

  def __init__(self, logical_id: str, target: str) -> None:
    super().__init__(f"Resource '{logical_id}' references unknown name '{target}'")
    self.logical_id = logical_id
    self.target = target


class ProvisioningError(GitSiteError):
  """A provider call failed while applying the stack."""

  def __init__(
    self,
    logical_id: str,
    resource_type: str,
    cause: BaseException,
    rolled_back: list[str] | None = None,
  ) -> None:
    super().__init__(f"Failed to provision {logical_id} ({resource_type}): {cause}")
    self.logical_id = logical_id
    self.resource_type = resource_type
    self.cause = cause
    self.rolled_back = rolled_back or []


class IncompleteCreateError(GitSiteError):
  """A resource was created but a later step of its creation failed."""

  def __init__(self, physical_id: str, cause: BaseException) -> None:
    super().__init__(f"{physical_id} was created but not completed: {cause}")
    self.physical_id = physical_id
    self.cause = cause


class DeletionError(GitSiteError):
  """A provider call failed while tearing the stack down."""

  def __init__(self, logical_id: str, cause: BaseException) -> None:
    super().__init__(f"Failed to delete {logical_id}: {cause}")
    self.logical_id = logical_id
    self.cause = cause


class PipelineError(GitSiteError):
  """A pipeline run could not be carried out."""


class PipelineStateError(PipelineError):
  """A pipeline run was moved through an illegal state transition."""
