"""Resolution of CloudFormation intrinsic functions.

References between resources are symbolic: ``Ref`` and ``Fn::GetAtt`` are
looked up by logical id in the state of already applied resources.
"""

import re
from typing import Any, Callable, Mapping

from ..exceptions import TemplateError

PSEUDO_PARAMETERS = frozenset(
  {
    "AWS::Region",
    "AWS::StackName",
    "AWS::StackId",
    "AWS::AccountId",
    "AWS::Partition",
    "AWS::URLSuffix",
    "AWS::NoValue",
  }
)

_SUB_VARIABLE = re.compile(r"\$\{([^}!]+)\}")


class _NoValue:
  """Marker for ``Ref: AWS::NoValue``; the enclosing key is dropped."""


NO_VALUE = _NoValue()


class UnresolvedReference(Exception):
  """A referenced resource has not been applied yet."""

  def __init__(self, logical_id: str) -> None:
    super().__init__(logical_id)
    self.logical_id = logical_id


def references(value: Any) -> set[str]:
  """Return every name referenced through Ref, Fn::GetAtt or Fn::Sub."""
  found: set[str] = set()

  def visit(node: Any) -> None:
    if isinstance(node, dict):
      if len(node) == 1:
        key, arg = next(iter(node.items()))
        if key == "Ref" and isinstance(arg, str):
          found.add(arg)
          return
        if key == "Fn::GetAtt":
          found.add(_split_get_att(arg)[0])
          return
        if key == "Fn::Sub":
          template, variables = _split_sub(arg)
          for name in _SUB_VARIABLE.findall(template):
            name = name.split(".", 1)[0]
            if name not in variables:
              found.add(name)
          visit(variables)
          return
      for item in node.values():
        visit(item)
    elif isinstance(node, list):
      for item in node:
        visit(item)

  visit(value)
  return found


def _split_get_att(arg: Any) -> tuple[str, str]:
  if isinstance(arg, str) and "." in arg:
    logical_id, attribute = arg.split(".", 1)
    return logical_id, attribute
  if isinstance(arg, list) and len(arg) == 2:
    return arg[0], arg[1]
  raise TemplateError(f"Invalid Fn::GetAtt argument: {arg!r}")


def _split_sub(arg: Any) -> tuple[str, dict[str, Any]]:
  if isinstance(arg, str):
    return arg, {}
  if isinstance(arg, list) and len(arg) == 2:
    return arg[0], dict(arg[1])
  raise TemplateError(f"Invalid Fn::Sub argument: {arg!r}")


class Resolver:
  """Evaluates template values against parameters and applied resources.

  Args:
    parameters: Validated parameter values
    mappings: The template's Mappings section
    pseudo: Values for AWS:: pseudo parameters
    physical_id: Callable returning the physical id of an applied resource
    attribute: Callable returning an attribute of an applied resource
  """

  def __init__(
    self,
    *,
    parameters: Mapping[str, str],
    mappings: Mapping[str, Mapping[str, Mapping[str, Any]]],
    pseudo: Mapping[str, str],
    physical_id: Callable[[str], str],
    attribute: Callable[[str, str], Any],
  ) -> None:
    self._parameters = parameters
    self._mappings = mappings
    self._pseudo = pseudo
    self._physical_id = physical_id
    self._attribute = attribute

  def resolve(self, value: Any) -> Any:
    if isinstance(value, dict):
      if len(value) == 1:
        key, arg = next(iter(value.items()))
        handler = self._FUNCTIONS.get(key)
        if handler is not None:
          return handler(self, arg)
      resolved = {}
      for key, item in value.items():
        item = self.resolve(item)
        if item is not NO_VALUE:
          resolved[key] = item
      return resolved
    if isinstance(value, list):
      return [item for item in (self.resolve(i) for i in value) if item is not NO_VALUE]
    return value

  def ref(self, name: str) -> Any:
    if name == "AWS::NoValue":
      return NO_VALUE
    if name in self._pseudo:
      return self._pseudo[name]
    if name in self._parameters:
      return self._parameters[name]
    return self._physical_id(name)

  def _ref(self, arg: Any) -> Any:
    if not isinstance(arg, str):
      raise TemplateError(f"Invalid Ref argument: {arg!r}")
    return self.ref(arg)

  def _get_att(self, arg: Any) -> Any:
    logical_id, attribute = _split_get_att(self.resolve(arg))
    return self._attribute(logical_id, attribute)

  def _join(self, arg: Any) -> str:
    if not isinstance(arg, list) or len(arg) != 2:
      raise TemplateError(f"Invalid Fn::Join argument: {arg!r}")
    delimiter, items = arg
    items = self.resolve(items)
    if not isinstance(items, list):
      raise TemplateError(f"Fn::Join expects a list, got {items!r}")
    return delimiter.join(str(item) for item in items)

  def _find_in_map(self, arg: Any) -> Any:
    if not isinstance(arg, list) or len(arg) != 3:
      raise TemplateError(f"Invalid Fn::FindInMap argument: {arg!r}")
    map_name, top_key, second_key = (self.resolve(item) for item in arg)
    try:
      return self._mappings[map_name][top_key][second_key]
    except KeyError:
      raise TemplateError(
        f"Fn::FindInMap could not find {map_name}/{top_key}/{second_key}"
      ) from None

  def _sub(self, arg: Any) -> str:
    template, variables = _split_sub(arg)
    variables = {name: self.resolve(item) for name, item in variables.items()}

    def replace(match: re.Match) -> str:
      name = match.group(1)
      if name in variables:
        return str(variables[name])
      if "." in name and name not in self._pseudo:
        logical_id, attribute = name.split(".", 1)
        return str(self._attribute(logical_id, attribute))
      return str(self.ref(name))

    return _SUB_VARIABLE.sub(replace, template)

  def _select(self, arg: Any) -> Any:
    if not isinstance(arg, list) or len(arg) != 2:
      raise TemplateError(f"Invalid Fn::Select argument: {arg!r}")
    index, items = self.resolve(arg[0]), self.resolve(arg[1])
    try:
      return items[int(index)]
    except (IndexError, ValueError, TypeError):
      raise TemplateError(f"Fn::Select index {index!r} out of range") from None

  _FUNCTIONS: dict[str, Callable[["Resolver", Any], Any]] = {
    "Ref": _ref,
    "Fn::GetAtt": _get_att,
    "Fn::Join": _join,
    "Fn::FindInMap": _find_in_map,
    "Fn::Sub": _sub,
    "Fn::Select": _select,
  }
