"""
Pipeline configuration loading and validation.

The pipeline document declares which console parameters to watch, what to
write when a watched parameter takes a given value, and which parameters to
hold at a fixed value every cycle:

    watch_on:
      - parameter: /config/mute/2
        type: float32
        actions:
          - value: 0
            set:
              - {path: /ch/29/mix/on, type: int32, value: 0}
    set:
      - {path: /ch/01/mix/on, type: int32, value: 1}

Everything is validated and coerced up front. A document that fails any
check is rejected as a whole; nothing is partially applied.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Tuple

import yaml

from x32agent import osc
from x32agent.log import get_logger
from x32agent.values import ParamType, TypedValue, coerce

logger = get_logger(__name__)


# ============================================================================
# MODEL
# ============================================================================

@dataclass(frozen=True)
class SetCommand:
    """One outbound parameter write."""

    address: str
    value: TypedValue


@dataclass(frozen=True)
class MatchRule:
    """Trigger value and the ordered writes it fires."""

    trigger: TypedValue
    actions: Tuple[SetCommand, ...] = ()


@dataclass(frozen=True)
class WatchedParameter:
    """A console parameter that is polled and reacted to."""

    address: str
    declared_type: ParamType
    rules: Tuple[MatchRule, ...] = ()

    def match(self, value: TypedValue):
        """First rule whose trigger equals value, or None."""
        for rule in self.rules:
            if rule.trigger == value:
                return rule
        return None


@dataclass(frozen=True)
class AgentConfig:
    """Validated pipeline configuration."""

    watched: Tuple[WatchedParameter, ...] = field(default_factory=tuple)
    enforced: Tuple[SetCommand, ...] = field(default_factory=tuple)


# ============================================================================
# LOADING
# ============================================================================

def load_config(path: str) -> AgentConfig:
    """
    Load and validate the pipeline configuration from a YAML file.

    Args:
        path: Path to the pipeline YAML file

    Returns:
        Validated AgentConfig

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML syntax is invalid
        ValueError: If the configuration is invalid (via validate_config)
    """
    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            f"See pipeline.example.yaml for a template."
        )

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f)

    return validate_config(raw)


# ============================================================================
# VALIDATION
# ============================================================================

def _require(entry: dict, key: str, where: str) -> Any:
    if not isinstance(entry, dict):
        raise ValueError(f"{where}: expected a mapping, got {type(entry).__name__}")
    if key not in entry or entry[key] is None:
        raise ValueError(f"{where}: missing required field '{key}'")
    return entry[key]


def _list_field(entry: dict, key: str, where: str, required: bool = False) -> list:
    value = entry.get(key) if isinstance(entry, dict) else None
    if value is None:
        if required:
            raise ValueError(f"{where}: missing required field '{key}'")
        return []
    if not isinstance(value, list):
        raise ValueError(f"{where}: '{key}' must be a list, got {type(value).__name__}")
    return value


def _address(entry: dict, key: str, where: str) -> str:
    address = _require(entry, key, where)
    try:
        osc.validate_address(address)
    except ValueError as e:
        raise ValueError(f"{where}: {e}")
    return address


def _typed(param_type: ParamType, raw: Any, where: str) -> TypedValue:
    try:
        return coerce(param_type, raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{where}: invalid {param_type.value} value {raw!r} ({e})")


def _param_type(entry: dict, where: str) -> Optional[ParamType]:
    """Declared type of an entry, or None for an unrecognized type name."""
    type_name = _require(entry, 'type', where)
    if not isinstance(type_name, str):
        raise ValueError(f"{where}: 'type' must be a string, got {type(type_name).__name__}")
    try:
        return ParamType.parse(type_name)
    except ValueError:
        return None


def parse_set_command(entry: dict, where: str) -> Optional[SetCommand]:
    """Validate one {path, type, value} entry.

    Returns None for a write of an unrecognized type, which is never sent.
    Opaque values must be encodable as an OSC argument.
    """
    address = _address(entry, 'path', where)
    raw = _require(entry, 'value', where)
    param_type = _param_type(entry, where)
    if param_type is None:
        logger.warning(f"{where}: unsupported type {entry['type']!r}, write to {address} skipped")
        return None

    command = SetCommand(address, _typed(param_type, raw, where))
    if param_type is ParamType.OPAQUE:
        try:
            osc.encode_message(address, command.value)
        except osc.EncodeError as e:
            raise ValueError(f"{where}: opaque value {raw!r} cannot be sent as an OSC argument ({e})")
    return command


def _set_commands(entries: list, where: str) -> Tuple[SetCommand, ...]:
    commands = (parse_set_command(entry, f"{where}[{i}]") for i, entry in enumerate(entries))
    return tuple(command for command in commands if command is not None)


def parse_watched_parameter(entry: dict, where: str) -> WatchedParameter:
    """Validate one watch_on entry and its ordered actions.

    An unrecognized declared type watches the parameter as opaque, so replies
    are compared as decoded.
    """
    address = _address(entry, 'parameter', where)
    declared_type = _param_type(entry, where)
    if declared_type is None:
        logger.debug(f"{where}: type {entry['type']!r} of {address} treated as opaque")
        declared_type = ParamType.OPAQUE

    rules = []
    for i, action in enumerate(_list_field(entry, 'actions', where)):
        action_where = f"{where}.actions[{i}]"
        trigger = _typed(declared_type, _require(action, 'value', action_where), action_where)
        commands = _set_commands(_list_field(action, 'set', action_where, required=True),
                                 f"{action_where}.set")
        rules.append(MatchRule(trigger, commands))

    return WatchedParameter(address, declared_type, tuple(rules))


def validate_config(raw: Any) -> AgentConfig:
    """
    Validate a parsed pipeline document and build an AgentConfig.

    Validates:
    - Document is a mapping (an empty document is an empty pipeline)
    - watch_on / set are lists when present
    - Every parameter/path is an OSC address
    - Every type is a string; unknown watch types are treated as opaque and
      writes of an unknown type are dropped with a warning
    - Every value is present and coercible to its declared type, and opaque
      write values are encodable
    - Watched parameters are unique

    Args:
        raw: Result of yaml.safe_load

    Returns:
        AgentConfig

    Raises:
        ValueError: Naming the offending entry on the first failure
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(
            f"Configuration must be a mapping with 'watch_on' and 'set' sections, "
            f"got {type(raw).__name__}"
        )

    watched = []
    seen = set()
    for i, entry in enumerate(_list_field(raw, 'watch_on', 'config')):
        param = parse_watched_parameter(entry, f"watch_on[{i}]")
        if param.address in seen:
            raise ValueError(f"watch_on[{i}]: duplicate watched parameter {param.address}")
        seen.add(param.address)
        watched.append(param)

    enforced = _set_commands(_list_field(raw, 'set', 'config'), "set")

    return AgentConfig(tuple(watched), enforced)
