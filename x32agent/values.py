"""Typed parameter values for the X32 agent.

Every value that crosses the wire or lives in the parameter state store is a
TypedValue: a closed variant of Int32, Float32 or Opaque. Coercion and
equality are defined per variant so a reply that arrives as a float can be
compared against an int32 rule trigger without runtime type sniffing.

Numeric coercion goes through numpy's fixed-width scalars so the stored value
has exactly the precision the console works with (32-bit two's complement
truncation, IEEE-754 single precision rounding).

Examples:
    >>> coerce(ParamType.INT32, 59.7).value
    59
    >>> coerce(ParamType.FLOAT32, 1) == coerce(ParamType.FLOAT32, 1.0)
    True
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import numpy as np


class ParamType(Enum):
    """Declared type of a console parameter."""

    INT32 = "int32"
    FLOAT32 = "float32"
    OPAQUE = "opaque"

    @classmethod
    def parse(cls, name: str) -> "ParamType":
        """Look up a type by its configuration name (case-insensitive).

        Raises:
            ValueError: If the name is not one of int32, float32, opaque
        """
        if isinstance(name, str):
            for member in cls:
                if member.value == name.strip().lower():
                    return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown parameter type: {name!r} (expected one of: {valid})")


@dataclass(frozen=True)
class TypedValue:
    """A value tagged with its declared parameter type.

    Attributes:
        type: Declared ParamType
        value: int for INT32, float for FLOAT32, raw decoded value otherwise
    """

    type: ParamType
    value: Any

    @property
    def osc_type_tag(self) -> Optional[str]:
        """OSC type tag used when encoding this value.

        Opaque values return None so python-osc infers the tag from the
        Python type (str -> s, bytes -> b, and so on).
        """
        if self.type is ParamType.INT32:
            return "i"
        if self.type is ParamType.FLOAT32:
            return "f"
        return None

    def __eq__(self, other):
        if not isinstance(other, TypedValue):
            return NotImplemented
        if self.type is not other.type:
            return False
        # Opaque values only match when the decoded Python types agree (1 != True)
        if self.type is ParamType.OPAQUE and type(self.value) is not type(other.value):
            return False
        return self.value == other.value

    def __hash__(self):
        return hash((self.type, self.value))

    def __str__(self) -> str:
        return f"{self.value!r}:{self.type.value}"


def _check_numeric(raw: Any) -> None:
    # bool is an int subclass; the console never reports it as a number
    if isinstance(raw, bool) or not isinstance(raw, (int, float, np.number)):
        raise TypeError(f"Expected a numeric value, got {type(raw).__name__}: {raw!r}")


def coerce(param_type: ParamType, raw: Any) -> TypedValue:
    """Coerce a raw decoded or configured value into the declared type.

    Int32 truncates toward zero, Float32 rounds to single precision. Opaque
    values pass through untouched.

    Args:
        param_type: Declared type
        raw: Value as decoded from the wire or loaded from YAML

    Returns:
        TypedValue tagged with param_type

    Raises:
        TypeError: If a numeric type is declared and raw is not numeric
        ValueError: If raw cannot be represented (NaN/inf for int32, or
            outside the int32 range)
    """
    if param_type is ParamType.INT32:
        _check_numeric(raw)
        if isinstance(raw, (float, np.floating)):
            if not np.isfinite(raw):
                raise ValueError(f"Cannot represent {raw!r} as int32")
            raw = int(raw)
        info = np.iinfo(np.int32)
        if not info.min <= int(raw) <= info.max:
            raise ValueError(f"Value {raw!r} out of int32 range")
        return TypedValue(param_type, int(np.int32(raw)))

    if param_type is ParamType.FLOAT32:
        _check_numeric(raw)
        return TypedValue(param_type, float(np.float32(raw)))

    if isinstance(raw, bytearray):
        raw = bytes(raw)
    return TypedValue(param_type, raw)
