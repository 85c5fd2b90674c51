"""Argument rules: declaration, shorthand parsing and value coercion."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import ArgumentError, RuleError


class ArgType(str, Enum):
    # context types, satisfied from the invocation itself
    MESSAGE = "$msg"
    CALLER = "$uid"
    FLAGS = "$flags"
    TOKENS = "$tokens"
    SELF = "$self"
    CHECK_PERM = "$checkPerm"
    # value types, supplied by the caller
    STRING = "str"
    BOOLEAN = "bool"
    NUMBER = "num"
    TEXT = "text"

    @property
    def is_context(self) -> bool:
        return self.value.startswith("$")

    def __str__(self) -> str:
        return self.value


SHORTHAND_FLAGS = {
    "opt": "optional",
    "optional": "optional",
    "named": "named_only",
    "positional": "positional_only",
    "int": "integer",
    "integer": "integer",
}
_MAPPING_KEYS = frozenset(
    {"type", "ty", "name", "optional", "opt", "named", "positional", "integer", "int", "perm"}
)
# plain decimal notation only; no "inf", "nan", underscores or hex
_NUMERIC_RE = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?$")


@dataclass(frozen=True, slots=True)
class ArgumentRule:
    type: ArgType
    name: str | None = None
    optional: bool = False
    named_only: bool = False
    positional_only: bool = False
    integer: bool = False
    permission: int = 0

    def __post_init__(self) -> None:
        if self.named_only and self.positional_only:
            raise RuleError(f"{self.name}: named and positional are exclusive")
        if not self.type.is_context and not self.name:
            raise RuleError(f"{self.type} argument needs a name")
        if self.integer and self.type is not ArgType.NUMBER:
            raise RuleError(f"{self.name}: only num arguments can be integer")

    @property
    def label(self) -> str:
        return f"arg ({self.name}: {self.type})"


def _arg_type(tag: Any) -> ArgType:
    if isinstance(tag, ArgType):
        return tag
    try:
        return ArgType(tag)
    except ValueError:
        raise RuleError(f"{tag}: unknown arg type") from None


def _parse_shorthand(text: str) -> ArgumentRule:
    parts = text.split(":")
    if len(parts) == 1 and parts[0].startswith("$"):
        return ArgumentRule(type=_arg_type(parts[0]))
    if len(parts) < 2:
        raise RuleError(f"{text!r}: expected name:type[:flags]")
    name, tag, *flags = parts
    options: dict[str, Any] = {}
    for flag in flags:
        key, sep, value = flag.partition("=")
        if key == "perm" and sep:
            try:
                options["permission"] = int(value)
            except ValueError:
                raise RuleError(f"{text!r}: perm must be an integer") from None
        elif key in SHORTHAND_FLAGS and not sep:
            options[SHORTHAND_FLAGS[key]] = True
        else:
            raise RuleError(f"{text!r}: unknown flag {flag!r}")
    return ArgumentRule(type=_arg_type(tag), name=name or None, **options)


def _parse_mapping(spec: Mapping[str, Any]) -> ArgumentRule:
    unknown = set(spec) - _MAPPING_KEYS
    if unknown:
        raise RuleError(f"unknown rule keys: {', '.join(sorted(unknown))}")
    tag = spec.get("type", spec.get("ty"))
    if tag is None:
        raise RuleError(f"rule {dict(spec)!r} has no type")
    named = spec.get("named")
    perm = spec.get("perm", 0)
    if isinstance(perm, bool) or not isinstance(perm, int):
        raise RuleError(f"rule {dict(spec)!r}: perm must be an integer")
    return ArgumentRule(
        type=_arg_type(tag),
        name=spec.get("name"),
        optional=bool(spec.get("optional", spec.get("opt", False))),
        # `named: False` forbids passing the value by name.
        named_only=named is True,
        positional_only=named is False or bool(spec.get("positional", False)),
        integer=bool(spec.get("integer", spec.get("int", False))),
        permission=perm,
    )


def parse_rule(rule: ArgumentRule | str | Mapping[str, Any]) -> ArgumentRule:
    """Normalize a rule given as a rule, a shorthand string or a mapping."""
    if isinstance(rule, ArgumentRule):
        return rule
    if isinstance(rule, str):
        return _parse_shorthand(rule)
    if isinstance(rule, Mapping):
        return _parse_mapping(rule)
    raise RuleError(f"cannot parse argument rule {rule!r}")


# --- coercion ---


def _fits_int32(value: float) -> bool:
    if not math.isfinite(value) or value != int(value):
        return False
    return -(2**31) <= value < 2**31


def coerce_number(rule: ArgumentRule, raw: Any) -> int | float:
    if isinstance(raw, bool):
        raise ArgumentError(rule, "not a number")
    text = str(raw).strip()
    if not _NUMERIC_RE.match(text):
        raise ArgumentError(rule, "not a number")
    value = float(text)
    if rule.integer and not _fits_int32(value):
        raise ArgumentError(rule, "not an integer")
    if math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def coerce_boolean(rule: ArgumentRule, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw == "true":
        return True
    if raw == "false":
        return False
    raise ArgumentError(rule, "not a boolean (true or false)")


def coerce_string(rule: ArgumentRule, raw: Any) -> str:
    if isinstance(raw, bool):
        return "true" if raw else "false"
    return str(raw)


_COERCERS = {
    ArgType.NUMBER: coerce_number,
    ArgType.BOOLEAN: coerce_boolean,
    ArgType.STRING: coerce_string,
}


def coerce_value(rule: ArgumentRule, raw: Any) -> Any:
    try:
        coercer = _COERCERS[rule.type]
    except KeyError:
        raise RuleError(f"{rule.type}: not a value type") from None
    return coercer(rule, raw)
