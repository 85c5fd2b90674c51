"""Shell-like tokenizer for raw command lines."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

_ENV_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?$")
_DOUBLE_QUOTE_ESCAPES = frozenset('"\\$')

NamedValue = str | bool


@dataclass(frozen=True, slots=True)
class QuoteFlags:
    dangling_double: bool = False
    dangling_single: bool = False


@dataclass(frozen=True, slots=True)
class TokenizeResult:
    tokens: tuple[str, ...]
    flags: QuoteFlags


def _expand_env(raw: str, i: int, env: Mapping[str, str]) -> tuple[str | None, int]:
    """Expand a ``$NAME`` / ``${NAME}`` reference starting at ``raw[i] == '$'``.

    Returns ``(None, i + 1)`` when the dollar sign does not start a reference.
    """
    if raw.startswith("${", i):
        end = raw.find("}", i + 2)
        if end != -1 and _ENV_NAME_RE.fullmatch(raw, i + 2, end):
            return env.get(raw[i + 2 : end], ""), end + 1
        return None, i + 1
    match = _ENV_NAME_RE.match(raw, i + 1)
    if match is None:
        return None, i + 1
    return env.get(match.group(), ""), match.end()


def tokenize(raw: str, env: Mapping[str, str] | None = None) -> TokenizeResult:
    """Split ``raw`` on whitespace outside quotes, expanding env references.

    An unterminated quote never raises; it is reported through the
    returned flags and the text collected so far still forms a token.
    """
    env = env or {}
    tokens: list[str] = []
    buf: list[str] = []
    # A word exists once anything but an empty unquoted expansion was seen.
    in_word = False
    quote: str | None = None
    i = 0
    n = len(raw)

    while i < n:
        ch = raw[i]
        if quote == "'":
            if ch == "'":
                quote = None
            else:
                buf.append(ch)
            i += 1
            continue
        if quote == '"':
            if ch == '"':
                quote = None
                i += 1
            elif ch == "\\" and i + 1 < n and raw[i + 1] in _DOUBLE_QUOTE_ESCAPES:
                buf.append(raw[i + 1])
                i += 2
            elif ch == "$":
                value, i = _expand_env(raw, i, env)
                buf.append("$" if value is None else value)
            else:
                buf.append(ch)
                i += 1
            continue

        if ch.isspace():
            if in_word:
                tokens.append("".join(buf))
            buf.clear()
            in_word = False
            i += 1
        elif ch in "'\"":
            quote = ch
            in_word = True
            i += 1
        elif ch == "\\" and i + 1 < n:
            buf.append(raw[i + 1])
            in_word = True
            i += 2
        elif ch == "$":
            value, i = _expand_env(raw, i, env)
            if value is None:
                buf.append("$")
                in_word = True
            elif value:
                buf.append(value)
                in_word = True
        else:
            buf.append(ch)
            in_word = True
            i += 1

    if in_word:
        tokens.append("".join(buf))
    return TokenizeResult(
        tokens=tuple(tokens),
        flags=QuoteFlags(
            dangling_double=quote == '"',
            dangling_single=quote == "'",
        ),
    )


def _is_option(token: str) -> bool:
    return token.startswith("-") and token != "-" and not _NUMBER_RE.match(token)


def split_named(args: Sequence[str]) -> tuple[list[str], dict[str, NamedValue]]:
    """Split argument tokens into positional values and named options.

    ``--name=value``, ``--name value``, ``--flag``, ``--no-flag`` and
    bundled short flags (``-abc``) are recognized; ``--`` ends options.
    """
    positional: list[str] = []
    named: dict[str, NamedValue] = {}
    i = 0
    while i < len(args):
        token = args[i]
        if token == "--":
            positional.extend(args[i + 1 :])
            break
        if not _is_option(token):
            positional.append(token)
            i += 1
            continue

        if token.startswith("--"):
            key, sep, value = token[2:].partition("=")
            if sep:
                named[key] = value
            elif key.startswith("no-") and len(key) > 3:
                named[key[3:]] = False
            elif i + 1 < len(args) and not _is_option(args[i + 1]):
                named[key] = args[i + 1]
                i += 1
            else:
                named[key] = True
            i += 1
            continue

        letters = token[1:]
        for letter in letters[:-1]:
            named[letter] = True
        last = letters[-1]
        if i + 1 < len(args) and not _is_option(args[i + 1]):
            named[last] = args[i + 1]
            i += 1
        else:
            named[last] = True
        i += 1
    return positional, named
