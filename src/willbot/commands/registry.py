"""Command tree: nodes, initialization, auto-generated help and lookup."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..errors import PluginError
from .rules import ArgumentRule, parse_rule

if TYPE_CHECKING:
    from ..types import CallerId, UserStore

HELP_NAME = "?"
HELP_ALIASES = ("help",)
ROOT_TITLE = "(root)"

_SPEC_KEYS = {
    "help": "help",
    "alias": "aliases",
    "aliases": "aliases",
    "perm": "permission",
    "permission": "permission",
    "args": "args",
    "fn": "handler",
    "handler": "handler",
    "subs": "children",
    "children": "children",
}


@dataclass(eq=False)
class CommandNode:
    """One entry of the command tree.

    Alias keys in a parent's ``children`` refer to the very same node
    object, so nodes compare by identity.
    """

    name: str = ""
    help: str | None = None
    aliases: tuple[str, ...] = ()
    permission: int = 0
    args: list[Any] | None = None
    handler: Callable[..., Any] | None = None
    children: dict[str, CommandNode] = field(default_factory=dict)
    initialized: bool = field(default=False, repr=False)

    @property
    def executable(self) -> bool:
        return self.handler is not None

    @property
    def rules(self) -> list[ArgumentRule]:
        return list(self.args or ())


def build_node(spec: CommandNode | Mapping[str, Any], name: str = "") -> CommandNode:
    """Turn a plugin-declared mapping spec into a (not yet initialized) node."""
    if isinstance(spec, CommandNode):
        if not spec.name:
            spec.name = name
        return spec
    if not isinstance(spec, Mapping):
        raise PluginError(f"{name or '<root>'}: command spec must be a mapping")

    unknown = set(spec) - set(_SPEC_KEYS)
    if unknown:
        raise PluginError(
            f"{name or '<root>'}: unknown command keys: {', '.join(sorted(unknown))}"
        )
    fields: dict[str, Any] = {_SPEC_KEYS[key]: value for key, value in spec.items()}

    aliases = fields.get("aliases") or ()
    if isinstance(aliases, str):
        aliases = (aliases,)
    fields["aliases"] = tuple(aliases)

    handler = fields.get("handler")
    if handler is not None and not callable(handler):
        raise PluginError(f"{name}: fn must be callable")

    permission = fields.get("permission", 0)
    if isinstance(permission, bool) or not isinstance(permission, int):
        raise PluginError(f"{name}: perm must be an integer")

    if fields.get("args") is not None:
        fields["args"] = list(fields["args"])

    children = fields.get("children") or {}
    if not isinstance(children, Mapping):
        raise PluginError(f"{name}: subs must be a mapping")
    fields["children"] = {
        child_name: build_node(child, child_name)
        for child_name, child in children.items()
    }
    return CommandNode(name=name, **fields)


# --- help ---


def _usage_part(rule: ArgumentRule) -> str | None:
    if rule.type.is_context:
        return None
    perm = f"[perm] {rule.permission} " if rule.permission else ""
    if rule.named_only:
        return f"[--{perm}{rule.name}: {rule.type}]"
    if rule.optional:
        return f"[{perm}{rule.name}: {rule.type}]"
    return f"<{perm}{rule.name}: {rule.type}>"


def render_help(node: CommandNode, name: str) -> str:
    name = name or ROOT_TITLE
    lines = [f"{name}: [perm] {node.permission}"]
    if node.aliases:
        lines[0] += f", [alias] {', '.join(node.aliases)}"
    lines.append(f"[subs] {', '.join(node.children) or 'none'}")
    if node.args is not None:
        parts = [p for p in map(_usage_part, node.rules) if p]
        lines.append(" ".join(["[usage]", name, *parts]))
    else:
        lines.append("[no usage]")
    lines.append(f"[help] {node.help or 'no information'}")
    return "\n".join(lines)


def _make_help_help() -> CommandNode:
    node = CommandNode(
        name=HELP_NAME,
        help="get help",
        aliases=HELP_ALIASES,
        args=[],
        handler=lambda: "?: alias: help\nusage: ?\nhelp: get help",
        initialized=True,
    )
    node.children[HELP_NAME] = node
    for alias in HELP_ALIASES:
        node.children[alias] = node
    return node


HELP_HELP = _make_help_help()


def _make_help_node(node: CommandNode, name: str) -> CommandNode:
    return CommandNode(
        name=HELP_NAME,
        help=f"get help for {name or 'the root'}",
        aliases=HELP_ALIASES,
        args=[],
        handler=lambda: render_help(node, name),
        children={HELP_NAME: HELP_HELP, **{a: HELP_HELP for a in HELP_ALIASES}},
        initialized=True,
    )


# --- initialization ---


def initialize_node(node: CommandNode, name: str) -> CommandNode:
    """Normalize rules, inject help and expand aliases, recursively.

    Idempotent: a node that was already initialized is returned as is.
    Children are initialized before this node's help child is created.
    """
    if node.initialized:
        return node
    node.initialized = True
    if not node.name:
        node.name = name

    if node.args is not None:
        node.args = [parse_rule(rule) for rule in node.args]

    for child_name, child in list(node.children.items()):
        initialize_node(child, child_name)

    node.children.setdefault(HELP_NAME, _make_help_node(node, name))

    for child in list(node.children.values()):
        for alias in child.aliases:
            node.children[alias] = child
    return node


def new_root() -> CommandNode:
    return initialize_node(CommandNode(help="all loaded commands"), "")


def link_child(parent: CommandNode, name: str, child: CommandNode) -> None:
    """Attach an initialized ``child`` under ``parent`` with its aliases."""
    initialize_node(child, name)
    parent.children[name] = child
    for alias in child.aliases:
        parent.children[alias] = child


def unlink_child(parent: CommandNode, name: str) -> CommandNode | None:
    child = parent.children.get(name)
    if child is None or name == HELP_NAME:
        return None
    for key, value in list(parent.children.items()):
        if value is child:
            del parent.children[key]
    return child


# --- lookup ---


def find_command(root: CommandNode, dotted_name: str | None) -> CommandNode | None:
    """Walk ``children`` by exact key for each dot-separated segment."""
    node = root
    if not dotted_name:
        return node
    for segment in dotted_name.split("."):
        node = node.children.get(segment)
        if node is None:
            return None
    return node


async def find_command_with_scope(
    root: CommandNode,
    dotted_name: str,
    caller_id: CallerId,
    store: UserStore,
) -> CommandNode | None:
    """Look up ``dotted_name``, retrying under each of the caller's scopes."""
    node = find_command(root, dotted_name)
    if node is not None:
        return node
    for prefix in await store.get_scopes(caller_id):
        node = find_command(root, f"{prefix}.{dotted_name}")
        if node is not None:
            return node
    return None
