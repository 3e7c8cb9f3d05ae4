"""Resolved output of one file: its commands and its scene forest."""

__all__ = ["SceneNode", "CommandsBuffer", "SceneBuffer", "ResolvedFile", "resolve_file"]

from dataclasses import dataclass

import cob
from cob import ast


class SceneNode:
    """Resolved scene node.

    Attributes:
        name: Node name, unique among root scenes of a file
        instructions: Fully expanded instructions attached to this node
        children: Child SceneNodes in order
    """

    def __init__(self, name, instructions=None, children=None):
        self.name = name
        self.instructions = list(instructions) if instructions else []
        self.children = list(children) if children else []

    def __repr__(self):
        return f"SceneNode({self.name!r} *{len(self.instructions)} children={len(self.children)})"

    def child(self, name):
        """First child with the given name, or None."""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def find(self, path):
        """Descendant at a '/' separated path of names below this node."""
        node = self
        for name in path.split("/"):
            node = node.child(name)
            if node is None:
                return None
        return node

    def instruction(self, type_id):
        """Instruction attached here with the given type, or None."""
        for instruction in self.instructions:
            if instruction.type_id == type_id:
                return instruction
        return None

    def walk(self):
        """Yield this node and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def matches(self, other):
        """Structural comparison, ignoring formatting."""
        return (isinstance(other, SceneNode)
                and self.name == other.name
                and len(self.instructions) == len(other.instructions)
                and len(self.children) == len(other.children)
                and all(a.matches(b) for a, b in zip(self.instructions, other.instructions))
                and all(a.matches(b) for a, b in zip(self.children, other.children)))

    def unparse(self, depth=0) -> str:
        """Scene text for this node with canonical formatting."""
        indent = ast.INDENT * depth
        lines = [indent + ast.quote_string(self.name)]
        for instruction in self.instructions:
            lines.append(indent + ast.INDENT + instruction.canonical())
        for child in self.children:
            lines.append(child.unparse(depth + 1))
        return "\n".join(lines)


class CommandsBuffer:
    """Commands of one file, collected in order."""

    def __init__(self):
        self._commands = []

    def add(self, instruction):
        self._commands.append(instruction)

    def freeze(self):
        return tuple(self._commands)


class SceneBuffer:
    """Root scenes of one file, collected in order."""

    def __init__(self):
        self._scenes = []

    def add(self, node):
        self._scenes.append(node)

    def freeze(self):
        return tuple(self._scenes)


@dataclass(frozen=True)
class ResolvedFile:
    """Fully expanded output of one file.

    Nothing in it refers to constants, macros, parameters or imports. A
    new ResolvedFile replaces the old one whole; instances are never
    updated in place by the cache.

    Attributes:
        path: File identity
        commands: Instructions of the #commands section, in order
        scenes: Root SceneNodes of the #scenes section, in order
        dependencies: Paths of the imported files it was resolved against
    """
    path: str
    commands: tuple = ()
    scenes: tuple = ()
    dependencies: tuple = ()

    def scene(self, path):
        """Scene node at a '/' separated path starting with a root name."""
        root, _, rest = path.partition("/")
        for scene in self.scenes:
            if scene.name == root:
                return scene.find(rest) if rest else scene
        return None

    def matches(self, other):
        """Structural comparison, ignoring formatting."""
        return (isinstance(other, ResolvedFile)
                and self.path == other.path
                and len(self.commands) == len(other.commands)
                and len(self.scenes) == len(other.scenes)
                and all(a.matches(b) for a, b in zip(self.commands, other.commands))
                and all(a.matches(b) for a, b in zip(self.scenes, other.scenes)))

    def unparse(self) -> str:
        """Resolved content as cob text with canonical formatting."""
        parts = []
        if self.commands:
            parts.append("\n".join(["#commands"] + [cmd.canonical() for cmd in self.commands]))
        if self.scenes:
            parts.append("\n".join(["#scenes"] + [scene.unparse() for scene in self.scenes]))
        return "\n\n".join(parts) + "\n"


def resolve_file(tables, scope, dependencies=(), limits=None):
    """Expand a file's commands and scenes.

    Args:
        tables: FileTables of the file
        scope: Scope for the file, with every import available
        dependencies: Paths the file was resolved against
        limits: Expansion Limits, defaults when None

    Returns:
        ResolvedFile

    Raises:
        cob.ResolveError: Any reference, cycle, depth or parameter failure
    """
    expander = cob.Expander(limits)
    scenes = cob.SceneExpander(expander)
    commands_buffer = CommandsBuffer()
    scene_buffer = SceneBuffer()
    try:
        for entry in tables.commands:
            commands_buffer.add(expander.instruction(entry, scope))
        for layer in tables.scenes:
            scene_buffer.add(scenes.layer(layer, scope))
    except RecursionError as e:
        raise cob.ExpansionDepthExceededError(
            expander.limits.max_depth, None, "expansion nested too deeply") from e
    return ResolvedFile(tables.path, commands_buffer.freeze(), scene_buffer.freeze(),
                        tuple(sorted(dependencies)))
