"""Scene tree nodes before expansion"""

__all__ = ["SceneLayer", "SceneMacroCall", "write_scene_entries"]

from ._node import Node, write_fill, INDENT
from ._value import quote_string


def write_scene_entries(entries, depth):
    """Write scene entries one per line at the given indent depth."""
    lead = "\n" + INDENT * depth
    parts = []
    for entry in entries:
        if isinstance(entry, (SceneLayer, SceneMacroCall)):
            parts.append(entry.unparse(lead, depth))
        else:
            parts.append(entry.unparse(lead))
    return "".join(parts)


class SceneLayer(Node):
    """Named scene node with indented entries.

    Entries are instructions, constant or macro references that expand to
    instructions, scene macro calls, and child layers.
    """

    _skip_keys = Node._skip_keys + ("text",)

    def __init__(self, name: str, entries=None):
        super().__init__(entries)
        self.name = name
        self.text = None

    @property
    def entries(self):
        return self.kids

    def unparse(self, lead="", depth=0) -> str:
        name = self.text if self.text is not None else quote_string(self.name)
        return write_fill(self.fill, lead) + name + write_scene_entries(self.kids, depth + 1)


class SceneMacroCall(Node):
    """Scene macro invocation inside a scene: +name(args)

    Indented entries under the call are overrides merged into the
    instantiated fragment.

    Attributes:
        path: Macro name, possibly prefixed by import aliases
        args: Positional values and NamedArg nodes, None without parentheses
        entries: Override entries
    """

    def __init__(self, path: str, args=None, entries=None):
        super().__init__(entries)
        self.path = path
        self.args = list(args) if args is not None else None
        self.close_fill = None

    @property
    def entries(self):
        return self.kids

    def find_all(self, node_type):
        results = super().find_all(node_type)
        for arg in self.args or []:
            results.extend(arg.find_all(node_type))
        return results

    def unparse(self, lead="", depth=0) -> str:
        text = write_fill(self.fill, lead) + "+" + self.path
        if self.args is not None:
            inner = "".join(arg.unparse("" if index == 0 else " ")
                            for index, arg in enumerate(self.args))
            text += "(" + inner + write_fill(self.close_fill, "") + ")"
        return text + write_scene_entries(self.kids, depth + 1)
