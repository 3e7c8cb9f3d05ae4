"""Scene tree expansion, including scene macro instantiation."""

__all__ = ["SceneExpander", "merge_nodes"]

import cob
from cob import ast


def merge_nodes(target, overrides):
    """Merge override content into an instantiated scene fragment.

    An override instruction replaces the target instruction with the same
    type, or is appended. An override child merges into the target child
    with the same name, or is appended.
    """
    for instruction in overrides.instructions:
        for index, existing in enumerate(target.instructions):
            if existing.type_id == instruction.type_id:
                target.instructions[index] = instruction
                break
        else:
            target.instructions.append(instruction)

    for child in overrides.children:
        for existing in target.children:
            if existing.name == child.name:
                merge_nodes(existing, child)
                break
        else:
            target.children.append(child)


class SceneExpander:
    """Build resolved SceneNode trees from scene layers.

    Scene macro calls are replaced in place by a fresh instance of the
    macro body. The body's instructions attach to the calling node and its
    layers become children at the position of the call.

    Args:
        expander: Expander used for values, shared so scene macro and
            value expansion see one stack
    """

    def __init__(self, expander):
        self.expander = expander

    def layer(self, layer, scope, bindings=None):
        """Resolve a scene layer and everything below it."""
        node = cob.SceneNode(layer.name)
        self.entries(node, layer.entries, scope, bindings)
        return node

    def entries(self, node, entries, scope, bindings):
        """Resolve entries into an existing node, in order."""
        for entry in entries:
            match entry:
                case ast.SceneLayer():
                    node.children.append(self.layer(entry, scope, bindings))
                case ast.SceneMacroCall():
                    self.call(node, entry, scope, bindings)
                case _:
                    node.instructions.append(self.expander.instruction(entry, scope, bindings))

    def call(self, node, call, scope, bindings):
        """Splice an instantiated scene macro into node."""
        found = scope.lookup("+", call.path)
        if found is None:
            raise cob.UnresolvedReferenceError("+" + call.path, call.span)
        definition, home = found

        bound = self.expander.bind("+" + definition.name, definition.params or [],
                                   call.args or [], call, scope, bindings, home)
        fragment = cob.SceneNode(node.name)
        with self.expander.frame(("+", definition.name, home.path), call.span):
            self.entries(fragment, definition.entries, home, bound)

        if call.entries:
            overrides = cob.SceneNode(node.name)
            self.entries(overrides, call.entries, scope, bindings)
            merge_nodes(fragment, overrides)

        node.instructions.extend(fragment.instructions)
        node.children.extend(fragment.children)
