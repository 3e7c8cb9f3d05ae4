"""Constant and macro expansion inside value trees."""

__all__ = ["Expander", "Bindings", "Limits"]

import contextlib
import copy
import re
from dataclasses import dataclass, field

import cob
from cob import ast


@dataclass(frozen=True)
class Limits:
    """Bounds on expansion work for one file.

    Attributes:
        max_depth: Deepest chain of nested constant and macro expansions
        max_expansions: Most value nodes produced while resolving one file
    """
    max_depth: int = 64
    max_expansions: int = 100_000


@dataclass
class Bindings:
    """Argument values bound to a macro's parameters for one call."""
    macro: str
    values: dict = field(default_factory=dict)


def _label(frame):
    sigil, name, path = frame
    return f"{sigil}{name} ({path})"


def _describe(node):
    kind = re.sub(r"(?<!^)(?=[A-Z])", " ", type(node).__name__).lower()
    return ("an " if kind[0] in "aeiou" else "a ") + kind


class Expander:
    """Replace references in values with the values they name.

    Expansion is depth first. Each constant, macro or scene macro being
    expanded is a (sigil, name, file) frame on the stack, and meeting a
    frame already on the stack is a cycle.

    Arguments are expanded where the call is written. Bodies and parameter
    defaults are expanded in the scope of the file that defines them.
    """

    def __init__(self, limits=None):
        self.limits = limits or Limits()
        self.stack = []
        self.count = 0

    @contextlib.contextmanager
    def frame(self, frame, span):
        """Push a definition onto the expansion stack."""
        if frame in self.stack:
            start = self.stack.index(frame)
            chain = [_label(each) for each in self.stack[start:]] + [_label(frame)]
            raise cob.CyclicExpansionError(chain, span)
        if len(self.stack) >= self.limits.max_depth:
            raise cob.ExpansionDepthExceededError(self.limits.max_depth, span)
        self.stack.append(frame)
        try:
            yield
        finally:
            self.stack.pop()

    def instruction(self, entry, scope, bindings=None):
        """Expand a command or scene entry into an instruction."""
        result = self.expand(entry, scope, bindings, entry=True)
        if not isinstance(result, ast.Instruction):
            raise cob.ResolveError(
                f"'{entry.canonical()}' expands to {_describe(result)}, expected an instruction",
                entry.span)
        return result

    def expand(self, node, scope, bindings=None, entry=False):
        """Fully expanded copy of a value.

        Args:
            node: Value node to expand
            scope: Scope the value is written in
            bindings: Bindings of the macro whose body is being expanded
            entry: The value stands where an instruction is expected, so
                an enum variant becomes an instruction of the same name

        Returns:
            New value tree without ConstantRef, MacroCall or Param nodes
        """
        self.count += 1
        if self.count > self.limits.max_expansions:
            raise cob.ExpansionDepthExceededError(
                self.limits.max_expansions, node.span,
                f"expansion produced more than {self.limits.max_expansions} values")

        match node:
            case ast.ConstantRef():
                return self._reference(node, node.path, [], scope, bindings, entry)
            case ast.MacroCall():
                return self._reference(node, node.path, node.args, scope, bindings, entry)
            case ast.Param():
                if bindings is None:
                    raise cob.UnboundParameterError(node.name, span=node.span)
                if node.name not in bindings.values:
                    raise cob.UnboundParameterError(node.name, bindings.macro, node.span)
                value = bindings.values[node.name].copy().refill(node.fill)
                if entry and isinstance(value, ast.EnumVariant):
                    return self._as_instruction(value, value.payload, scope)
                return value
            case ast.Instruction():
                result = self._rebuild(node, scope, bindings)
                result.type_name = scope.type_path(node.type_name)
                return result
            case ast.EnumVariant() if entry:
                payload = node.payload
                if payload is not None:
                    payload = self.expand(payload, scope, bindings)
                return self._as_instruction(node, payload, scope)
            case ast.TypeRef():
                result = self._rebuild(node, scope, bindings)
                result.name = scope.type_path(node.name)
                return result
            case (ast.Array() | ast.Tuple() | ast.Map() | ast.ValueGroup() | ast.MapEntry()
                  | ast.EnumVariant() | ast.NamedArg() | ast.Generics()):
                return self._rebuild(node, scope, bindings)
            case (ast.NoneValue() | ast.Bool() | ast.Number() | ast.String() | ast.Builtin()
                  | ast.Field()):
                return node.copy()
        raise TypeError(f"cannot expand {type(node).__name__}")

    def _as_instruction(self, variant, payload, scope):
        """Instruction standing for an enum variant at an entry position."""
        result = ast.Instruction(scope.type_path(variant.name), payload)
        result.fill = variant.fill
        result.span = variant.span
        return result

    def _rebuild(self, node, scope, bindings):
        result = copy.copy(node)
        result.kids = []
        for kid in node.kids:
            value = self.expand(kid, scope, bindings)
            if isinstance(value, ast.ValueGroup):
                result.kids.extend(self._splice(node, kid, value))
            elif isinstance(node, ast.Map) and not isinstance(value, ast.MapEntry):
                raise cob.ResolveError(
                    f"'{kid.canonical()}' in a map must name a group of key-value pairs",
                    kid.span)
            else:
                result.kids.append(value)
        if isinstance(node, ast.Map):
            _check_keys(result)
        return result

    def _splice(self, container, reference, group):
        """Entries of a value group taking the place of its reference."""
        match container:
            case ast.ValueGroup():
                wrong = []
            case ast.Map():
                wrong = [entry for entry in group.kids if not isinstance(entry, ast.MapEntry)]
            case ast.Array() | ast.Tuple():
                wrong = [entry for entry in group.kids if isinstance(entry, ast.MapEntry)]
            case _:
                raise cob.ResolveError(
                    f"value group '{reference.canonical()}' can only be used inside"
                    " an array, tuple or map", reference.span)
        if wrong:
            raise cob.ResolveError(
                f"value group '{reference.canonical()}' holds '{wrong[0].canonical()}',"
                f" which cannot go in {_describe(container)}", reference.span)
        if group.kids:
            group.kids[0].fill = group.fill
        return group.kids

    def _reference(self, node, name, args, scope, bindings, entry):
        found = scope.lookup("$", name)
        if found is None:
            raise cob.UnresolvedReferenceError("$" + name, node.span)
        definition, home = found

        match definition:
            case ast.ConstantDef():
                if isinstance(node, ast.MacroCall):
                    raise cob.UnresolvedReferenceError(
                        "$" + name, node.span, f"'${name}' is a constant, not a macro")
                with self.frame(("$", definition.name, home.path), node.span):
                    value = self.expand(definition.value, home, None, entry)
            case ast.MacroDef():
                bound = self.bind("$" + definition.name, definition.params, args,
                                  node, scope, bindings, home)
                with self.frame(("$", definition.name, home.path), node.span):
                    value = self.expand(definition.value, home, bound, entry)
            case _:
                raise TypeError(f"unexpected definition {definition!r}")
        return value.refill(node.fill)

    def bind(self, macro, params, args, call, scope, bindings, home):
        """Bind call arguments to macro parameters.

        Positional arguments fill parameters in order, then named
        arguments override. Unfilled parameters take their default.

        Args:
            macro: Macro name with its sigil, for messages
            params: ParamDef list of the macro
            args: Positional values and NamedArg nodes from the call
            call: Calling node, for error spans
            scope: Scope the call is written in
            bindings: Bindings active where the call is written
            home: Scope of the file defining the macro

        Returns:
            Bindings for expanding the macro body

        Raises:
            cob.UnboundParameterError: Missing, unknown or surplus arguments
        """
        names = [param.name for param in params]
        values = {}
        positional = [arg for arg in args if not isinstance(arg, ast.NamedArg)]
        if len(positional) > len(names):
            raise cob.UnboundParameterError(
                str(len(positional)), macro, call.span,
                f"'{macro}' takes {len(names)} arguments, got {len(positional)}")
        for name, arg in zip(names, positional):
            values[name] = self.expand(arg, scope, bindings)

        for arg in args:
            if isinstance(arg, ast.NamedArg):
                if arg.name not in names:
                    raise cob.UnboundParameterError(
                        arg.name, macro, arg.span, f"'{macro}' has no parameter '{arg.name}'")
                values[arg.name] = self.expand(arg.value, scope, bindings)

        for param in params:
            if param.name in values:
                continue
            if param.default is None:
                raise cob.UnboundParameterError(param.name, macro, call.span)
            values[param.name] = self.expand(param.default, home, None)
        return Bindings(macro, values)


def _check_keys(node):
    """Reject a map holding the same key twice once groups are spliced."""
    spans = {}
    for entry in node.kids:
        key = entry.key_text()
        if key in spans:
            raise cob.DuplicateDeclarationError("map key", key, entry.span, spans[key])
        spans[key] = entry.span
