"""Parser for converting cob text into AST nodes.

Lark produces the parse tree with an LALR parser. Whitespace, comments and
separators never reach the tree, so the text between tokens is recovered
from token positions and stored on the nodes as fill.
"""

__all__ = ["parse_file", "parse_value", "MAX_NESTING_DEPTH"]

import bisect
import decimal
import logging
import pathlib
import re

import lark
import lark.indenter

import cob
from cob import ast

logger = logging.getLogger(__name__)

# Deepest nesting of brackets and instruction values accepted by the parser
MAX_NESTING_DEPTH = 100

# Global parser instances (cached by start rule)
_parsers: dict[str, lark.Lark] = {}

_SCENE_NAME = re.compile(r"[a-z0-9_]*")
_ESCAPE = re.compile(r"\\(u\{[0-9a-fA-F]{1,6}\}|.)", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\", '"': '"'}
_OPENERS = {"LPAR", "LSQB", "LBRACE", "MACRO_OPEN", "SCENE_MACRO_OPEN"}
_CLOSERS = {"RPAR", "RSQB", "RBRACE"}


class CobIndenter(lark.indenter.Indenter):
    """Turn leading whitespace into indent tokens outside of brackets."""
    NL_type = "_NL"
    OPEN_PAREN_types = sorted(_OPENERS)
    CLOSE_PAREN_types = sorted(_CLOSERS)
    INDENT_type = "_INDENT"
    DEDENT_type = "_DEDENT"
    tab_len = 4


def parse_file(text, path=None):
    """Parse a complete cob file.

    Args:
        text: File contents as str or utf-8 bytes
        path: Optional file identity for spans and error messages

    Returns:
        File AST node containing the file's sections

    Raises:
        cob.ParseError: If the text contains invalid syntax
    """
    text = _prepare(text, path)
    tree = _parse(text, "start", path)
    return _Converter(text, path, tree).file(tree)


def parse_value(text, path=None):
    """Parse a single cob value.

    Args:
        text: Value source code
        path: Optional file identity for spans and error messages

    Returns:
        The value AST node

    Raises:
        cob.ParseError: If the text contains invalid syntax
    """
    text = _prepare(text, path)
    tree = _parse(text, "value_start", path)
    converter = _Converter(text, path, tree)
    return converter.value(tree.children[0], 0)


def _prepare(text, path):
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            span = ast.Span(path, e.start)
            raise cob.ParseError(f"file is not valid utf-8: {e.reason}", span) from e
    if not text.endswith("\n"):
        text += "\n"
    return text


def _parse(text, start, path):
    try:
        return _get_parser(start).parse(text)
    except lark.exceptions.UnexpectedInput as e:
        raise _error_from_lark(e, text, path) from e
    except lark.exceptions.LarkError as e:
        # Indentation errors from the post-lexer carry no position
        raise cob.ParseError(str(e), ast.Span(path)) from e


def _error_from_lark(e, text, path):
    """Build a ParseError with span and expected terminals."""
    expected = getattr(e, "expected", None) or getattr(e, "allowed", None) or ()
    expected = [name for name in expected if not name.startswith("_")]
    if getattr(e, "line", -1) is None or getattr(e, "line", -1) < 1:
        line = text.count("\n") + 1
        column = len(text) - text.rfind("\n")
        span = ast.Span(path, len(text), line, column)
    else:
        span = ast.Span(path, e.pos_in_stream, e.line, e.column)

    match e:
        case lark.exceptions.UnexpectedToken(token=token) if token.type == "$END":
            message = "unexpected end of file"
        case lark.exceptions.UnexpectedToken(token=token):
            message = f"unexpected {token.type} {token.value!r}"
        case lark.exceptions.UnexpectedCharacters(char=char):
            message = f"unexpected character {char!r}"
        case lark.exceptions.UnexpectedEOF():
            message = "unexpected end of file"
        case _:
            message = str(e)
    if expected:
        message += f", expected one of: {', '.join(sorted(expected))}"
    return cob.ParseError(message, span, expected)


def _get_parser(start):
    """Get a cached Lark parser instance for the given start rule.

    Args:
        start (str): Grammar start rule ("start" or "value_start")

    Returns:
        lark.Lark: Cached Lark parser instance
    """
    if start not in _parsers:
        grammar_path = pathlib.Path(__file__).parent / "cob.lark"
        logger.debug("Building %s parser from %s", start, grammar_path)
        _parsers[start] = lark.Lark(
            grammar_path.read_text(encoding="utf-8"),
            parser="lalr",
            start=start,
            postlex=CobIndenter(),
            propagate_positions=True,
            maybe_placeholders=False,
        )
    return _parsers[start]


def _unescape(raw, span):
    """Decode the body of a quoted string token."""
    def replace(match):
        code = match.group(1)
        if code.startswith("u{"):
            point = int(code[2:-1], 16)
            if point > 0x10FFFF or 0xD800 <= point <= 0xDFFF:
                raise cob.ParseError(f"invalid unicode escape '\\{code}'", span)
            return chr(point)
        if code in _ESCAPES:
            return _ESCAPES[code]
        raise cob.ParseError(f"invalid escape sequence '\\{code}'", span)
    return _ESCAPE.sub(replace, raw[1:-1])


class _Converter:
    """Build AST nodes from one lark tree, recording spans and fill."""

    def __init__(self, text, path, tree):
        self.text = text
        self.path = path
        tokens = []
        for subtree in tree.iter_subtrees():
            tokens.extend(kid for kid in subtree.children if isinstance(kid, lark.Token))
        tokens.sort(key=lambda token: token.start_pos)
        self._check_depth(tokens)
        self.ends = [token.end_pos for token in tokens]
        self.ends.sort()

    def _check_depth(self, tokens):
        depth = 0
        for token in tokens:
            if token.type in _OPENERS:
                depth += 1
                if depth > MAX_NESTING_DEPTH:
                    raise cob.ParseError(
                        f"values nested deeper than {MAX_NESTING_DEPTH} levels",
                        self.span(token))
            elif token.type in _CLOSERS:
                depth -= 1

    def span(self, item):
        if isinstance(item, lark.Token):
            return ast.Span(self.path, item.start_pos, item.line, item.column,
                            item.end_pos, item.end_line, item.end_column)
        meta = item.meta
        return ast.Span(self.path, meta.start_pos, meta.line, meta.column,
                        meta.end_pos, meta.end_line, meta.end_column)

    def fill(self, item):
        """Text between the previous token and this tree or token."""
        start = item.start_pos if isinstance(item, lark.Token) else item.meta.start_pos
        index = bisect.bisect_right(self.ends, start) - 1
        previous = self.ends[index] if index >= 0 else 0
        return self.text[previous:start]

    def place(self, node, item):
        node.fill = self.fill(item)
        node.span = self.span(item)
        return node

    def file(self, tree):
        sections = []
        seen = {}
        for kid in tree.children:
            section = self.section(kid)
            kind = type(section)
            if kind in seen:
                raise cob.ParseError(
                    f"second {section.keyword} section, first is at line {seen[kind].span.line}",
                    section.span)
            seen[kind] = section
            sections.append(section)
        node = ast.File(sections, path=self.path)
        node.end_fill = self.text[self.ends[-1]:] if self.ends else self.text
        return node

    def section(self, tree):
        keyword, *kids = tree.children
        match tree.data:
            case "manifest_section":
                section = ast.ManifestSection([self.manifest_entry(kid) for kid in kids])
            case "import_section":
                section = ast.ImportSection([self.import_entry(kid) for kid in kids])
            case "using_section":
                section = ast.UsingSection([self.using_entry(kid) for kid in kids])
            case "defs_section":
                section = ast.DefsSection([self.definition(kid) for kid in kids])
            case "commands_section":
                section = ast.CommandsSection([self.entry(kid, 0) for kid in kids])
            case "scenes_section":
                section = ast.ScenesSection([self.layer(kid) for kid in kids])
            case _:
                raise cob.ParseError(f"unknown section {tree.data}", self.span(tree))
        return self.place(section, keyword)

    def manifest_entry(self, tree):
        source, as_token, key = tree.children
        if source.type == "SELF":
            node = ast.ManifestEntry(None, key.value)
        else:
            node = ast.ManifestEntry(_unescape(source.value, self.span(source)), key.value)
            node.text = source.value
        node.as_fill = self.fill(as_token)
        node.key_fill = self.fill(key)
        return self.place(node, source)

    def import_entry(self, tree):
        key, as_token, alias = tree.children
        node = ast.ImportEntry(key.value, None if alias.type == "UNDERSCORE" else alias.value)
        node.as_fill = self.fill(as_token)
        node.alias_fill = self.fill(alias)
        return self.place(node, key)

    def using_entry(self, tree):
        type_path, as_token, alias = tree.children
        node = ast.UsingEntry(type_path.value, alias.value)
        node.as_fill = self.fill(as_token)
        node.alias_fill = self.fill(alias)
        return self.place(node, type_path)

    def definition(self, tree):
        match tree.data:
            case "constant_def":
                name, equal, value = tree.children
                node = ast.ConstantDef(name.value[1:], self.value(value, 0))
                node.eq_fill = self.fill(equal)
                return self.place(node, name)
            case "macro_def":
                name, params, close, equal, value = tree.children
                node = ast.MacroDef(name.value[1:-1], self.params(params), self.value(value, 0))
                node.close_fill = self.fill(close)
                node.eq_fill = self.fill(equal)
                return self.place(node, name)
            case "scene_macro_def":
                head, equal, *entries = tree.children
                name = head.children[0]
                if name.type == "SCENE_MACRO_OPEN":
                    _, params, close = head.children
                    node = ast.SceneMacroDef(name.value[1:-1], self.params(params),
                                             [self.entry(kid, 1) for kid in entries])
                    node.close_fill = self.fill(close)
                else:
                    node = ast.SceneMacroDef(name.value[1:], None,
                                             [self.entry(kid, 1) for kid in entries])
                node.eq_fill = self.fill(equal)
                return self.place(node, name)
        raise cob.ParseError(f"unknown definition {tree.data}", self.span(tree))

    def params(self, tree):
        result = []
        for kid in tree.children:
            name, *rest = kid.children
            if rest:
                equal, default = rest
                param = ast.ParamDef(name.value, self.value(default, 0))
                param.eq_fill = self.fill(equal)
            else:
                param = ast.ParamDef(name.value)
            result.append(self.place(param, name))
        return result

    def args(self, tree, depth):
        result = []
        for kid in tree.children:
            if kid.data == "named_arg":
                name, equal, value = kid.children
                arg = ast.NamedArg(name.value, self.value(value, depth))
                arg.eq_fill = self.fill(equal)
                result.append(self.place(arg, name))
            else:
                result.append(self.value(kid, depth))
        return result

    def layer(self, tree):
        name, *entries = tree.children
        text = _unescape(name.value, self.span(name))
        if not _SCENE_NAME.fullmatch(text):
            raise cob.ParseError(
                f"scene node name {name.value} must be lowercase letters, digits and '_'",
                self.span(name))
        node = ast.SceneLayer(text, [self.entry(kid, 0) for kid in entries])
        node.text = name.value
        return self.place(node, name)

    def entry(self, tree, depth):
        """Scene or command entry."""
        match tree.data:
            case "scene_layer":
                return self.layer(tree)
            case "command_entry":
                return self.entry(tree.children[0], depth)
            case "instruction":
                return self.tagged(tree, depth, entry=True)
            case "entry_ref":
                first = tree.children[0]
                if first.type == "CONST_REF":
                    return self.place(ast.ConstantRef(first.value[1:]), first)
                return self.macro_call(tree, depth)
            case "scene_macro_call":
                first = tree.children[0]
                if first.type == "SCENE_MACRO_OPEN":
                    _, args, close, *entries = tree.children
                    node = ast.SceneMacroCall(first.value[1:-1], self.args(args, depth),
                                              [self.entry(kid, depth) for kid in entries])
                    node.close_fill = self.fill(close)
                else:
                    entries = tree.children[1:]
                    node = ast.SceneMacroCall(first.value[1:], None,
                                              [self.entry(kid, depth) for kid in entries])
                return self.place(node, first)
        raise cob.ParseError(f"unknown scene entry {tree.data}", self.span(tree))

    def macro_call(self, tree, depth):
        name, args, close = tree.children
        node = ast.MacroCall(name.value[1:-1], self.args(args, depth + 1))
        node.close_fill = self.fill(close)
        return self.place(node, name)

    def items(self, tree, depth):
        """Values between the open and close tokens of a container."""
        return [self.value(kid, depth + 1) for kid in tree.children[1:-1]]

    def entries(self, tree, depth):
        """Key-value pairs and bare values between the open and close tokens."""
        return [self.map_entry(kid, depth + 1) if kid.data == "map_entry"
                else self.value(kid, depth + 1) for kid in tree.children[1:-1]]

    def container(self, node, tree):
        node.close_fill = self.fill(tree.children[-1])
        return self.place(node, tree.children[0])

    def value(self, tree, depth):
        if depth > MAX_NESTING_DEPTH:
            raise cob.ParseError(
                f"values nested deeper than {MAX_NESTING_DEPTH} levels", self.span(tree))

        match tree.data:
            case "none":
                return self.place(ast.NoneValue(), tree.children[0])
            case "bool":
                token = tree.children[0]
                return self.place(ast.Bool(token.type == "TRUE"), token)
            case "number":
                token = tree.children[0]
                try:
                    node = ast.Number(decimal.Decimal(token.value), text=token.value)
                except decimal.InvalidOperation as e:
                    raise cob.ParseError(f"invalid number: {token.value}", self.span(token)) from e
                return self.place(node, token)
            case "string":
                token = tree.children[0]
                node = ast.String(_unescape(token.value, self.span(token)), text=token.value)
                return self.place(node, token)
            case "builtin":
                return self.place(self.builtin(tree.children[0]), tree.children[0])
            case "array":
                return self.container(ast.Array(self.items(tree, depth)), tree)
            case "tuple":
                return self.container(ast.Tuple(self.items(tree, depth)), tree)
            case "map":
                return self.container(ast.Map(self.entries(tree, depth)), tree)
            case "value_group":
                return self.container(ast.ValueGroup(self.entries(tree, depth)), tree)
            case "tagged":
                return self.tagged(tree, depth, entry=False)
            case "const_ref":
                token = tree.children[0]
                return self.place(ast.ConstantRef(token.value[1:]), token)
            case "macro_call":
                return self.macro_call(tree, depth)
            case "param":
                token = tree.children[0]
                return self.place(ast.Param(token.value[1:]), token)
        raise cob.ParseError(f"unknown value {tree.data}", self.span(tree))

    def builtin(self, token):
        match token.type:
            case "HEX_COLOR":
                return ast.Builtin("color", token.value, text=token.value)
            case "AUTO":
                return ast.Builtin("auto", text=token.value)
        for unit in sorted(ast.Builtin.UNITS, key=len, reverse=True):
            if token.value.endswith(unit):
                number = token.value[:-len(unit)]
                return ast.Builtin("dimension", decimal.Decimal(number), unit, text=token.value)
        raise cob.ParseError(f"invalid builtin {token.value}", self.span(token))

    def map_entry(self, tree, depth):
        key, colon, value = tree.children
        if key.data == "field":
            key_node = self.place(ast.Field(key.children[0].value), key.children[0])
        else:
            key_node = self.value(key, depth)
        node = ast.MapEntry(key_node, self.value(value, depth))
        node.colon_fill = self.fill(colon)
        node.span = self.span(tree)
        return node

    def generics(self, tree):
        args = []
        for kid in tree.children[1:-1]:
            name, *rest = kid.children
            arg = ast.TypeRef(name.value, self.generics(rest[0]) if rest else None)
            args.append(self.place(arg, name))
        node = ast.Generics(args)
        node.close_fill = self.fill(tree.children[-1])
        return self.place(node, tree.children[0])

    def tagged(self, tree, depth, entry):
        """Instruction at entry positions, enum variant or instruction in values.

        Inside values a plain Name(...) is an enum variant. Generic
        arguments or a ::Variant suffix make it an instruction.
        """
        name, *rest = tree.children
        generics = None
        if rest and rest[0].data == "generics":
            generics = self.generics(rest.pop(0))
        payload = rest[0] if rest else None

        if payload is not None and payload.data == "variant":
            separator, variant_name, *fields = payload.children
            variant = ast.EnumVariant(
                variant_name.value, self.value(fields[0], depth + 1) if fields else None)
            self.place(variant, variant_name)
            node = ast.Instruction(name.value, variant, generics)
            node.variant_fill = self.fill(separator)
            return self.place(node, name)

        value = self.value(payload, depth + 1) if payload is not None else None
        if entry or generics is not None:
            node = ast.Instruction(name.value, value, generics)
        else:
            node = ast.EnumVariant(name.value, value)
        return self.place(node, name)
