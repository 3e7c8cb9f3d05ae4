"""Value nodes shared by the parser and the resolvers.

Values form a closed set of node types. Resolvers dispatch over them with
match statements, so a new value kind means updating every consumer.
"""

__all__ = [
    "Value",
    "NoneValue",
    "Bool",
    "Number",
    "String",
    "Builtin",
    "Array",
    "Tuple",
    "Map",
    "MapEntry",
    "ValueGroup",
    "Field",
    "EnumVariant",
    "TypeRef",
    "Generics",
    "Instruction",
    "ConstantRef",
    "MacroCall",
    "NamedArg",
    "Param",
    "quote_string",
    "format_decimal",
]

import decimal

import cob
from ._node import Node, write_fill


def quote_string(value):
    """Double quoted cob string literal for a python string."""
    out = value.replace("\\", "\\\\").replace('"', '\\"')
    out = out.replace("\n", "\\n").replace("\t", "\\t").replace("\r", "\\r")
    return f'"{out}"'


def format_decimal(value):
    """Canonical text for a decimal number."""
    if value == value.to_integral_value():
        return format(value.to_integral_value(), "f")
    return str(value.normalize())


def _write_items(items, close_fill):
    parts = []
    for index, item in enumerate(items):
        parts.append(item.unparse("" if index == 0 else " "))
    parts.append(write_fill(close_fill, ""))
    return "".join(parts)


class Value(Node):
    """Base class for value nodes."""

    def to_python(self):
        """Convert to plain python data."""
        raise NotImplementedError(f"{self.__class__.__name__}.to_python() not implemented")


class NoneValue(Value):
    """The none literal."""

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + "none"

    def to_python(self):
        return None


class Bool(Value):
    """Boolean literal."""

    def __init__(self, value: bool = False):
        self.value = bool(value)
        super().__init__()

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + ("true" if self.value else "false")

    def to_python(self):
        return self.value


class Number(Value):
    """Numeric literal.

    The parsed text is kept so unmodified numbers write back exactly as
    written; comparison uses only the decimal value.
    """

    _skip_keys = Node._skip_keys + ("text",)

    def __init__(self, value=0, text=None):
        self.value = decimal.Decimal(value)
        self.text = text
        super().__init__()

    def unparse(self, lead="") -> str:
        text = self.text if self.text is not None else format_decimal(self.value)
        return write_fill(self.fill, lead) + text

    def to_python(self):
        return self.value


class String(Value):
    """String literal."""

    _skip_keys = Node._skip_keys + ("text",)

    def __init__(self, value: str = "", text=None):
        self.value = value
        self.text = text
        super().__init__()

    def unparse(self, lead="") -> str:
        text = self.text if self.text is not None else quote_string(self.value)
        return write_fill(self.fill, lead) + text

    def to_python(self):
        return self.value


class Builtin(Value):
    """Scalar with a host defined meaning.

    Kinds are "color" (hex text, lowercase), "dimension" (a number plus
    one of px, %, vw, vh, vmin, vmax) and "auto".
    """

    _skip_keys = Node._skip_keys + ("text",)

    UNITS = ("px", "%", "vw", "vh", "vmin", "vmax")

    def __init__(self, kind, value=None, unit=None, text=None):
        if kind == "color":
            value = value.lower()
        elif kind == "dimension":
            value = decimal.Decimal(value)
            if unit not in self.UNITS:
                raise ValueError(f"unknown unit {unit!r}")
        self.kind = kind
        self.value = value
        self.unit = unit
        self.text = text
        super().__init__()

    @classmethod
    def color(cls, text):
        return cls("color", text)

    @classmethod
    def dimension(cls, value, unit):
        return cls("dimension", value, unit)

    @classmethod
    def auto(cls):
        return cls("auto")

    def unparse(self, lead="") -> str:
        if self.text is not None:
            text = self.text
        elif self.kind == "dimension":
            text = format_decimal(self.value) + self.unit
        elif self.kind == "auto":
            text = "auto"
        else:
            text = self.value
        return write_fill(self.fill, lead) + text

    def to_python(self):
        match self.kind:
            case "dimension":
                return (self.value, self.unit)
            case "auto":
                return "auto"
            case _:
                return self.value


class Array(Value):
    """Array of values: [a b c]"""

    def __init__(self, items=None):
        super().__init__(items)
        self.close_fill = None

    @property
    def items(self):
        return self.kids

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + "[" + _write_items(self.kids, self.close_fill) + "]"

    def to_python(self):
        return [item.to_python() for item in self.kids]


class Tuple(Value):
    """Tuple of values: (a b)"""

    def __init__(self, items=None):
        super().__init__(items)
        self.close_fill = None

    @property
    def items(self):
        return self.kids

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + "(" + _write_items(self.kids, self.close_fill) + ")"

    def to_python(self):
        return tuple(item.to_python() for item in self.kids)


class Field(Node):
    """Bare field name used as a map key."""

    def __init__(self, name: str):
        self.name = name
        super().__init__()

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + self.name


class MapEntry(Node):
    """Map entry: key: value"""

    def __init__(self, key, value):
        super().__init__([key, value])
        self.colon_fill = None

    @property
    def key(self):
        return self.kids[0]

    @property
    def value(self):
        return self.kids[1]

    def key_text(self):
        """Key identity used for duplicate detection and lookups."""
        if isinstance(self.key, Field):
            return self.key.name
        if isinstance(self.key, String):
            return self.key.value
        return self.key.canonical()

    def unparse(self, lead="") -> str:
        return (self.key.unparse(lead) + write_fill(self.colon_fill, "")
                + ":" + self.value.unparse(" "))


class Map(Value):
    """Map of entries: {width: 10px "key": value $pairs}

    Until resolved, an entry may also be a constant naming a group of
    key-value pairs.
    """

    def __init__(self, entries=None):
        super().__init__(entries)
        self.close_fill = None

    @property
    def entries(self):
        return self.kids

    def get(self, key, default=None):
        """Value of the entry with the given field name or key text."""
        for entry in self.kids:
            if isinstance(entry, MapEntry) and entry.key_text() == key:
                return entry.value
        return default

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + "{" + _write_items(self.kids, self.close_fill) + "}"

    def to_python(self):
        result = {}
        for entry in self.kids:
            if not isinstance(entry, MapEntry):
                raise cob.UnresolvedReferenceError(entry.canonical(), entry.span)
            if isinstance(entry.key, Field):
                key = entry.key.name
            else:
                key = entry.key.to_python()
            result[key] = entry.value.to_python()
        return result


class ValueGroup(Value):
    """Constant body holding several entries: \\ a b key: c \\

    A group is not a value on its own. Where a constant holding a group
    is referenced inside an array, tuple or map, its entries take the
    place of the reference.
    """

    def __init__(self, entries=None):
        super().__init__(entries)
        self.close_fill = None

    @property
    def entries(self):
        return self.kids

    def unparse(self, lead="") -> str:
        items = "".join(entry.unparse(" ") for entry in self.kids)
        return (write_fill(self.fill, lead) + "\\" + items
                + write_fill(self.close_fill, " ") + "\\")

    def to_python(self):
        raise cob.ResolveError("value group used outside of an array, tuple or map", self.span)


class EnumVariant(Value):
    """Enum variant: Name, Name(...), Name[...] or Name{...}"""

    def __init__(self, name: str, payload=None):
        super().__init__([payload] if payload is not None else None)
        self.name = name

    @property
    def payload(self):
        return self.kids[0] if self.kids else None

    def unparse(self, lead="") -> str:
        text = write_fill(self.fill, lead) + self.name
        if self.payload is not None:
            text += self.payload.unparse("")
        return text

    def to_python(self):
        if self.payload is None:
            return self.name
        return {self.name: self.payload.to_python()}


class TypeRef(Node):
    """Generic argument: a type name with its own generics, or a primitive."""

    def __init__(self, name: str, generics=None):
        super().__init__([generics] if generics is not None else None)
        self.name = name

    @property
    def generics(self):
        return self.kids[0] if self.kids else None

    def unparse(self, lead="") -> str:
        text = write_fill(self.fill, lead) + self.name
        if self.generics is not None:
            text += self.generics.unparse()
        return text


class Generics(Node):
    """Generic argument list: <A B<C>>"""

    def __init__(self, args=None):
        super().__init__(args)
        self.close_fill = None

    @property
    def args(self):
        return self.kids

    def type_id(self):
        """Canonical text without fill."""
        inner = " ".join(arg.name + (arg.generics.type_id() if arg.generics else "")
                         for arg in self.kids)
        return f"<{inner}>"

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + "<" + _write_items(self.kids, self.close_fill) + ">"


class Instruction(Value):
    """Loadable instruction: TypeName<Generics>(...) or TypeName::Variant

    Attributes:
        type_name: Type identifier, replaced by the full path from the
            declaring file's #using table during resolution
        generics: Generics node or None
        value: Field value (Tuple, Array, Map, EnumVariant) or None
    """

    def __init__(self, type_name: str, value=None, generics=None):
        super().__init__([kid for kid in (generics, value) if kid is not None])
        self.type_name = type_name
        self.variant_fill = None

    @property
    def generics(self):
        return next((kid for kid in self.kids if isinstance(kid, Generics)), None)

    @property
    def value(self):
        return next((kid for kid in self.kids if not isinstance(kid, Generics)), None)

    @value.setter
    def value(self, value):
        self.kids = [kid for kid in self.kids if isinstance(kid, Generics)]
        if value is not None:
            self.kids.append(value)

    @property
    def type_id(self):
        """Type name with canonical generics, the identity used for overrides."""
        if self.generics is None:
            return self.type_name
        return self.type_name + self.generics.type_id()

    def unparse(self, lead="") -> str:
        text = write_fill(self.fill, lead) + self.type_name
        if self.generics is not None:
            text += self.generics.unparse()
        value = self.value
        if isinstance(value, EnumVariant):
            text += write_fill(self.variant_fill, "") + "::" + value.unparse("")
        elif value is not None:
            text += value.unparse("")
        return text

    def to_python(self):
        value = self.value
        return {self.type_id: value.to_python() if value is not None else None}


class ConstantRef(Value):
    """Reference to a constant or zero argument macro: $name or $alias::name"""

    def __init__(self, path: str):
        self.path = path
        super().__init__()

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + "$" + self.path

    def to_python(self):
        raise cob.UnresolvedReferenceError("$" + self.path, self.span)


class NamedArg(Node):
    """Named macro argument: name=value"""

    def __init__(self, name: str, value):
        super().__init__([value])
        self.name = name
        self.eq_fill = None

    @property
    def value(self):
        return self.kids[0]

    def unparse(self, lead="") -> str:
        return (write_fill(self.fill, lead) + self.name + write_fill(self.eq_fill, "")
                + "=" + self.value.unparse(""))


class MacroCall(Value):
    """Macro invocation: $name(positional named=value)"""

    def __init__(self, path: str, args=None):
        super().__init__(args)
        self.path = path
        self.close_fill = None

    @property
    def args(self):
        return self.kids

    def unparse(self, lead="") -> str:
        return (write_fill(self.fill, lead) + "$" + self.path + "("
                + _write_items(self.kids, self.close_fill) + ")")

    def to_python(self):
        raise cob.UnresolvedReferenceError("$" + self.path, self.span)


class Param(Value):
    """Macro parameter reference inside a macro body: @name"""

    def __init__(self, name: str):
        self.name = name
        super().__init__()

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + "@" + self.name

    def to_python(self):
        raise cob.UnboundParameterError(self.name, span=self.span)
