"""File and section nodes"""

__all__ = [
    "File",
    "Section",
    "ManifestSection",
    "ManifestEntry",
    "ImportSection",
    "ImportEntry",
    "UsingSection",
    "UsingEntry",
    "DefsSection",
    "ConstantDef",
    "MacroDef",
    "ParamDef",
    "SceneMacroDef",
    "CommandsSection",
    "ScenesSection",
]

from ._node import Node, write_fill
from ._value import quote_string
from ._scene import write_scene_entries


class File(Node):
    """Root of the grammar Ast for one cob file.

    Attributes:
        path: File identity given to the parser
        end_fill: Text after the last token
    """

    def __init__(self, sections=None, path=None):
        super().__init__(sections)
        self.path = path
        self.end_fill = None

    # The path names the file, it is not part of its content.
    _skip_keys = Node._skip_keys + ("path",)

    @property
    def sections(self):
        return self.kids

    def section(self, section_type):
        """The section of the given type, or None."""
        for kid in self.kids:
            if isinstance(kid, section_type):
                return kid
        return None

    def unparse(self, lead="") -> str:
        parts = []
        for index, section in enumerate(self.kids):
            parts.append(section.unparse("" if index == 0 else "\n\n"))
        parts.append(write_fill(self.end_fill, "\n"))
        return "".join(parts)


class Section(Node):
    """Base for sections. Entries are the kids, one per line."""

    keyword = ""

    @property
    def entries(self):
        return self.kids

    def unparse(self, lead="") -> str:
        text = write_fill(self.fill, lead) + self.keyword
        return text + "".join(entry.unparse("\n") for entry in self.kids)


class ManifestSection(Section):
    keyword = "#manifest"


class ManifestEntry(Node):
    """Manifest line: "path.cob" as key.name, or self as key.name

    Attributes:
        file: Declared file path, None for the self form
        key: Manifest key
    """

    _skip_keys = Node._skip_keys + ("text",)

    def __init__(self, file: str | None, key: str):
        super().__init__()
        self.file = file
        self.key = key
        self.text = None
        self.as_fill = None
        self.key_fill = None

    def unparse(self, lead="") -> str:
        if self.file is None:
            source = "self"
        else:
            source = self.text if self.text is not None else quote_string(self.file)
        return (write_fill(self.fill, lead) + source + write_fill(self.as_fill, " ")
                + "as" + write_fill(self.key_fill, " ") + self.key)


class ImportSection(Section):
    keyword = "#import"


class ImportEntry(Node):
    """Import line: key.name as alias, or key.name as _

    Attributes:
        key: Manifest key being imported
        alias: Prefix for imported names, None for unprefixed imports
    """

    def __init__(self, key: str, alias: str | None):
        super().__init__()
        self.key = key
        self.alias = alias
        self.as_fill = None
        self.alias_fill = None

    def unparse(self, lead="") -> str:
        return (write_fill(self.fill, lead) + self.key + write_fill(self.as_fill, " ")
                + "as" + write_fill(self.alias_fill, " ") + (self.alias or "_"))


class UsingSection(Section):
    keyword = "#using"


class UsingEntry(Node):
    """Using line: crate::module::TypeName as TypeName"""

    def __init__(self, type_path: str, alias: str):
        super().__init__()
        self.type_path = type_path
        self.alias = alias
        self.as_fill = None
        self.alias_fill = None

    def unparse(self, lead="") -> str:
        return (write_fill(self.fill, lead) + self.type_path + write_fill(self.as_fill, " ")
                + "as" + write_fill(self.alias_fill, " ") + self.alias)


class DefsSection(Section):
    keyword = "#defs"


class ConstantDef(Node):
    """Constant definition: $name = value"""

    def __init__(self, name: str, value):
        super().__init__([value])
        self.name = name
        self.eq_fill = None

    @property
    def value(self):
        return self.kids[0]

    def unparse(self, lead="") -> str:
        return (write_fill(self.fill, lead) + "$" + self.name
                + write_fill(self.eq_fill, " ") + "=" + self.value.unparse(" "))


class ParamDef(Node):
    """Macro parameter declaration: name, or name=default"""

    def __init__(self, name: str, default=None):
        super().__init__([default] if default is not None else None)
        self.name = name
        self.eq_fill = None

    @property
    def default(self):
        return self.kids[0] if self.kids else None

    def unparse(self, lead="") -> str:
        text = write_fill(self.fill, lead) + self.name
        if self.default is not None:
            text += write_fill(self.eq_fill, "") + "=" + self.default.unparse("")
        return text


def _write_params(params, close_fill):
    text = "".join(param.unparse("" if index == 0 else " ")
                   for index, param in enumerate(params))
    return "(" + text + write_fill(close_fill, "") + ")"


class MacroDef(Node):
    """Macro definition: $name(a b=1) = value"""

    def __init__(self, name: str, params, value):
        super().__init__([*params, value])
        self.name = name
        self.close_fill = None
        self.eq_fill = None

    @property
    def params(self):
        return self.kids[:-1]

    @property
    def value(self):
        return self.kids[-1]

    def unparse(self, lead="") -> str:
        return (write_fill(self.fill, lead) + "$" + self.name
                + _write_params(self.params, self.close_fill)
                + write_fill(self.eq_fill, " ") + "=" + self.value.unparse(" "))


class SceneMacroDef(Node):
    """Scene macro definition followed by an indented scene fragment.

        +name(a b) =
            "layer"
                Instruction

    Attributes:
        name: Macro name
        params: ParamDef list, None when written without parentheses
        entries: Fragment entries (layers, instructions, references, calls)
    """

    def __init__(self, name: str, params, entries):
        super().__init__(entries)
        self.name = name
        self.params = list(params) if params is not None else None
        self.close_fill = None
        self.eq_fill = None

    @property
    def entries(self):
        return self.kids

    def find_all(self, node_type):
        results = super().find_all(node_type)
        for param in self.params or []:
            results.extend(param.find_all(node_type))
        return results

    def unparse(self, lead="") -> str:
        text = write_fill(self.fill, lead) + "+" + self.name
        if self.params is not None:
            text += _write_params(self.params, self.close_fill)
        text += write_fill(self.eq_fill, " ") + "="
        return text + write_scene_entries(self.kids, 1)


class CommandsSection(Section):
    keyword = "#commands"


class ScenesSection(Section):
    keyword = "#scenes"

    def unparse(self, lead="") -> str:
        return write_fill(self.fill, lead) + self.keyword + write_scene_entries(self.kids, 0)

