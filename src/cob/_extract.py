"""Per-file section tables built from a parsed File AST."""

__all__ = ["FileTables", "extract"]

from dataclasses import dataclass, field

import cob
from cob import ast


@dataclass
class FileTables:
    """Normalized definitions of one file.

    Everything here is file-local. Keys of other files in 'imports' are
    raw manifest keys, not yet resolved to paths.
    """
    path: str
    manifest: dict[str, str] = field(default_factory=dict)
    manifest_spans: dict[str, ast.Span] = field(default_factory=dict)
    imports: list[ast.ImportEntry] = field(default_factory=list)
    aliases: dict[str, str] = field(default_factory=dict)
    using: dict[str, str] = field(default_factory=dict)
    constants: dict[str, ast.ConstantDef] = field(default_factory=dict)
    macros: dict[str, ast.MacroDef] = field(default_factory=dict)
    scene_macros: dict[str, ast.SceneMacroDef] = field(default_factory=dict)
    commands: list[ast.Node] = field(default_factory=list)
    scenes: list[ast.SceneLayer] = field(default_factory=list)

    def imported_keys(self):
        """Manifest keys imported by this file, in declaration order."""
        keys = []
        for entry in self.imports:
            if entry.key not in keys:
                keys.append(entry.key)
        return keys


class _Declarations:
    """Name to node map that refuses redeclaration."""

    def __init__(self, kind):
        self.kind = kind
        self.spans = {}

    def add(self, name, span):
        if name in self.spans:
            raise cob.DuplicateDeclarationError(self.kind, name, span, self.spans[name])
        self.spans[name] = span


def extract(file, path=None):
    """Build the section tables of one parsed file.

    Args:
        file: File AST from parse_file
        path: File identity, defaults to the path given to the parser

    Returns:
        FileTables for the file

    Raises:
        cob.DuplicateDeclarationError: Same name declared twice in the file
    """
    path = path if path is not None else file.path
    tables = FileTables(path)

    if section := file.section(ast.ManifestSection):
        keys = _Declarations("manifest key")
        paths = _Declarations("manifest path")
        for entry in section.entries:
            target = path if entry.file is None else entry.file
            keys.add(entry.key, entry.span)
            paths.add(target, entry.span)
            tables.manifest[entry.key] = target
            tables.manifest_spans[entry.key] = entry.span

    if section := file.section(ast.ImportSection):
        aliases = _Declarations("import alias")
        for entry in section.entries:
            if entry.alias is not None:
                aliases.add(entry.alias, entry.span)
                tables.aliases[entry.alias] = entry.key
            tables.imports.append(entry)

    if section := file.section(ast.UsingSection):
        names = _Declarations("using alias")
        for entry in section.entries:
            names.add(entry.alias, entry.span)
            tables.using[entry.alias] = entry.type_path

    if section := file.section(ast.DefsSection):
        values = _Declarations("definition")
        scene_macros = _Declarations("scene macro")
        for definition in section.entries:
            match definition:
                case ast.ConstantDef():
                    values.add("$" + definition.name, definition.span)
                    tables.constants[definition.name] = definition
                    _check_value(definition.value)
                case ast.MacroDef():
                    values.add("$" + definition.name, definition.span)
                    _check_params(definition.params)
                    tables.macros[definition.name] = definition
                    _check_value(definition.value)
                case ast.SceneMacroDef():
                    scene_macros.add("+" + definition.name, definition.span)
                    _check_params(definition.params or [])
                    tables.scene_macros[definition.name] = definition
                    _check_entries(definition.entries)

    if section := file.section(ast.CommandsSection):
        for entry in section.entries:
            _check_value(entry)
            tables.commands.append(entry)

    if section := file.section(ast.ScenesSection):
        roots = _Declarations("scene")
        for layer in section.entries:
            roots.add(layer.name, layer.span)
            _check_entries(layer.entries)
            tables.scenes.append(layer)

    return tables


def _check_params(params):
    names = _Declarations("macro parameter")
    for param in params:
        names.add(param.name, param.span)
        if param.default is not None:
            _check_value(param.default)


def _check_entries(entries):
    for entry in entries:
        match entry:
            case ast.SceneLayer():
                _check_entries(entry.entries)
            case ast.SceneMacroCall():
                for arg in entry.args or []:
                    _check_value(arg)
                _check_entries(entry.entries)
            case _:
                _check_value(entry)


def _check_value(node):
    """Reject maps and value groups that declare the same key twice."""
    for each in node.find_all((ast.Map, ast.ValueGroup)):
        keys = _Declarations("map key")
        for entry in each.entries:
            if isinstance(entry, ast.MapEntry):
                keys.add(entry.key_text(), entry.span)
