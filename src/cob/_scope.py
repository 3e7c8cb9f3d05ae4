"""Name lookups for one file through its imports."""

__all__ = ["Scope"]


class Scope:
    """Definitions visible from one file.

    Local definitions come first, then imports from the last declared to
    the first. An aliased import answers names written 'alias::name', an
    import 'as _' answers unprefixed names. Imported files are searched
    with their own scopes, so their imports are reachable through longer
    prefixes.

    Tables of other files are fetched through 'tables_for' at lookup time
    and never stored on the scope.

    Args:
        tables: FileTables of the file
        manifest: ManifestMap for key lookups
        tables_for: Callable returning the FileTables for a path, or None
    """

    def __init__(self, tables, manifest, tables_for):
        self.tables = tables
        self.manifest = manifest
        self._tables_for = tables_for

    def __repr__(self):
        return f"Scope<{self.path}>"

    @property
    def path(self):
        return self.tables.path

    def dependencies(self):
        """Imported manifest keys and the path each resolves to, or None."""
        return {key: self.manifest.lookup(key) for key in self.tables.imported_keys()}

    def type_path(self, type_name):
        """Full type path for a name from the #using table."""
        return self.tables.using.get(type_name, type_name)

    def lookup(self, kind, name, _seen=None):
        """Find a definition.

        Args:
            kind: "$" for constants and macros, "+" for scene macros
            name: Name as written after the sigil, with any alias prefixes

        Returns:
            (definition node, Scope of the defining file), or None
        """
        seen = _seen if _seen is not None else set()
        if (self.path, name) in seen:
            return None
        seen.add((self.path, name))

        if kind == "+":
            local = self.tables.scene_macros.get(name)
        else:
            local = self.tables.constants.get(name) or self.tables.macros.get(name)
        if local is not None:
            return local, self

        for entry in reversed(self.tables.imports):
            if entry.alias is None:
                remainder = name
            elif name.startswith(entry.alias + "::"):
                remainder = name[len(entry.alias) + 2:]
            else:
                continue
            imported = self._imported(entry.key)
            if imported is None:
                continue
            if found := imported.lookup(kind, remainder, seen):
                return found
        return None

    def _imported(self, key):
        path = self.manifest.lookup(key)
        if path is None:
            return None
        if path == self.path:
            return self
        tables = self._tables_for(path)
        if tables is None:
            return None
        return Scope(tables, self.manifest, self._tables_for)
