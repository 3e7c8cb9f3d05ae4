"""Project-wide mapping between manifest keys and file paths."""

__all__ = ["ManifestMap"]

import cob


class ManifestMap:
    """Manifest keys declared by every known file.

    Several files may declare the same key as long as they agree on its
    path. When they disagree the key is conflicted and looks up as None
    until one of the declarations goes away.
    """

    def __init__(self):
        # key -> {declaring file: target path}
        self._declared: dict[str, dict[str, str]] = {}
        # declaring file -> {key: target path}
        self._by_declarer: dict[str, dict[str, str]] = {}

    def register(self, file_path, declared_keys):
        """Replace the keys declared by a file.

        Args:
            file_path: Path of the declaring file
            declared_keys: Mapping of manifest key to target path

        Returns:
            ManifestConflictError for each declared key that now conflicts
        """
        self.unregister(file_path)
        self._by_declarer[file_path] = dict(declared_keys)
        for key, target in declared_keys.items():
            self._declared.setdefault(key, {})[file_path] = target
        return self.conflicts_for(file_path)

    def unregister(self, file_path):
        """Forget every key declared by a file."""
        for key in self._by_declarer.pop(file_path, {}):
            declarations = self._declared[key]
            declarations.pop(file_path, None)
            if not declarations:
                del self._declared[key]

    def lookup(self, key):
        """Path bound to a key, or None when undeclared or conflicted."""
        targets = set(self._declared.get(key, {}).values())
        if len(targets) == 1:
            return targets.pop()
        return None

    def conflict(self, key):
        """ManifestConflictError for a conflicted key, or None."""
        declarations = self._declared.get(key, {})
        targets = set(declarations.values())
        if len(targets) < 2:
            return None
        return cob.ManifestConflictError(key, targets, declarations)

    def conflicts_for(self, file_path):
        """Conflicts among the keys declared by one file."""
        errors = []
        for key in sorted(self._by_declarer.get(file_path, {})):
            if error := self.conflict(key):
                errors.append(error)
        return errors

    def declarers(self, key):
        """Files declaring a key."""
        return sorted(self._declared.get(key, {}))

    def declared_by(self, file_path):
        """Keys declared by one file, with their paths."""
        return dict(self._by_declarer.get(file_path, {}))

    def keys_for(self, path):
        """Keys currently resolving to a path."""
        return sorted(key for key in self._declared if self.lookup(key) == path)

    def targets(self):
        """Every path some manifest points at."""
        return {target for declarations in self._declared.values()
                for target in declarations.values()}

    def __contains__(self, key):
        return key in self._declared
