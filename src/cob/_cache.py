"""Incremental cache scheduling resolution across files.

Files arrive in any order through submit(). Each call parses and extracts
the file, updates the manifest, then keeps attempting resolution of every
unresolved file until nothing changes. A file resolves only once every
file it imports is resolved, so late files unblock their importers inside
the submit() call that delivers them.
"""

__all__ = ["AssetCache", "FileState", "FileRecord"]

import enum
import logging
from dataclasses import dataclass

import cob

logger = logging.getLogger(__name__)


class FileState(enum.Enum):
    """Lifecycle of one file in the cache."""
    UNPARSED = "unparsed"
    PARSED = "parsed"
    EXTRACTED = "extracted"
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"
    BLOCKED = "blocked"
    INVALIDATED = "invalidated"
    REMOVED = "removed"


@dataclass
class FileRecord:
    """Everything the cache knows about one path.

    Attributes:
        path: File identity
        file: Parsed File AST, None until parsed or after failure
        tables: FileTables, None until extracted or after failure
        state: Current FileState
        resolved: Last good ResolvedFile, kept across failures
        error: Error from the latest attempt, or None
        missing: Imported keys the file is waiting on
        blocked_by: Failed paths or conflicted keys blocking the file
    """
    path: str
    file: object = None
    tables: object = None
    state: FileState = FileState.UNPARSED
    resolved: object = None
    error: Exception | None = None
    missing: tuple = ()
    blocked_by: tuple = ()


@dataclass
class _Attempt:
    state: FileState
    error: Exception | None = None
    missing: tuple = ()
    blocked_by: tuple = ()
    resolved: object = None


class AssetCache:
    """Known files, their tables and their resolved output.

    All state lives on the instance, so independent caches never share
    anything. Files are addressed by their path strings.

    Args:
        max_depth: Deepest chain of nested constant, macro and scene
            macro expansions
        max_expansions: Most value nodes produced while resolving one file
    """

    def __init__(self, max_depth=64, max_expansions=100_000):
        self.limits = cob.Limits(max_depth, max_expansions)
        self.manifest = cob.ManifestMap()
        self._records: dict[str, FileRecord] = {}
        self._requested: set[str] = set()
        self._removed: set[str] = set()
        # key -> path it pointed to when that path was removed
        self._removed_keys: dict[str, str] = {}

    def __repr__(self):
        return f"AssetCache<{len(self._records)} files>"

    def __contains__(self, path):
        return path in self._records

    # Operations

    def submit(self, path, text):
        """Deliver the contents of a file.

        Args:
            path: File identity
            text: File contents as str or utf-8 bytes

        Returns:
            FileState of the submitted file after all resolution work
        """
        record = self._records.setdefault(path, FileRecord(path))
        self._requested.discard(path)
        self._removed.discard(path)
        self._forget_removed_keys(path)
        before = self._lookups()

        try:
            file = cob.parse_file(text, path)
            record.state = FileState.PARSED
            tables = cob.extract(file, path)
        except cob.CobError as e:
            # Keep the manifest registration so importers report as blocked
            record.file = None
            record.tables = None
            self._set(record, _Attempt(FileState.FAILED, e))
            self._process({path} | self._dependents(path))
            return record.state

        record.file = file
        record.tables = tables
        record.state = FileState.EXTRACTED
        record.error = None
        conflicts = self.manifest.register(path, tables.manifest)
        work = {path} | self._dependents(path) | self._changed(before)
        for conflict in conflicts:
            logger.warning("Manifest conflict: %s", conflict.message)
            work.update(conflict.declarers)
        self._process(work)
        return record.state

    def invalidate(self, path):
        """Discard a file for hot reload and request its bytes again.

        Every file depending on it, directly or not, loses its resolved
        output and waits until the file is submitted again.
        """
        record = self._records.get(path)
        if record is None:
            return
        dependents = self._transitive_dependents(path)
        before = self._lookups()

        record.file = None
        record.tables = None
        record.resolved = None
        record.error = None
        record.missing = ()
        record.blocked_by = ()
        record.state = FileState.INVALIDATED
        self.manifest.unregister(path)
        self._requested.add(path)
        logger.info("Invalidated %s (%d dependents)", path, len(dependents))

        for dependent in dependents:
            other = self._records[dependent]
            other.resolved = None
            if other.tables is not None:
                other.state = FileState.PENDING
                logger.debug("Requeued %s", dependent)
        self._process(dependents | self._changed(before))

    def remove(self, path):
        """Signal that a file is gone for good.

        Importers of keys that led to it fail with UnresolvedReferenceError
        instead of waiting. Submitting the path again restores it.
        """
        dependents = self._dependents(path)
        before = self._lookups()
        for key in self.manifest.keys_for(path):
            self._removed_keys[key] = path

        self._records.pop(path, None)
        self.manifest.unregister(path)
        self._requested.discard(path)
        self._removed.add(path)
        logger.info("Removed %s", path)
        self._process(dependents | self._changed(before))

    # Queries

    def state(self, path):
        """FileState of a path."""
        if path in self._removed:
            return FileState.REMOVED
        record = self._records.get(path)
        return record.state if record is not None else FileState.UNPARSED

    def resolved(self, path):
        """Last good ResolvedFile for a path, or None."""
        record = self._records.get(path)
        return record.resolved if record is not None else None

    def error(self, path):
        """Current error of a path, or None."""
        record = self._records.get(path)
        return record.error if record is not None else None

    def errors(self):
        """Current errors of all files."""
        return {path: record.error for path, record in sorted(self._records.items())
                if record.error is not None}

    def pending(self):
        """Pending files and the keys each is waiting on."""
        return {path: record.missing for path, record in sorted(self._records.items())
                if record.state is FileState.PENDING}

    def blocked(self):
        """Blocked files and the failed paths or conflicted keys blocking them."""
        return {path: record.blocked_by for path, record in sorted(self._records.items())
                if record.state is FileState.BLOCKED}

    def requested(self):
        """Paths whose contents are wanted but not yet submitted."""
        wanted = set(self._requested)
        wanted.update(self.manifest.targets())
        return sorted(path for path in wanted
                      if path not in self._removed and self.state(path) in
                      (FileState.UNPARSED, FileState.INVALIDATED))

    def files(self):
        """Known paths."""
        return sorted(self._records)

    def record(self, path):
        """FileRecord for a path, or None."""
        return self._records.get(path)

    def lookup_key(self, key):
        """Path a manifest key resolves to, or None."""
        return self.manifest.lookup(key)

    def dependencies(self, path):
        """Paths a file imports."""
        record = self._records.get(path)
        if record is None or record.tables is None:
            return []
        return sorted(self._import_paths(record))

    def dependents(self, path):
        """Paths of files importing a file."""
        return sorted(self._dependents(path))

    # Scheduling

    def _tables_for(self, path):
        record = self._records.get(path)
        return record.tables if record is not None else None

    def _import_paths(self, record):
        paths = set()
        for key in record.tables.imported_keys():
            target = self.manifest.lookup(key)
            if target is not None and target != record.path:
                paths.add(target)
        return paths

    def _dependents(self, path):
        return {other.path for other in self._records.values()
                if other.tables is not None and path in self._import_paths(other)}

    def _transitive_dependents(self, path):
        found = set()
        queue = [path]
        while queue:
            for dependent in self._dependents(queue.pop()):
                if dependent not in found and dependent != path:
                    found.add(dependent)
                    queue.append(dependent)
        return found

    def _lookups(self):
        keys = {key for record in self._records.values() if record.tables is not None
                for key in record.tables.imported_keys()}
        return {key: self.manifest.lookup(key) for key in keys}

    def _changed(self, before):
        """Files importing a key whose path changed since 'before'."""
        changed = {key for key, path in before.items() if self.manifest.lookup(key) != path}
        return {record.path for record in self._records.values()
                if record.tables is not None
                and changed.intersection(record.tables.imported_keys())}

    def _forget_removed_keys(self, path):
        for key in [key for key, target in self._removed_keys.items() if target == path]:
            del self._removed_keys[key]

    def _process(self, work):
        """Attempt resolution until no file changes state."""
        work = set(work)
        work.update(path for path, record in self._records.items()
                    if record.tables is not None and record.state is not FileState.RESOLVED)
        progress = True
        while progress:
            progress = False
            for path in sorted(work):
                record = self._records.get(path)
                if record is None or record.tables is None:
                    work.discard(path)
                    continue
                changed = self._set(record, self._attempt(record))
                if record.state is FileState.RESOLVED:
                    work.discard(path)
                if changed:
                    progress = True
                    work.update(self._dependents(path))

    def _attempt(self, record):
        """Resolve one file if everything it imports is resolved."""
        conflicts = self.manifest.conflicts_for(record.path)
        if conflicts:
            error = conflicts[0]
            error.span = record.tables.manifest_spans.get(error.key)
            return _Attempt(FileState.FAILED, error)
        if chain := self._import_cycle(record.path):
            span = self._import_span(record, lambda key: self.manifest.lookup(key) == chain[1])
            return _Attempt(FileState.FAILED, cob.CyclicImportError(chain, span))

        scope = cob.Scope(record.tables, self.manifest, self._tables_for)
        missing, blocked, unreachable, dependencies = [], [], [], set()
        for key, target in scope.dependencies().items():
            if target is None:
                if self.manifest.conflict(key) is not None:
                    blocked.append(key)
                elif key in self._removed_keys:
                    unreachable.append(key)
                else:
                    missing.append(key)
                continue
            if target == record.path:
                continue
            if target in self._removed:
                unreachable.append(key)
                continue
            match self.state(target):
                case FileState.RESOLVED:
                    dependencies.add(target)
                case FileState.FAILED | FileState.BLOCKED:
                    blocked.append(target)
                case _:
                    missing.append(key)

        if unreachable:
            names = ", ".join(unreachable)
            error = cob.UnresolvedReferenceError(
                names, self._import_span(record, lambda key: key == unreachable[0]),
                f"imported keys lead to removed files: {names}")
            return _Attempt(FileState.FAILED, error)
        if blocked:
            return _Attempt(FileState.BLOCKED, blocked_by=tuple(blocked))
        if missing:
            return _Attempt(FileState.PENDING, missing=tuple(missing))

        try:
            resolved = cob.resolve_file(record.tables, scope, dependencies, self.limits)
        except cob.CobError as e:
            return _Attempt(FileState.FAILED, e)
        return _Attempt(FileState.RESOLVED, resolved=resolved)

    def _set(self, record, attempt):
        """Apply an attempt to a record. Returns True when anything changed."""
        if attempt.state is FileState.RESOLVED:
            record.resolved = attempt.resolved
            record.state = FileState.RESOLVED
            record.error = None
            record.missing = ()
            record.blocked_by = ()
            logger.debug("Resolved %s", record.path)
            return True

        same = (record.state is attempt.state
                and record.missing == attempt.missing
                and record.blocked_by == attempt.blocked_by
                and str(record.error) == str(attempt.error))
        record.state = attempt.state
        record.error = attempt.error
        record.missing = attempt.missing
        record.blocked_by = attempt.blocked_by
        if same:
            return False

        match attempt.state:
            case FileState.FAILED:
                logger.warning("Failed %s: %s", record.path, attempt.error)
            case FileState.BLOCKED:
                logger.info("Blocked %s on %s", record.path, ", ".join(attempt.blocked_by))
            case FileState.PENDING:
                logger.info("Pending %s on %s", record.path, ", ".join(attempt.missing))
        return True

    def _import_span(self, record, wanted):
        """Span of the first import line whose key passes 'wanted'."""
        for entry in record.tables.imports:
            if wanted(entry.key):
                return entry.span
        return None

    def _import_cycle(self, path):
        """Import chain leading from a file back to itself, or None."""
        stack = [(path, [path])]
        visited = set()
        while stack:
            current, chain = stack.pop()
            record = self._records.get(current)
            if record is None or record.tables is None:
                continue
            for target in sorted(self._import_paths(record)):
                if target == path:
                    return chain + [path]
                if target not in visited:
                    visited.add(target)
                    stack.append((target, chain + [target]))
        return None
