"""Error classes and helpers"""

__all__ = [
    "CobError",
    "ParseError",
    "ResolveError",
    "DuplicateDeclarationError",
    "ManifestConflictError",
    "UnresolvedReferenceError",
    "CyclicExpansionError",
    "CyclicImportError",
    "ExpansionDepthExceededError",
    "UnboundParameterError",
]


class CobError(Exception):
    """Base for every error raised while loading cob files.

    Args:
        message: (str) Error description
        span: (Span | None) Source location the error refers to

    Attributes:
        message: (str) Error description
        span: (Span | None) Source location the error refers to
    """

    def __init__(self, message, span=None):
        self.message = message
        self.span = span
        super().__init__(message)

    def __str__(self):
        if self.span is not None:
            return f"{self.span}: {self.message}"
        return self.message


class ParseError(CobError):
    """Malformed text. The file produces no AST.

    Attributes:
        expected: (list[str]) Terminal names the parser would have accepted
    """

    def __init__(self, message, span=None, expected=None):
        self.expected = sorted(expected) if expected else []
        super().__init__(message, span)


class ResolveError(CobError):
    """Failure after parsing, while extracting or expanding a file."""


class DuplicateDeclarationError(ResolveError):
    """Same name declared twice in one scope."""

    def __init__(self, kind, name, span, first_span):
        self.kind = kind
        self.name = name
        self.first_span = first_span
        message = f"duplicate {kind} '{name}'"
        if first_span is not None:
            message += f" (first declared at {first_span})"
        super().__init__(message, span)


class ManifestConflictError(ResolveError):
    """Same manifest key bound to different paths by different files."""

    def __init__(self, key, paths, declarers, span=None):
        self.key = key
        self.paths = sorted(paths)
        self.declarers = sorted(declarers)
        message = (
            f"manifest key '{key}' is bound to {', '.join(self.paths)}"
            f" by {', '.join(self.declarers)}"
        )
        super().__init__(message, span)


class UnresolvedReferenceError(ResolveError):
    """Name used but never defined or imported."""

    def __init__(self, name, span=None, message=None):
        self.name = name
        super().__init__(message or f"unresolved reference '{name}'", span)


class CyclicExpansionError(ResolveError):
    """Definition that expands back into itself.

    Attributes:
        chain: (list[str]) Frames from the first occurrence back to the repeat
    """

    def __init__(self, chain, span=None):
        self.chain = list(chain)
        super().__init__("cyclic expansion: " + " -> ".join(self.chain), span)


class CyclicImportError(CyclicExpansionError):
    """Files that import each other and can never resolve."""


class ExpansionDepthExceededError(ResolveError):
    """Expansion went deeper or wider than the configured limits."""

    def __init__(self, limit, span=None, message=None):
        self.limit = limit
        super().__init__(message or f"expansion deeper than {limit} levels", span)


class UnboundParameterError(ResolveError):
    """Macro parameter missing, unknown, or referenced outside its macro."""

    def __init__(self, param, macro=None, span=None, message=None):
        self.param = param
        self.macro = macro
        if message is None:
            if macro is None:
                message = f"parameter '@{param}' used outside of a macro"
            else:
                message = f"parameter '{param}' of '{macro}' is not bound"
        super().__init__(message, span)
