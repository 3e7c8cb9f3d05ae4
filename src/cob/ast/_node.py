"""Ast base node and source spans"""

__all__ = ["Node", "Span", "write_fill", "INDENT"]

import copy
from dataclasses import dataclass


INDENT = "    "


@dataclass(frozen=True)
class Span:
    """Source code position information for AST nodes and errors.

    Attributes:
        path: Source file identity (e.g., "ui/main.cob")
        offset: Starting character offset (0-indexed)
        line: Starting line number (1-indexed)
        column: Starting column number (1-indexed)
        end_offset: Ending character offset (exclusive)
        end_line: Ending line number (1-indexed)
        end_column: Ending column number (1-indexed, exclusive)
    """
    path: str | None = None
    offset: int | None = None
    line: int | None = None
    column: int | None = None
    end_offset: int | None = None
    end_line: int | None = None
    end_column: int | None = None

    def __str__(self) -> str:
        where = self.path or "<text>"
        if self.line is None:
            return where
        return f"{where}:{self.line}:{self.column}"


def write_fill(fill, default):
    """Use parsed fill when the node came from text, otherwise the default."""
    return default if fill is None else fill


class Node:
    """Base class for all AST nodes.

    The 'kids' attribute holds child nodes in source order. Other attributes
    are node-specific. Attributes named 'fill' or ending in '_fill' hold the
    whitespace, comments and separators that preceded a token. They are
    only used to write the node back out and never take part in matches().

    Attributes:
        kids: Child nodes
        fill: Formatting text before the node, None when built in code
        span: Source location, None when built in code
    """

    _skip_keys = ("kids", "span")

    def __init__(self, kids=None, fill=None):
        self.kids = list(kids) if kids else []
        self.fill = fill
        self.span = None

    def __repr__(self):
        """Compact representation showing type and key attributes."""
        attrs = []
        if self.kids:
            attrs.append(f'*{len(self.kids)}')
        for key, value in self.__dict__.items():
            if not self._is_format_key(key):
                attrs.append(f'{key}={value!r}')
        return f"{self.__class__.__name__}({' '.join(attrs)})"

    @classmethod
    def _is_format_key(cls, key):
        return key in cls._skip_keys or key == "fill" or key.endswith("_fill")

    def tree(self, indent=0):
        """Print tree structure."""
        print(f"{'  '*indent}{self!r}")
        for kid in self.kids:
            kid.tree(indent + 1)

    def find(self, node_type):
        """Find first descendant of given type, including self."""
        if isinstance(self, node_type):
            return self
        for kid in self.kids:
            if result := kid.find(node_type):
                return result
        return None

    def find_all(self, node_type):
        """Find all descendants of given type, including self."""
        results = [self] if isinstance(self, node_type) else []
        for kid in self.kids:
            results.extend(kid.find_all(node_type))
        return results

    def matches(self, other) -> bool:
        """Hierarchical comparison of AST structure.

        Compares node types, attributes (excluding spans and fill), and
        recursively compares all children. Useful for testing round-trip
        parsing.

        Args:
            other: Another Node to compare against

        Returns:
            True if nodes have same type, attributes, and children structure
        """
        if type(other) is not type(self):
            return False
        if len(self.kids) != len(other.kids):
            return False

        mine = {k: v for k, v in self.__dict__.items() if not self._is_format_key(k)}
        theirs = {k: v for k, v in other.__dict__.items() if not self._is_format_key(k)}
        if mine.keys() != theirs.keys():
            return False
        for key, value in mine.items():
            if not _same(value, theirs[key]):
                return False

        for self_kid, other_kid in zip(self.kids, other.kids, strict=True):
            if not self_kid.matches(other_kid):
                return False
        return True

    def copy(self):
        """Deep copy of this node and everything below it."""
        return copy.deepcopy(self)

    def canonical(self) -> str:
        """Source text with canonical spacing, no comments and no original
        number or string spelling."""
        node = self.copy()
        for each in node.find_all(Node):
            for key in list(vars(each)):
                if key == "text" or key == "fill" or key.endswith("_fill"):
                    setattr(each, key, None)
        return node.unparse()

    def refill(self, fill):
        """Replace the leading fill, returning self."""
        self.fill = fill
        return self

    def unparse(self, lead="") -> str:
        """Convert back to cob source representation.

        Args:
            lead: Fill to write when the node has none of its own

        Returns:
            Source code string
        """
        raise NotImplementedError(f"{self.__class__.__name__}.unparse() not implemented")


def _same(left, right):
    if isinstance(left, Node):
        return isinstance(right, Node) and left.matches(right)
    if isinstance(left, (list, tuple)):
        if not isinstance(right, (list, tuple)) or len(left) != len(right):
            return False
        return all(_same(a, b) for a, b in zip(left, right))
    return left == right
