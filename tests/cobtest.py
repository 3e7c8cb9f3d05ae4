"""Unit testing quality of life and readability helpers for loader tests."""

import textwrap

import pytest

import cob


def params(names, **cases):
    """Parametrize a test from keyword cases.

    Each keyword becomes the case id and is passed as the 'key' argument
    ahead of the named columns. A tuple value fills several columns.
    """
    rows = []
    for key, values in cases.items():
        if not isinstance(values, tuple):
            values = (values,)
        rows.append((key, *values))
    columns = ["key", *names.replace(",", " ").split()]
    return pytest.mark.parametrize(columns, rows, ids=list(cases))


def parse_value(code, cls=None):
    """Parse a value and check its node type."""
    value = cob.parse_value(code)
    if cls is not None:
        assert isinstance(value, cls), f"Expected {cls.__name__}, got {value!r}"
    return value


def roundtrip(text):
    """Assert a file writes back exactly as parsed.

    Also checks the canonical form parses back to a matching tree.
    """
    file = cob.parse_file(text)
    expected = text if text.endswith("\n") else text + "\n"
    assert file.unparse() == expected

    canonical = file.canonical()
    again = cob.parse_file(canonical)
    assert again.matches(file), f"Canonical text does not match:\n{canonical}"
    return file


def cache_with(files, **limits):
    """AssetCache with each file submitted in order.

    File texts are dedented so tests can indent them inline.
    """
    cache = cob.AssetCache(**limits)
    for path, text in files.items():
        cache.submit(path, textwrap.dedent(text))
    return cache


def resolved(files, path, **limits):
    """Resolved output of one file, asserting it resolved."""
    cache = cache_with(files, **limits)
    assert cache.state(path) is cob.FileState.RESOLVED, f"{path}: {cache.error(path)}"
    return cache.resolved(path)


def resolve_error(files, path, **limits):
    """Error recorded for one file, asserting it failed."""
    cache = cache_with(files, **limits)
    assert cache.state(path) is cob.FileState.FAILED, f"{path} is {cache.state(path)}"
    return cache.error(path)
