"""
Test cases for the incremental asset cache.

Files are submitted in any order. A file resolves only after everything it
imports has resolved, and changes to a file ripple out to every file that
imports it.
"""

import itertools
import logging
import textwrap

import pytest

import cob
import cobtest

State = cob.FileState


BASE = """\
    #manifest
    self as base

    #defs
    $unit = 4px
    """

THEME = """\
    #manifest
    self as theme

    #import
    base as _

    #defs
    $accent = #FF8800
    $pad(x y=$unit) = Padding(@x @y)
    """

MAIN = """\
    #manifest
    "theme.cob" as theme
    self as main

    #import
    theme as theme

    #commands
    Background($theme::accent)

    #scenes
    "root"
        $theme::pad(2px)
    """

FILES = {"base.cob": BASE, "theme.cob": THEME, "main.cob": MAIN}


def submit(cache, path, text):
    return cache.submit(path, textwrap.dedent(text))


def test_resolves_across_files():
    cache = cobtest.cache_with(FILES)
    assert all(cache.state(path) is State.RESOLVED for path in FILES)

    main = cache.resolved("main.cob")
    assert main.commands[0].to_python() == {"Background": ("#ff8800",)}
    padding = main.scene("root").instruction("Padding")
    assert padding.to_python() == {"Padding": ((2, "px"), (4, "px"))}
    assert main.dependencies == ("theme.cob",)


def test_dependency_gating(cache):
    assert submit(cache, "main.cob", MAIN) is State.PENDING
    assert cache.resolved("main.cob") is None
    assert cache.pending() == {"main.cob": ("theme",)}
    assert cache.requested() == ["theme.cob"]

    assert submit(cache, "theme.cob", THEME) is State.PENDING
    assert cache.state("main.cob") is State.PENDING
    assert cache.pending() == {"main.cob": ("theme",), "theme.cob": ("base",)}

    assert submit(cache, "base.cob", BASE) is State.RESOLVED
    assert cache.state("theme.cob") is State.RESOLVED
    assert cache.state("main.cob") is State.RESOLVED
    assert cache.pending() == {}
    assert cache.requested() == []


def test_order_independent():
    outputs = None
    for order in itertools.permutations(FILES):
        cache = cobtest.cache_with({path: FILES[path] for path in order})
        result = {path: cache.resolved(path).unparse() for path in FILES}
        if outputs is None:
            outputs = result
        assert result == outputs


def test_queries():
    cache = cobtest.cache_with(FILES)
    assert cache.files() == ["base.cob", "main.cob", "theme.cob"]
    assert cache.dependencies("main.cob") == ["theme.cob"]
    assert cache.dependencies("base.cob") == []
    assert cache.dependents("base.cob") == ["theme.cob"]
    assert cache.lookup_key("theme") == "theme.cob"
    assert cache.lookup_key("nothing") is None
    assert cache.errors() == {}
    assert "main.cob" in cache
    assert cache.state("unknown.cob") is State.UNPARSED


def test_undeclared_key_stays_pending(cache):
    submit(cache, "main.cob", "#import\nnothing as n\n#commands\nFoo\n")
    assert cache.state("main.cob") is State.PENDING
    assert cache.pending() == {"main.cob": ("nothing",)}
    assert cache.requested() == []


def test_invalidate_cascades():
    cache = cobtest.cache_with(FILES)
    cache.invalidate("base.cob")

    assert cache.state("base.cob") is State.INVALIDATED
    assert cache.state("theme.cob") is State.PENDING
    assert cache.state("main.cob") is State.PENDING
    assert cache.resolved("base.cob") is None
    assert cache.resolved("theme.cob") is None
    assert cache.resolved("main.cob") is None
    assert cache.requested() == ["base.cob"]

    submit(cache, "base.cob", BASE.replace("4px", "8px"))
    assert all(cache.state(path) is State.RESOLVED for path in FILES)
    padding = cache.resolved("main.cob").scene("root").instruction("Padding")
    assert padding.to_python() == {"Padding": ((2, "px"), (8, "px"))}


def test_resubmit_updates_dependents():
    cache = cobtest.cache_with(FILES)
    before = cache.resolved("main.cob")
    submit(cache, "theme.cob", THEME.replace("#FF8800", "#00FF00"))
    after = cache.resolved("main.cob")
    assert after is not before
    assert after.commands[0].to_python() == {"Background": ("#00ff00",)}
    assert before.commands[0].to_python() == {"Background": ("#ff8800",)}


def test_failed_dependency_blocks():
    cache = cobtest.cache_with(FILES)
    old_theme = cache.resolved("theme.cob")
    old_main = cache.resolved("main.cob")

    assert submit(cache, "theme.cob", "#manifest\nself as theme\n#commands\nbad\n") is State.FAILED
    assert isinstance(cache.error("theme.cob"), cob.ParseError)
    assert cache.state("main.cob") is State.BLOCKED
    assert cache.blocked() == {"main.cob": ("theme.cob",)}
    assert cache.resolved("theme.cob") is old_theme
    assert cache.resolved("main.cob") is old_main
    assert cache.state("base.cob") is State.RESOLVED

    submit(cache, "theme.cob", THEME)
    assert cache.state("main.cob") is State.RESOLVED
    assert cache.blocked() == {}
    assert cache.errors() == {}


def test_resolve_failure_blocks_transitively():
    cache = cobtest.cache_with(FILES)
    submit(cache, "base.cob", "#manifest\nself as base\n#defs\n$unit = $missing\n")
    # $unit is only expanded by importers, so base itself still resolves
    assert cache.state("base.cob") is State.RESOLVED
    assert isinstance(cache.error("main.cob"), cob.UnresolvedReferenceError)

    submit(cache, "base.cob", "#manifest\nself as base\n#commands\nFoo($missing)\n")
    assert cache.state("base.cob") is State.FAILED
    assert cache.state("theme.cob") is State.BLOCKED
    assert cache.state("main.cob") is State.BLOCKED
    assert cache.blocked() == {"main.cob": ("theme.cob",), "theme.cob": ("base.cob",)}


def test_duplicate_declaration_fails_file(cache):
    assert submit(cache, "a.cob", "#defs\n$a = 1\n$a = 2\n") is State.FAILED
    assert isinstance(cache.error("a.cob"), cob.DuplicateDeclarationError)
    assert cache.resolved("a.cob") is None


def test_bad_escape_fails_file(cache):
    submit(cache, "a.cob", "#manifest\nself as a\n#defs\n$t = \"ok\"\n")
    submit(cache, "b.cob", "#import\na as a\n#commands\nText($a::t)\n")
    assert cache.state("b.cob") is State.RESOLVED

    assert submit(cache, "a.cob", '#commands\nText("\\u{110000}")\n') is State.FAILED
    error = cache.error("a.cob")
    assert isinstance(error, cob.ParseError)
    assert error.span.line == 2
    assert cache.state("b.cob") is State.BLOCKED
    assert cache.resolved("b.cob").commands[0].to_python() == {"Text": ("ok",)}


def test_manifest_conflict(cache):
    submit(cache, "x.cob", '#manifest\n"one.cob" as shared\n')
    assert cache.state("x.cob") is State.RESOLVED
    submit(cache, "y.cob", '#manifest\n"two.cob" as shared\n')

    assert cache.state("x.cob") is State.FAILED
    assert cache.state("y.cob") is State.FAILED
    assert isinstance(cache.error("x.cob"), cob.ManifestConflictError)
    assert cache.error("y.cob").declarers == ["x.cob", "y.cob"]
    assert cache.error("x.cob").span.path == "x.cob"
    assert cache.error("y.cob").span.line == 2
    assert cache.lookup_key("shared") is None

    submit(cache, "y.cob", "#commands\nFoo\n")
    assert cache.state("x.cob") is State.RESOLVED
    assert cache.state("y.cob") is State.RESOLVED
    assert cache.lookup_key("shared") == "one.cob"


def test_conflicted_key_blocks_importers(cache):
    submit(cache, "x.cob", '#manifest\n"one.cob" as shared\n')
    submit(cache, "y.cob", '#manifest\n"two.cob" as shared\n')
    submit(cache, "user.cob", "#import\nshared as s\n")
    assert cache.state("user.cob") is State.BLOCKED
    assert cache.blocked() == {"user.cob": ("shared",)}


def test_remove(cache):
    submit(cache, "lib.cob", "#manifest\nself as lib\n#defs\n$a = 1\n")
    submit(cache, "app.cob", "#import\nlib as lib\n#commands\nFoo($lib::a)\n")
    assert cache.state("app.cob") is State.RESOLVED

    cache.remove("lib.cob")
    assert cache.state("lib.cob") is State.REMOVED
    assert cache.state("app.cob") is State.FAILED
    error = cache.error("app.cob")
    assert isinstance(error, cob.UnresolvedReferenceError)
    assert error.name == "lib"
    assert error.span.path == "app.cob"
    assert error.span.line == 2
    assert "lib.cob" not in cache.files()
    assert cache.requested() == []

    submit(cache, "lib.cob", "#manifest\nself as lib\n#defs\n$a = 2\n")
    assert cache.state("app.cob") is State.RESOLVED
    assert cache.resolved("app.cob").commands[0].to_python() == {"Foo": (2,)}


def test_remove_target_declared_elsewhere(cache):
    submit(cache, "app.cob", '#manifest\n"lib.cob" as lib\n#import\nlib as _\n#commands\nFoo($a)\n')
    submit(cache, "lib.cob", "#defs\n$a = 1\n")
    assert cache.state("app.cob") is State.RESOLVED

    cache.remove("lib.cob")
    assert isinstance(cache.error("app.cob"), cob.UnresolvedReferenceError)
    assert cache.requested() == []


def test_import_cycle(cache):
    submit(cache, "a.cob", "#manifest\nself as a\n#import\nb as b\n")
    submit(cache, "b.cob", "#manifest\nself as b\n#import\na as a\n")
    assert cache.state("a.cob") is State.FAILED
    assert cache.state("b.cob") is State.FAILED
    error = cache.error("a.cob")
    assert isinstance(error, cob.CyclicImportError)
    assert isinstance(error, cob.CyclicExpansionError)
    assert error.chain == ["a.cob", "b.cob", "a.cob"]
    assert error.span.path == "a.cob"
    assert error.span.line == 4

    submit(cache, "c.cob", "#import\na as a\n")
    assert cache.state("c.cob") is State.BLOCKED
    assert isinstance(cache.error("a.cob"), cob.CyclicImportError)

    submit(cache, "b.cob", "#manifest\nself as b\n")
    assert cache.state("a.cob") is State.RESOLVED
    assert cache.state("c.cob") is State.RESOLVED


def test_self_import(cache):
    submit(cache, "a.cob", "#manifest\nself as a\n#import\na as _\n#defs\n$x = 1\n#commands\nFoo($x)\n")
    assert cache.state("a.cob") is State.RESOLVED
    assert cache.dependencies("a.cob") == []


def test_chained_imports(cache):
    submit(cache, "base.cob", "#manifest\nself as base\n#defs\n$x = 1\n")
    submit(cache, "mid.cob", "#manifest\nself as mid\n#import\nbase as b\n")
    submit(cache, "top.cob", "#import\nmid as m\n#commands\nFoo($m::b::x)\n")
    assert cache.resolved("top.cob").commands[0].to_python() == {"Foo": (1,)}


def test_later_import_shadows(cache):
    submit(cache, "one.cob", "#manifest\nself as one\n#defs\n$x = 1\n")
    submit(cache, "two.cob", "#manifest\nself as two\n#defs\n$x = 2\n")
    submit(cache, "top.cob", "#import\none as _\ntwo as _\n#defs\n$y = 3\n#commands\nFoo($x $y)\n")
    assert cache.resolved("top.cob").commands[0].to_python() == {"Foo": (2, 3)}


def test_bodies_expand_in_defining_file(cache):
    submit(cache, "lib.cob", textwrap.dedent("""\
        #manifest
        self as lib
        #using
        lib::Text as Text
        #defs
        $greeting = "lib"
        $say(who=$greeting) = Text(@who)
        """))
    submit(cache, "app.cob", textwrap.dedent("""\
        #import
        lib as lib
        #using
        app::Text as Text
        #defs
        $greeting = "app"
        #commands
        $lib::say()
        $lib::say($greeting)
        Text(1)
        """))
    first, second, third = cache.resolved("app.cob").commands
    assert first.type_name == "lib::Text"
    assert first.value.to_python() == ("lib",)
    assert second.value.to_python() == ("app",)
    assert third.type_name == "app::Text"


def test_imported_scene_macro(cache):
    submit(cache, "widgets.cob", textwrap.dedent("""\
        #manifest
        self as widgets
        #defs
        +button(label) =
            "button"
                Text(@label)
        """))
    submit(cache, "app.cob", textwrap.dedent("""\
        #import
        widgets as w
        #scenes
        "main"
            +w::button("OK")
        """))
    button = cache.resolved("app.cob").scene("main/button")
    assert button.instruction("Text").to_python() == {"Text": ("OK",)}


def test_independent_caches():
    first = cobtest.cache_with({"base.cob": BASE})
    second = cob.AssetCache()
    assert first.files() == ["base.cob"]
    assert second.files() == []
    assert second.lookup_key("base") is None


def test_logging(cache, caplog):
    with caplog.at_level(logging.DEBUG, logger="cob"):
        submit(cache, "main.cob", MAIN)
        submit(cache, "bad.cob", "#commands\nbad\n")
    assert "Pending main.cob" in caplog.text
    assert "Failed bad.cob" in caplog.text
