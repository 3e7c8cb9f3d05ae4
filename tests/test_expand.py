"""
Test cases for constant and macro expansion within one file.

Resolved output holds only literal values and instructions. References,
macro calls and parameters are all substituted.
"""

from decimal import Decimal

import cob
import cobtest


def commands(text, **limits):
    result = cobtest.resolved({"main.cob": text}, "main.cob", **limits)
    return [command.to_python() for command in result.commands]


def error(text, **limits):
    return cobtest.resolve_error({"main.cob": text}, "main.cob", **limits)


def test_constants():
    result = commands("""\
        #defs
        $size = 10px
        $color = #FF0000
        $both = [$size $color]
        #commands
        Size($size)
        Palette($both)
        """)
    assert result == [
        {"Size": ((Decimal(10), "px"),)},
        {"Palette": ([(Decimal(10), "px"), "#ff0000"],)},
    ]


def test_macro_parameters():
    result = commands("""\
        #defs
        $box(w h) = Size(@w @h)
        #commands
        $box(10 20)
        $box(h=5 w=1)
        """)
    assert result == [{"Size": (10, 20)}, {"Size": (1, 5)}]


def test_macro_defaults():
    result = commands("""\
        #defs
        $gap = 4px
        $pad(x y=$gap) = Padding(@x @y)
        #commands
        $pad(1px)
        $pad(1px 2px)
        """)
    assert result == [
        {"Padding": ((1, "px"), (4, "px"))},
        {"Padding": ((1, "px"), (2, "px"))},
    ]


def test_nested_macros():
    result = commands("""\
        #defs
        $pair(a b) = [@a @b]
        $quad(a) = $pair($pair(@a @a) $pair(@a 0))
        #commands
        Grid($quad(1))
        """)
    assert result == [{"Grid": ([[1, 1], [1, 0]],)}]


def test_constant_instruction_entry():
    result = commands("""\
        #defs
        $reset = Clear
        $fill(c) = Fill(@c)
        #commands
        $reset
        $fill(#000000)
        """)
    assert result == [{"Clear": None}, {"Fill": ("#000000",)}]


def test_using_canonicalizes_types():
    result = cobtest.resolved({"main.cob": """\
        #using
        engine::ui::Background as Background
        #defs
        $bg = Background(1)
        #commands
        Background(2)
        $bg
        Other::Variant
        """}, "main.cob")
    types = [command.type_name for command in result.commands]
    assert types == ["engine::ui::Background", "engine::ui::Background", "Other"]


def test_output_has_no_references():
    result = cobtest.resolved({"main.cob": """\
        #defs
        $a = 1
        $m(x) = {value: @x other: $a}
        #commands
        Foo($m($a))
        """}, "main.cob")
    command, = result.commands
    for kind in (cob.ast.ConstantRef, cob.ast.MacroCall, cob.ast.Param):
        assert command.find_all(kind) == []
    assert command.to_python() == {"Foo": ({"value": 1, "other": 1},)}


def test_constant_cycle():
    err = error("""\
        #defs
        $a = $b
        $b = [$a]
        #commands
        Foo($a)
        """)
    assert isinstance(err, cob.CyclicExpansionError)
    assert err.chain == ["$a (main.cob)", "$b (main.cob)", "$a (main.cob)"]


def test_macro_cycle():
    err = error("""\
        #defs
        $m(x) = $m(@x)
        #commands
        Foo($m(1))
        """)
    assert isinstance(err, cob.CyclicExpansionError)
    assert err.chain[0] == err.chain[-1] == "$m (main.cob)"


def test_depth_limit():
    text = """\
        #defs
        $a = $b
        $b = $c
        $c = $d
        $d = 1
        #commands
        Foo($a)
        """
    assert commands(text) == [{"Foo": (1,)}]
    err = error(text, max_depth=3)
    assert isinstance(err, cob.ExpansionDepthExceededError)
    assert err.limit == 3


def test_expansion_limit():
    err = error("""\
        #defs
        $a = [1 1 1 1]
        $b = [$a $a $a $a]
        $c = [$b $b $b $b]
        #commands
        Foo($c)
        """, max_expansions=50)
    assert isinstance(err, cob.ExpansionDepthExceededError)


@cobtest.params(
    "text",
    missing=("#defs\n$m(x) = Foo(@x)\n#commands\n$m()\n"),
    unknown=("#defs\n$m(x) = Foo(@x)\n#commands\n$m(1 y=2)\n"),
    surplus=("#defs\n$m(x) = Foo(@x)\n#commands\n$m(1 2)\n"),
    undeclared=("#defs\n$m(x) = Foo(@y)\n#commands\n$m(1)\n"),
    outside=("#commands\nFoo(@x)\n"),
    in_constant=("#defs\n$a = @x\n$m(x) = $a\n#commands\nFoo($m(1))\n"),
)
def test_unbound_parameters(key, text):
    assert isinstance(error(text), cob.UnboundParameterError)


@cobtest.params(
    "text",
    constant=("#commands\nFoo($nope)\n"),
    macro=("#commands\nFoo($nope(1))\n"),
    entry=("#commands\n$nope\n"),
    alias=("#commands\nFoo($ui::size)\n"),
    constant_called=("#defs\n$c = 1\n#commands\nFoo($c(1))\n"),
)
def test_unresolved_references(key, text):
    assert isinstance(error(text), cob.UnresolvedReferenceError)


def test_entry_must_be_instruction():
    err = error("#defs\n$c = 1\n#commands\n$c\n")
    assert type(err) is cob.ResolveError
    assert "expected an instruction" in err.message


def test_error_span():
    err = error("#commands\nFoo(1)\nFoo($nope)\n")
    assert err.span.path == "main.cob"
    assert err.span.line == 3
    assert err.span.column == 5


def test_constant_macro_cycle():
    err = error("""\
        #defs
        $a = $m(1)
        $m(x) = [$a @x]
        #commands
        Foo($a)
        """)
    assert isinstance(err, cob.CyclicExpansionError)
    assert err.chain == ["$a (main.cob)", "$m (main.cob)", "$a (main.cob)"]


def test_parameter_passed_as_entry():
    result = commands("""\
        #defs
        $same(x) = @x
        $c = Foo(1)
        #commands
        $same(Foo(1))
        $c
        $same(Bar)
        """)
    assert result == [{"Foo": (1,)}, {"Foo": (1,)}, {"Bar": None}]


def test_entry_error_message():
    err = error("#defs\n$same(x) = @x\n#commands\n$same(1)\n")
    assert "expands to a number," in err.message


def test_using_canonicalizes_generics():
    result = cobtest.resolved({"main.cob": """\
        #using
        engine::Slot as Slot
        engine::Item as Item
        #commands
        Slot<Item>(1)
        Slot<Item<f32>>
        """}, "main.cob")
    types = [command.type_id for command in result.commands]
    assert types == ["engine::Slot<engine::Item>", "engine::Slot<engine::Item<f32>>"]


def test_value_groups():
    result = commands("""\
        #defs
        $pair = \\ 1 2 \\
        $more = \\ $pair 3 \\
        $size = \\ width: 1px height: 2px \\
        #commands
        List[0 $pair $more]
        Args($more 4)
        Node{$size grow: true}
        """)
    assert result == [
        {"List": ([0, 1, 2, 1, 2, 3],)},
        {"Args": ((1, 2, 3, 4),)},
        {"Node": ({"width": (1, "px"), "height": (2, "px"), "grow": True},)},
    ]


def test_value_group_through_macro():
    result = commands("""\
        #defs
        $xy = \\ 1 2 \\
        $point(p) = Point(@p)
        #commands
        $point([$xy])
        """)
    assert result == [{"Point": ([1, 2],)}]


@cobtest.params(
    "text",
    entry=("#defs\n$g = \\ 1 \\\n#commands\n$g\n"),
    map_value=("#defs\n$g = \\ 1 \\\n#commands\nFoo{a: $g}\n"),
    pairs_in_array=("#defs\n$g = \\ a: 1 \\\n#commands\nFoo[$g]\n"),
    values_in_map=("#defs\n$g = \\ 1 \\\n#commands\nFoo{$g}\n"),
    plain_in_map=("#defs\n$g = 1\n#commands\nFoo{$g}\n"),
)
def test_misplaced_value_groups(key, text):
    assert isinstance(error(text), cob.ResolveError)


def test_value_group_duplicate_key():
    err = error("#defs\n$g = \\ a: 1 \\\n#commands\nFoo{a: 2 $g}\n")
    assert isinstance(err, cob.DuplicateDeclarationError)
    assert err.name == "a"
