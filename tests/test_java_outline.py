from pathlib import Path

import pytest

from springcheck.analyzers.java import JavaParseError, parse_java, split_top_level, strip_code, type_base

FIXTURES = Path(__file__).parent / "fixtures"


def _parse(name):
    return parse_java((FIXTURES / name).read_text(), name)


# --- declarations ---

def test_package_imports_and_type():
    source = _parse("OrderService.java")
    assert source.package == "com.shop.order"
    assert "org.springframework.stereotype.Service" in source.imports
    [jtype] = source.types
    assert jtype.name == "OrderService"
    assert jtype.kind == "class"
    assert jtype.line == 9
    assert jtype.end_line == 37
    assert jtype.has_annotation("Service")
    assert "public" in jtype.modifiers


def test_fields_with_annotations():
    jtype = _parse("OrderService.java").types[0]
    [repo] = jtype.fields
    assert repo.name == "repo"
    assert repo.type == "OrderRepository"
    assert repo.line == 12
    assert repo.modifiers == frozenset({"private"})
    assert repo.has_annotation("Autowired")


def test_methods_and_spans():
    jtype = _parse("OrderService.java").types[0]
    methods = {m.name: m for m in jtype.methods}
    assert set(methods) == {"loadAll", "placeAll", "place", "audit"}

    load_all = methods["loadAll"]
    assert load_all.return_type == "List<Order>"
    assert (load_all.line, load_all.end_line) == (14, 20)
    assert [(p.type, p.name) for p in load_all.parameters] == [("List<Long>", "ids")]
    assert "for (Long id : ids)" in load_all.body

    audit = methods["audit"]
    assert "private" in audit.modifiers
    assert audit.annotation("Transactional").line == 33


def test_constructor_and_parameter_annotations():
    jtype = _parse("OrderController.java").types[0]
    [ctor] = jtype.constructors
    assert ctor.is_constructor
    assert [p.name for p in ctor.parameters] == ["orderRepository", "pricing"]

    discount = next(m for m in jtype.methods if m.name == "discount")
    assert [a.simple_name for a in discount.annotations] == ["PostMapping", "Transactional"]
    assert discount.parameters[0].annotations[0].name == "PathVariable"
    assert discount.parameters[1].type == "int"


def test_record_enum_and_nested_types():
    source = parse_java(
        "public class Outer {\n"
        "    enum Status { OPEN, CLOSED; int weight() { return 1; } }\n"
        "    record Line(String sku, int qty) {}\n"
        "    static class Inner<T extends Comparable<T>> extends Base implements Runnable {\n"
        "        public void run() {}\n"
        "    }\n"
        "}\n",
        "Outer.java",
    )
    names = [(t.name, t.kind) for t in source.all_types()]
    assert names == [("Outer", "class"), ("Status", "enum"), ("Line", "record"), ("Inner", "class")]

    status, line, inner = source.types[0].types
    assert [m.name for m in status.methods] == ["weight"]
    assert [(c.type, c.name) for c in line.components] == [("String", "sku"), ("int", "qty")]
    assert inner.extends == ("Base",)
    assert inner.implements == ("Runnable",)
    assert inner.qualified_name == "Outer.Inner"


def test_field_with_anonymous_class_initializer_is_one_field():
    source = parse_java(
        "class A {\n"
        "    private final Runnable task = new Runnable() {\n"
        "        @Override public void run() {}\n"
        "    };\n"
        "    private int count;\n"
        "}\n",
    )
    jtype = source.types[0]
    assert [f.name for f in jtype.fields] == ["task", "count"]
    assert jtype.methods == []


def test_multiple_declarators():
    jtype = parse_java("class A { private int x = 1, y; }").types[0]
    assert [(f.name, f.initializer) for f in jtype.fields] == [("x", "1"), ("y", None)]


# --- blanking and helpers ---

def test_strip_code_blanks_comments_and_literals_keeping_lines():
    text = 'String s = "a { b"; // trailing }\n/* block\n { */ int x;\n'
    stripped = strip_code(text)
    assert len(stripped) == len(text)
    assert stripped.count("\n") == text.count("\n")
    assert "{" not in stripped and "}" not in stripped
    assert "int x;" in stripped


def test_unbalanced_braces_raise():
    with pytest.raises(JavaParseError, match="unbalanced"):
        parse_java("class A { void f() { ", "A.java")


def test_type_base():
    assert type_base("java.util.Map<String, List<Long>>") == "Map"
    assert type_base("String[]") == "String"
    assert type_base("Object...") == "Object"


def test_split_top_level():
    assert split_top_level("Map<K, V> a, int b") == ["Map<K, V> a", "int b"]


def test_is_test_by_path_and_name():
    assert parse_java("class A {}", "src/test/java/A.java").is_test
    assert parse_java("class ATest {}", "ATest.java").is_test
    assert not parse_java("class A {}", "src/main/java/A.java").is_test
