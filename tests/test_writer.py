"""Tests for the graph writer."""

import json
import sys
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional

import pytest
from pydantic import BaseModel

from jsonio import (
    ErrorKind,
    GraphWriter,
    JsonClassWriter,
    JsonIoError,
    ShowType,
    WriteOptions,
    WriteOptionsBuilder,
    to_json,
    to_maps,
)

NEVER = WriteOptions(show_type=ShowType.NEVER)
ALWAYS = WriteOptions(show_type=ShowType.ALWAYS)


# ============================================================================
# Module-level classes (must be importable for type names)
# ============================================================================


@dataclass
class Point:
    x: int
    y: int


@dataclass
class Hero:
    name: str
    sidekick: Optional["Hero"] = None


@dataclass
class SuperHero(Hero):
    power: str = ""


class Color(Enum):
    RED = 1
    GREEN = 2


@dataclass
class Palette:
    primary: Color
    others: list[Color] = field(default_factory=list)


@dataclass
class Event:
    when: datetime
    key: uuid.UUID


class Pair(NamedTuple):
    x: int
    y: int


class SimpleObject:
    def __init__(self, x, y):
        self.x = x
        self.y = y


class Slotted:
    __slots__ = ("a", "b")

    def __init__(self, a):
        self.a = a


class StatefulObject:
    def __init__(self, value):
        self.value = value
        self._cache = "should not be serialized"

    def __getstate__(self):
        return {"value": self.value}

    def __setstate__(self, state):
        self.value = state["value"]
        self._cache = "restored"


class User(BaseModel):
    name: str
    age: int = 0


class Bag:
    def __init__(self, items):
        self.items = items


class BagWriter(JsonClassWriter):
    def write(self, obj, context):
        return {"contents": context.write_value(obj.items)}


class PointAsTuple(JsonClassWriter):
    def write(self, obj, context):
        return context.write_value((obj.x, obj.y))


class PointAsMap(JsonClassWriter):
    def write(self, obj, context):
        return context.write_value({"x": obj.x, "y": obj.y})


@dataclass
class Link:
    value: int
    next: Optional["Link"] = None


def make_chain(length):
    head = None
    for i in range(length):
        head = Link(i, head)
    return head


# ============================================================================
# References
# ============================================================================


class TestReferences:
    def test_plain_values(self):
        assert to_json({"a": [1, 2.5, True, None, "x"]}) == '{"a":[1,2.5,true,null,"x"]}'

    def test_shared_object(self):
        a = {"name": "a"}
        assert to_json([a, a]) == '[{"@id":1,"name":"a"},{"@ref":1}]'

    def test_cycle(self):
        d = {}
        d["self"] = d
        assert to_json(d) == '{"@id":1,"self":{"@ref":1}}'

    def test_list_cycle(self):
        items = []
        items.append(items)
        assert to_json(items) == '{"@id":1,"@items":[{"@ref":1}]}'

    def test_shared_list(self):
        shared = [1]
        assert to_json({"a": shared, "b": shared}) == '{"a":{"@id":1,"@items":[1]},"b":{"@ref":1}}'

    def test_ids_follow_emission_order(self):
        a, b = {"n": 1}, {"n": 2}
        assert to_json([a, b, b, a]) == (
            '[{"@id":1,"n":1},{"@id":2,"n":2},{"@ref":2},{"@ref":1}]'
        )

    def test_first_emission_may_be_nested(self):
        a = {"n": 1}
        assert to_json([{"x": a}, a]) == '[{"x":{"@id":1,"n":1}},{"@ref":1}]'

    def test_unshared_objects_get_no_id(self):
        text = to_json([{"x": 1}, {"x": 1}, Point(1, 2), [Point(3, 4)]])
        assert "@id" not in text
        assert "@ref" not in text

    def test_id_count_matches_shared_count(self):
        a, b, c = {"n": 1}, {"n": 2}, {"n": 3}
        text = to_json({"one": [a, b, c], "two": [a, b]})
        assert text.count('"@id"') == 2
        assert text.count('"@ref"') == 2

    def test_dataclass_cycle(self):
        batman = Hero("Batman")
        robin = Hero("Robin", batman)
        batman.sidekick = robin
        assert to_json(batman, NEVER) == (
            '{"@id":1,"name":"Batman","sidekick":{"name":"Robin","sidekick":{"@ref":1}}}'
        )

    def test_writer_reusable(self):
        writer = GraphWriter()
        a = {"name": "a"}
        assert writer.write([a, a]) == writer.write([a, a])


# ============================================================================
# Type Information
# ============================================================================


class TestTypeInfo:
    def test_dataclass_root(self):
        assert to_json(Point(1, 2)) == '{"@type":"test_writer.Point","x":1,"y":2}'

    def test_declared_field_type_inferred(self):
        hero = Hero("Batman", Hero("Robin"))
        assert to_json(hero) == (
            '{"@type":"test_writer.Hero","name":"Batman","sidekick":{"name":"Robin","sidekick":null}}'
        )

    def test_subclass_in_field_is_typed(self):
        hero = Hero("Batman", SuperHero("Robin", power="x"))
        assert to_json(hero) == (
            '{"@type":"test_writer.Hero","name":"Batman","sidekick":'
            '{"@type":"test_writer.SuperHero","name":"Robin","sidekick":null,"power":"x"}}'
        )

    def test_never(self):
        hero = Hero("Batman", Hero("Robin"))
        assert to_json(hero, NEVER) == '{"name":"Batman","sidekick":{"name":"Robin","sidekick":null}}'

    def test_always(self):
        hero = Hero("Batman", Hero("Robin"))
        assert to_json(hero, ALWAYS) == (
            '{"@type":"test_writer.Hero","name":"Batman","sidekick":'
            '{"@type":"test_writer.Hero","name":"Robin","sidekick":null}}'
        )

    def test_always_wraps_builtin_containers(self):
        assert to_json([1], ALWAYS) == '{"@type":"list","@items":[1]}'
        assert to_json({"a": 1}, ALWAYS) == '{"@type":"dict","a":1}'

    def test_tuple(self):
        assert to_json((1, 2)) == '{"@type":"tuple","@items":[1,2]}'

    def test_set(self):
        assert to_json({1}) == '{"@type":"set","@items":[1]}'

    def test_named_tuple(self):
        assert to_json(Pair(1, 2)) == '{"@type":"test_writer.Pair","@items":[1,2]}'

    def test_ordered_dict(self):
        assert to_json(OrderedDict(a=1)) == '{"@type":"collections.OrderedDict","a":1}'

    def test_pydantic_model(self):
        assert to_json(User(name="a", age=3)) == '{"@type":"test_writer.User","name":"a","age":3}'

    def test_class_object(self):
        assert to_json([Point]) == '[{"@type":"type","value":"test_writer.Point"}]'

    def test_custom_type_name(self):
        options = WriteOptionsBuilder().with_custom_type_name(Point, "P").build()
        assert to_json(Point(1, 2), options) == '{"@type":"P","x":1,"y":2}'


# ============================================================================
# Objects and Fields
# ============================================================================


class TestObjects:
    def test_plain_object(self):
        assert to_json(SimpleObject(1, 2)) == '{"@type":"test_writer.SimpleObject","x":1,"y":2}'

    def test_slots_skip_unset(self):
        assert to_json(Slotted(1)) == '{"@type":"test_writer.Slotted","a":1}'

    def test_getstate(self):
        assert to_json(StatefulObject(5)) == '{"@type":"test_writer.StatefulObject","value":5}'

    def test_skip_null_fields(self):
        options = WriteOptionsBuilder().skip_null_fields().build()
        assert to_json(Hero("Robin"), options) == '{"@type":"test_writer.Hero","name":"Robin"}'

    def test_excluded_fields(self):
        options = WriteOptionsBuilder().with_excluded_fields(Point, ["y"]).build()
        assert to_json(Point(1, 2), options) == '{"@type":"test_writer.Point","x":1}'

    def test_included_fields(self):
        options = WriteOptionsBuilder().with_included_fields(Point, ["y"]).build()
        assert to_json(Point(1, 2), options) == '{"@type":"test_writer.Point","y":2}'

    def test_excluded_fields_apply_to_subclasses(self):
        options = WriteOptionsBuilder().with_excluded_fields(Hero, ["sidekick"]).build()
        assert to_json(SuperHero("Robin", power="x"), options) == (
            '{"@type":"test_writer.SuperHero","name":"Robin","power":"x"}'
        )

    def test_unreadable_field(self):
        point = Point(1, 2)
        del point.x
        with pytest.raises(JsonIoError) as exc_info:
            to_json(point)
        assert exc_info.value.kind is ErrorKind.FIELD_ACCESS

    @pytest.mark.parametrize("value", [len, lambda: 1, sys, (i for i in range(3))])
    def test_unsupported(self, value):
        with pytest.raises(JsonIoError) as exc_info:
            to_json({"value": value})
        assert exc_info.value.kind is ErrorKind.UNSUPPORTED_TYPE


# ============================================================================
# Maps
# ============================================================================


class TestMaps:
    def test_non_string_keys(self):
        assert to_json({1: "a", 2: "b"}) == '{"@keys":[1,2],"@items":["a","b"]}'

    def test_meta_key_collision(self):
        assert to_json({"@type": "x"}) == '{"@keys":["@type"],"@items":["x"]}'
        assert to_json({"@t": "x"}) == '{"@keys":["@t"],"@items":["x"]}'

    def test_forced_keys_and_items(self):
        options = WriteOptionsBuilder().force_map_output_as_keys_and_items().build()
        assert to_json({"a": 1}, options) == '{"@keys":["a"],"@items":[1]}'

    def test_object_keys_are_tracked(self):
        key = Pair(1, 2)
        assert to_json({key: key}) == (
            '{"@keys":[{"@id":1,"@type":"test_writer.Pair","@items":[1,2]}],"@items":[{"@ref":1}]}'
        )


# ============================================================================
# Enums and Logical Primitives
# ============================================================================


class TestEnums:
    def test_declared_enum_is_bare_name(self):
        palette = Palette(Color.RED, [Color.GREEN])
        assert to_json(palette) == (
            '{"@type":"test_writer.Palette","primary":"RED","others":["GREEN"]}'
        )

    def test_undeclared_enum_is_typed(self):
        assert to_json([Color.RED]) == '[{"@type":"test_writer.Color","name":"RED"}]'

    def test_never_writes_name_only(self):
        assert to_json([Color.RED], NEVER) == '["RED"]'

    def test_enum_not_tracked(self):
        assert "@id" not in to_json([Color.RED, Color.RED])

    def test_public_fields(self):
        options = WriteOptionsBuilder().write_enum_public_fields().build()
        assert to_json(Color.RED, options) == '{"@type":"test_writer.Color","name":"RED","value":1}'

    def test_all_fields(self):
        options = WriteOptionsBuilder().write_enum_all_fields().build()
        written = json.loads(to_json(Color.RED, options))
        assert written["name"] == "RED"
        assert written["_value_"] == 1


class TestPrimitives:
    def test_undeclared_datetime_is_wrapped(self):
        assert to_json([datetime(2024, 1, 2, 3, 4, 5)]) == (
            '[{"@type":"datetime.datetime","value":"2024-01-02T03:04:05"}]'
        )

    def test_declared_primitives_are_bare(self):
        event = Event(datetime(2024, 1, 2, 3, 4, 5), uuid.UUID("12345678-1234-5678-1234-567812345678"))
        assert to_json(event) == (
            '{"@type":"test_writer.Event","when":"2024-01-02T03:04:05",'
            '"key":"12345678-1234-5678-1234-567812345678"}'
        )

    def test_date_format(self):
        options = WriteOptionsBuilder().with_date_format("%d/%m/%Y").never_show_type_info().build()
        event = Event(datetime(2024, 1, 2), uuid.UUID(int=0))
        assert json.loads(to_json(event, options))["when"] == "02/01/2024"

    def test_bytes(self):
        assert to_json({"data": b"hi"}) == '{"data":{"@type":"bytes","value":"aGk="}}'

    def test_primitives_not_tracked(self):
        moment = datetime(2024, 1, 2)
        assert "@id" not in to_json([moment, moment])

    def test_longs_as_strings(self):
        options = WriteOptionsBuilder().write_longs_as_strings().build()
        assert to_json([2**53 - 1, 2**53, -(2**53)], options) == (
            '[9007199254740991,"9007199254740992","-9007199254740992"]'
        )

    def test_longs_as_numbers_by_default(self):
        assert to_json([2**53]) == "[9007199254740992]"


# ============================================================================
# Output Format and Customization
# ============================================================================


class TestFormat:
    def test_pretty_print(self):
        options = WriteOptionsBuilder().with_pretty_print().build()
        assert to_json({"a": 1}, options) == '{\n  "a": 1\n}'

    def test_short_meta_keys(self):
        options = WriteOptionsBuilder().with_short_meta_keys().build()
        a = {"name": "a"}
        assert to_json([a, a], options) == '[{"@i":1,"name":"a"},{"@r":1}]'
        assert to_json((1, 2), options) == '{"@t":"tuple","@e":[1,2]}'

    def test_raw_maps_rewrite(self):
        text = '{"@type":"test_writer.Point","x":1,"y":2}'
        assert to_json(to_maps(text)) == text
        assert to_json(to_maps(text), NEVER) == '{"x":1,"y":2}'


class TestCustomWriters:
    def test_scalar_output_is_wrapped_when_typed(self):
        options = WriteOptionsBuilder().with_custom_writer(Point, lambda p: f"{p.x},{p.y}").build()
        assert to_json([Point(1, 2)], options) == '[{"@type":"test_writer.Point","value":"1,2"}]'

    def test_shared_scalar_output(self):
        options = (
            WriteOptionsBuilder()
            .never_show_type_info()
            .with_custom_writer(Point, lambda p: f"{p.x},{p.y}")
            .build()
        )
        point = Point(1, 2)
        assert to_json([point, point], options) == '[{"@id":1,"value":"1,2"},{"@ref":1}]'

    def test_nested_values_are_tracked(self):
        options = WriteOptionsBuilder().with_custom_writer(Bag, BagWriter()).build()
        shared = {"k": 1}
        assert to_json(Bag([shared, shared]), options) == (
            '{"@type":"test_writer.Bag","contents":[{"@id":1,"k":1},{"@ref":1}]}'
        )

    def test_subclass_uses_writer(self):
        options = WriteOptionsBuilder().with_custom_writer(Hero, lambda h: h.name).never_show_type_info().build()
        assert to_json([SuperHero("Robin")], options) == '["Robin"]'

    def test_no_customization(self):
        options = (
            WriteOptionsBuilder()
            .with_custom_writer(Hero, lambda h: h.name)
            .with_no_customization_for(SuperHero)
            .never_show_type_info()
            .build()
        )
        assert to_json([SuperHero("Robin")], options) == '[{"name":"Robin","sidekick":null,"power":""}]'

    def test_writer_errors_propagate(self):
        def broken(obj):
            raise RuntimeError("boom")

        options = WriteOptionsBuilder().with_custom_writer(Point, broken).build()
        with pytest.raises(RuntimeError, match="boom"):
            to_json(Point(1, 2), options)

    def test_temporary_containers_from_writers(self):
        # each write_value() argument is freed right after the call
        options = WriteOptionsBuilder().never_show_type_info().with_custom_writer(Point, PointAsTuple()).build()
        points = [Point(i, i) for i in range(200)]
        assert to_json(points, options) == json.dumps([[i, i] for i in range(200)], separators=(",", ":"))

    def test_temporary_maps_from_writers(self):
        options = WriteOptionsBuilder().with_custom_writer(Point, PointAsMap()).build()
        points = [Point(i, i) for i in range(200)]
        assert json.loads(to_json(points, options)) == [
            {"@type": "test_writer.Point", "x": i, "y": i} for i in range(200)
        ]

    def test_typed_writer_output_is_wrapped(self):
        options = WriteOptionsBuilder().with_custom_writer(Point, PointAsTuple()).build()
        assert to_json([Point(1, 2)], options) == (
            '[{"@type":"test_writer.Point","value":{"@type":"tuple","@items":[1,2]}}]'
        )


# ============================================================================
# Depth
# ============================================================================


class TestDepth:
    def test_long_chain_within_limit(self):
        assert json.loads(to_json(make_chain(50), NEVER))["value"] == 49

    def test_chain_deeper_than_recursion_limit(self):
        with pytest.raises(JsonIoError) as exc_info:
            to_json(make_chain(sys.getrecursionlimit() * 3))
        assert exc_info.value.kind is ErrorKind.UNSUPPORTED_TYPE
