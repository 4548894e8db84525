"""
Write and read configuration for the jsonio library.

Options are immutable pydantic models. Build them with a builder, which
keeps a private mutable working copy until build() freezes it:

    >>> options = (
    ...     WriteOptionsBuilder()
    ...     .show_minimal_type_info()
    ...     .skip_null_fields()
    ...     .with_excluded_fields(Person, ["password"])
    ...     .build()
    ... )

A snapshot can be shared by any number of concurrent writes or reads. Its
collections are frozensets and read-only mappings, so two snapshots built
from different builder states never share mutable state.

The builders also accept a flat argument dictionary (from_map) for callers
that keep their configuration in files or environment variables.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Iterable, Mapping

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    model_validator,
)

from jsonio.converters import JsonClassReader, JsonClassWriter, as_reader, as_writer
from jsonio.errors import ErrorKind, JsonIoError
from jsonio.introspect import type_name
from jsonio.registry import TypeRegistry, default_registry

ISO_DATE_FORMAT = "%Y-%m-%d"


class ShowType(str, Enum):
    """When the writer attaches "@type"."""

    ALWAYS = "always"
    NEVER = "never"
    MINIMAL = "minimal"


class EnumMode(str, Enum):
    """How the writer renders enum members."""

    PRIMITIVE = "primitive"
    PUBLIC_FIELDS = "public_fields"
    ALL_FIELDS = "all_fields"


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


FrozenMap = Annotated[Mapping[Any, Any], AfterValidator(_freeze)]
FieldMap = Annotated[Mapping[type, frozenset[str]], AfterValidator(_freeze)]


def _fields_for(cls: type, table: Mapping[type, frozenset[str]]) -> frozenset[str]:
    """Union of the field sets registered for cls and its ancestors."""
    result: set[str] = set()
    for klass in cls.__mro__:
        names = table.get(klass)
        if names:
            result.update(names)
    return frozenset(result)


class _FieldFilter:
    """Field inclusion/exclusion shared by both option kinds."""

    def is_field_selected(self, cls: type, name: str) -> bool:
        """
        Whether a field takes part in writing or reading.

        A field is skipped when any class in cls's MRO excludes it, or when
        the MRO declares inclusion sets and none of them names it.
        """
        if name in _fields_for(cls, self.excluded_fields):
            return False
        included = _fields_for(cls, self.included_fields)
        return not included or name in included


def _invalid(message: str) -> JsonIoError:
    return JsonIoError(ErrorKind.INVALID_CONFIGURATION, message)


class _Options(_FieldFilter, BaseModel):
    """Frozen snapshot base. Invalid values raise INVALID_CONFIGURATION."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, validate_default=True)

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise _invalid("; ".join(error["msg"] for error in exc.errors())) from exc


# =============================================================================
# Write Options
# =============================================================================


class WriteOptions(_Options):
    """
    Immutable writer configuration.

    Attributes:
        show_type: "@type" policy (ALWAYS, NEVER, MINIMAL).
        pretty_print: Indent the output.
        skip_null_fields: Leave out object fields whose value is None.
        write_longs_as_strings: Write integers outside +-(2**53 - 1) as strings.
        force_map_keys_items: Write every mapping in the @keys/@items form.
        enum_mode: How enum members are rendered.
        short_meta_keys: Use @i, @r, @t, @k, @e instead of the long meta keys.
        date_format: strftime format for datetime, date and time values.
        included_fields: Per-class field names to write (others are skipped).
        excluded_fields: Per-class field names never written.
        custom_writers: Per-class writers layered over the built-ins.
        no_customization: Classes always written field by field.
        custom_type_names: Type name -> shorter name written to "@type".
        logical_primitives: Extra classes written as scalars.
    """

    show_type: ShowType = ShowType.MINIMAL
    pretty_print: bool = False
    skip_null_fields: bool = False
    write_longs_as_strings: bool = False
    force_map_keys_items: bool = False
    enum_mode: EnumMode = EnumMode.PRIMITIVE
    short_meta_keys: bool = False
    date_format: str | None = None
    included_fields: FieldMap = Field(default_factory=dict)
    excluded_fields: FieldMap = Field(default_factory=dict)
    custom_writers: FrozenMap = Field(default_factory=dict)
    no_customization: frozenset[type] = frozenset()
    custom_type_names: FrozenMap = Field(default_factory=dict)
    logical_primitives: frozenset[type] = frozenset()

    _registry: TypeRegistry = PrivateAttr()

    @model_validator(mode="after")
    def _check_type_names(self) -> WriteOptions:
        if self.show_type is ShowType.NEVER and self.custom_type_names:
            raise ValueError("custom type names have no effect when types are never written")
        return self

    def model_post_init(self, __context: Any) -> None:
        self._registry = default_registry().overlay(
            writers={cls: as_writer(writer) for cls, writer in self.custom_writers.items()},
            logical_primitives=self.logical_primitives,
            no_customization=self.no_customization,
        )

    @property
    def registry(self) -> TypeRegistry:
        return self._registry

    def type_name(self, cls: type) -> str:
        """The "@type" value for cls, after custom renaming."""
        name = type_name(cls)
        return self.custom_type_names.get(name, name)


# =============================================================================
# Read Options
# =============================================================================


class ReadOptions(_Options):
    """
    Immutable reader configuration.

    Attributes:
        return_as_maps: Return the resolved node tree instead of typed objects.
        type_name_map: "@type" value -> class (or type name) to instantiate.
        known_types: Type name -> class, consulted before importing by name.
        custom_readers: Per-class readers layered over the built-ins.
        no_customization: Classes always read field by field.
        included_fields: Per-class field names to read (others are skipped).
        excluded_fields: Per-class field names never read.
        date_format: strptime format for datetime, date and time values.
        logical_primitives: Extra classes read from scalars.
        fail_on_unknown_type: Raise on unknown "@type" names; when False the
            node is returned as a plain map instead.
    """

    return_as_maps: bool = False
    type_name_map: FrozenMap = Field(default_factory=dict)
    known_types: FrozenMap = Field(default_factory=dict)
    custom_readers: FrozenMap = Field(default_factory=dict)
    no_customization: frozenset[type] = frozenset()
    included_fields: FieldMap = Field(default_factory=dict)
    excluded_fields: FieldMap = Field(default_factory=dict)
    date_format: str | None = None
    logical_primitives: frozenset[type] = frozenset()
    fail_on_unknown_type: bool = True

    _registry: TypeRegistry = PrivateAttr()

    @model_validator(mode="after")
    def _check_type_name_map(self) -> ReadOptions:
        for alias, target in self.type_name_map.items():
            if not isinstance(alias, str) or not alias:
                raise ValueError(f"type name aliases must be non-empty strings, got {alias!r}")
            if not isinstance(target, (str, type)):
                raise ValueError(f"type name alias {alias!r} must map to a class or a type name")
        return self

    def model_post_init(self, __context: Any) -> None:
        self._registry = default_registry().overlay(
            readers={cls: as_reader(reader) for cls, reader in self.custom_readers.items()},
            logical_primitives=self.logical_primitives,
            no_customization=self.no_customization,
        )

    @property
    def registry(self) -> TypeRegistry:
        return self._registry


# =============================================================================
# Builders
# =============================================================================

# Keys understood by from_map()
SHORT_META_KEYS = "short_meta_keys"
TYPE = "type"
TYPE_NAME_MAP = "type_name_map"
PRETTY_PRINT = "pretty_print"
WRITE_LONGS_AS_STRINGS = "write_longs_as_strings"
SKIP_NULL_FIELDS = "skip_null_fields"
ENUM_PUBLIC_ONLY = "enum_public_only"
FORCE_MAP_FORMAT_ARRAY_KEYS_ITEMS = "force_map_format_array_keys_items"
CUSTOM_WRITER_MAP = "custom_writer_map"
CUSTOM_READER_MAP = "custom_reader_map"
NOT_CUSTOM_MAP = "not_custom_map"
FIELD_SPECIFIERS = "field_specifiers"
FIELD_NAME_BLACK_LIST = "field_name_black_list"
DATE_FORMAT = "date_format"
RETURN_AS_MAPS = "return_as_maps"
KNOWN_TYPES = "known_types"
FAIL_ON_UNKNOWN_TYPE = "fail_on_unknown_type"


def _is_true(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


class _Builder:
    """Shared working-copy handling for the option builders."""

    _options_class: type[BaseModel]

    def __init__(self):
        self._working: dict[str, Any] = {
            "included_fields": {},
            "excluded_fields": {},
            "no_customization": set(),
            "logical_primitives": set(),
        }

    def _add_fields(self, key: str, cls: type, names: Iterable[str]) -> None:
        if isinstance(names, str):
            names = [names]
        self._working[key].setdefault(cls, set()).update(names)

    def with_included_fields(self, cls: type, names: Iterable[str]):
        self._add_fields("included_fields", cls, names)
        return self

    def with_excluded_fields(self, cls: type, names: Iterable[str]):
        self._add_fields("excluded_fields", cls, names)
        return self

    def with_no_customization_for(self, *classes: type):
        self._working["no_customization"].update(classes)
        return self

    def with_logical_primitive(self, *classes: type):
        self._working["logical_primitives"].update(classes)
        return self

    def with_date_format(self, date_format: str):
        self._working["date_format"] = date_format
        return self

    def with_iso_date_format(self):
        return self.with_date_format(ISO_DATE_FORMAT)

    def with_iso_date_time_format(self):
        """
        Full ISO 8601 (pydantic's JSON form), keeping microseconds and UTC
        offsets. Clears any strftime format set earlier.
        """
        self._working.pop("date_format", None)
        return self

    def _snapshot(self) -> dict[str, Any]:
        working = {
            key: dict(value) if isinstance(value, dict) else value
            for key, value in self._working.items()
        }
        for key in ("included_fields", "excluded_fields"):
            working[key] = {cls: frozenset(names) for cls, names in working[key].items()}
        for key in ("no_customization", "logical_primitives"):
            working[key] = frozenset(working[key])
        return working

    def build(self):
        """Freeze the working copy into an options snapshot."""
        return self._options_class(**self._snapshot())


class WriteOptionsBuilder(_Builder):
    """Fluent builder for WriteOptions."""

    _options_class = WriteOptions

    def __init__(self):
        super().__init__()
        self._working.update(custom_writers={}, custom_type_names={})

    def with_default_optimizations(self) -> WriteOptionsBuilder:
        return self.with_iso_date_time_format().with_short_meta_keys().skip_null_fields()

    def skip_null_fields(self) -> WriteOptionsBuilder:
        self._working["skip_null_fields"] = True
        return self

    def with_pretty_print(self, enabled: bool = True) -> WriteOptionsBuilder:
        self._working["pretty_print"] = enabled
        return self

    def write_longs_as_strings(self) -> WriteOptionsBuilder:
        self._working["write_longs_as_strings"] = True
        return self

    def write_enums_as_primitives(self) -> WriteOptionsBuilder:
        self._working["enum_mode"] = EnumMode.PRIMITIVE
        return self

    def write_enum_public_fields(self) -> WriteOptionsBuilder:
        self._working["enum_mode"] = EnumMode.PUBLIC_FIELDS
        return self

    def write_enum_all_fields(self) -> WriteOptionsBuilder:
        self._working["enum_mode"] = EnumMode.ALL_FIELDS
        return self

    def force_map_output_as_keys_and_items(self, enabled: bool = True) -> WriteOptionsBuilder:
        self._working["force_map_keys_items"] = enabled
        return self

    def with_short_meta_keys(self, enabled: bool = True) -> WriteOptionsBuilder:
        self._working["short_meta_keys"] = enabled
        return self

    def never_show_type_info(self) -> WriteOptionsBuilder:
        self._working["show_type"] = ShowType.NEVER
        return self

    def always_show_type_info(self) -> WriteOptionsBuilder:
        self._working["show_type"] = ShowType.ALWAYS
        return self

    def show_minimal_type_info(self) -> WriteOptionsBuilder:
        self._working["show_type"] = ShowType.MINIMAL
        return self

    def with_custom_type_name(self, cls: type | str, alias: str) -> WriteOptionsBuilder:
        self._assert_types_written()
        name = cls if isinstance(cls, str) else type_name(cls)
        self._working["custom_type_names"][name] = alias
        return self

    def with_custom_type_names(self, names: Mapping[type | str, str]) -> WriteOptionsBuilder:
        for cls, alias in names.items():
            self.with_custom_type_name(cls, alias)
        return self

    def with_custom_writer(self, cls: type, writer: JsonClassWriter | Any) -> WriteOptionsBuilder:
        self._working["custom_writers"][cls] = as_writer(writer)
        return self

    def with_custom_writers(self, writers: Mapping[type, JsonClassWriter | Any]) -> WriteOptionsBuilder:
        for cls, writer in writers.items():
            self.with_custom_writer(cls, writer)
        return self

    def _assert_types_written(self) -> None:
        if self._working.get("show_type") is ShowType.NEVER:
            raise _invalid("There is no need to set custom type names when types are never written")

    @classmethod
    def from_map(cls, args: Mapping[str, Any]) -> WriteOptionsBuilder:
        """
        Build from a flat argument dictionary.

        Recognized keys: short_meta_keys, type (True = always, False = never),
        type_name_map, pretty_print, write_longs_as_strings, skip_null_fields,
        enum_public_only, force_map_format_array_keys_items, custom_writer_map,
        not_custom_map, field_specifiers, field_name_black_list, date_format.
        """
        builder = cls()

        if _is_true(args.get(SHORT_META_KEYS)):
            builder.with_short_meta_keys()

        show = args.get(TYPE)
        if _is_true(show):
            builder.always_show_type_info()
        elif show is False or (isinstance(show, str) and show.strip().lower() == "false"):
            builder.never_show_type_info()

        if args.get(TYPE_NAME_MAP):
            builder.with_custom_type_names(args[TYPE_NAME_MAP])

        if _is_true(args.get(PRETTY_PRINT)):
            builder.with_pretty_print()

        if _is_true(args.get(WRITE_LONGS_AS_STRINGS)):
            builder.write_longs_as_strings()

        if _is_true(args.get(SKIP_NULL_FIELDS)):
            builder.skip_null_fields()

        if _is_true(args.get(ENUM_PUBLIC_ONLY)):
            builder.write_enum_public_fields()

        if _is_true(args.get(FORCE_MAP_FORMAT_ARRAY_KEYS_ITEMS)):
            builder.force_map_output_as_keys_and_items()

        if args.get(CUSTOM_WRITER_MAP):
            builder.with_custom_writers(args[CUSTOM_WRITER_MAP])

        if args.get(NOT_CUSTOM_MAP):
            builder.with_no_customization_for(*args[NOT_CUSTOM_MAP])

        for klass, names in (args.get(FIELD_SPECIFIERS) or {}).items():
            builder.with_included_fields(klass, names)

        for klass, names in (args.get(FIELD_NAME_BLACK_LIST) or {}).items():
            builder.with_excluded_fields(klass, names)

        if args.get(DATE_FORMAT):
            builder.with_date_format(args[DATE_FORMAT])

        return builder

    def build(self) -> WriteOptions:
        return super().build()


class ReadOptionsBuilder(_Builder):
    """Fluent builder for ReadOptions."""

    _options_class = ReadOptions

    def __init__(self):
        super().__init__()
        self._working.update(custom_readers={}, type_name_map={}, known_types={})

    def return_as_maps(self, enabled: bool = True) -> ReadOptionsBuilder:
        self._working["return_as_maps"] = enabled
        return self

    def fail_on_unknown_type(self, enabled: bool = True) -> ReadOptionsBuilder:
        self._working["fail_on_unknown_type"] = enabled
        return self

    def with_type_alias(self, alias: str, cls: type | str) -> ReadOptionsBuilder:
        """Read "@type": alias as cls. The inverse of a custom write name."""
        self._working["type_name_map"][alias] = cls
        return self

    def with_type_aliases(self, aliases: Mapping[str, type | str]) -> ReadOptionsBuilder:
        for alias, cls in aliases.items():
            self.with_type_alias(alias, cls)
        return self

    def with_known_types(self, *classes: type) -> ReadOptionsBuilder:
        """Make classes locatable by name without importing (local classes...)."""
        for klass in classes:
            self._working["known_types"][type_name(klass)] = klass
        return self

    def with_custom_reader(self, cls: type, reader: JsonClassReader | Any) -> ReadOptionsBuilder:
        self._working["custom_readers"][cls] = as_reader(reader)
        return self

    def with_custom_readers(self, readers: Mapping[type, JsonClassReader | Any]) -> ReadOptionsBuilder:
        for cls, reader in readers.items():
            self.with_custom_reader(cls, reader)
        return self

    @classmethod
    def from_map(cls, args: Mapping[str, Any]) -> ReadOptionsBuilder:
        """
        Build from a flat argument dictionary.

        Recognized keys: return_as_maps, type_name_map, known_types,
        custom_reader_map, not_custom_map, field_specifiers,
        field_name_black_list, date_format, fail_on_unknown_type.
        """
        builder = cls()

        if _is_true(args.get(RETURN_AS_MAPS)):
            builder.return_as_maps()

        if args.get(TYPE_NAME_MAP):
            builder.with_type_aliases(args[TYPE_NAME_MAP])

        if args.get(KNOWN_TYPES):
            builder.with_known_types(*args[KNOWN_TYPES])

        if args.get(CUSTOM_READER_MAP):
            builder.with_custom_readers(args[CUSTOM_READER_MAP])

        if args.get(NOT_CUSTOM_MAP):
            builder.with_no_customization_for(*args[NOT_CUSTOM_MAP])

        for klass, names in (args.get(FIELD_SPECIFIERS) or {}).items():
            builder.with_included_fields(klass, names)

        for klass, names in (args.get(FIELD_NAME_BLACK_LIST) or {}).items():
            builder.with_excluded_fields(klass, names)

        if args.get(DATE_FORMAT):
            builder.with_date_format(args[DATE_FORMAT])

        if FAIL_ON_UNKNOWN_TYPE in args:
            builder.fail_on_unknown_type(_is_true(args[FAIL_ON_UNKNOWN_TYPE]))

        return builder

    def build(self) -> ReadOptions:
        return super().build()
