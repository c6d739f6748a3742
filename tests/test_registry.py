"""Tests for factorygen.registry — record bookkeeping, naming, rendering."""

from __future__ import annotations

import ast
import enum
from unittest.mock import patch

import pytest

from factorygen.registry import (
    DEFAULT_DISCRIMINATOR,
    FactoryBuilder,
    Specialisation,
    literal_key,
    origin_module,
    unique_name,
    validate_discriminator,
)


class Vehicle:
    pass


class Car(Vehicle):
    type_name = "car"


class Truck(Vehicle):
    type_name = "truck"


class Van(Vehicle):
    type_name = "car"


class Hovercraft(Vehicle):
    pass


class Boat(Vehicle):
    type_name = 7


def _spec(cls, source_file, export_name=None):
    return Specialisation(cls, str(source_file), export_name or cls.__name__)


@pytest.fixture
def builder(tmp_path):
    return FactoryBuilder(Vehicle, tmp_path / "out" / "vehicle_factory.py")


# ── bookkeeping ──────────────────────────────────────────────


def test_default_discriminator_is_type_name(builder):
    assert builder.discriminating_property == DEFAULT_DISCRIMINATOR == "type_name"


def test_add_keeps_insertion_order(builder, tmp_path):
    a, b = _spec(Truck, tmp_path / "b.py"), _spec(Car, tmp_path / "a.py")
    builder.add(a)
    builder.add(b)
    assert list(builder) == [a, b]
    assert len(builder) == 2
    assert a in builder


def test_membership_is_identity_not_equality(builder, tmp_path):
    builder.add(_spec(Car, tmp_path / "a.py"))
    assert _spec(Car, tmp_path / "a.py") not in builder


def test_invalidate_removes_only_that_file(builder, tmp_path):
    builder.add(_spec(Car, tmp_path / "a.py"))
    builder.add(_spec(Truck, tmp_path / "a.py"))
    kept = _spec(Van, tmp_path / "b.py")
    builder.add(kept)

    assert builder.invalidate(tmp_path / "a.py") is True
    assert list(builder) == [kept]
    assert builder.invalidate(tmp_path / "a.py") is False


def test_invalidate_normalizes_paths(builder, tmp_path):
    builder.add(_spec(Car, tmp_path / "a.py"))
    assert builder.invalidate(str(tmp_path / "x" / ".." / "a.py")) is True


def test_remove_existing_file_references_is_invalidate(builder, tmp_path):
    builder.add(_spec(Car, tmp_path / "a.py"))
    assert builder.remove_existing_file_references(tmp_path / "a.py") is True
    assert len(builder) == 0


def test_invalidate_then_readd_has_no_residue(builder, tmp_path):
    path = tmp_path / "a.py"
    builder.add(_spec(Car, path))
    builder.add(_spec(Truck, path))
    builder.invalidate(path)
    fresh = _spec(Van, path)
    builder.add(fresh)
    assert list(builder) == [fresh]


# ── naming ───────────────────────────────────────────────────


def test_unique_name_is_deterministic_and_distinct(tmp_path):
    a = _spec(Car, tmp_path / "a.py", "Car")
    assert unique_name(a) == unique_name(_spec(Car, tmp_path / "a.py", "Car"))
    assert unique_name(a) != unique_name(_spec(Car, tmp_path / "a.py", "Car2"))
    assert unique_name(a) != unique_name(_spec(Car, tmp_path / "b.py", "Car"))
    assert unique_name(a).startswith("cls_")
    assert len(unique_name(a)) == len("cls_") + 64


def test_unique_name_has_no_boundary_ambiguity():
    assert unique_name(Specialisation(Car, "/x/a", "bc")) != unique_name(
        Specialisation(Car, "/x/ab", "c")
    )


@pytest.mark.parametrize("prop", ["type-name", "class", "", "1abc"])
def test_validate_discriminator_rejects_non_identifiers(prop):
    with pytest.raises(ValueError):
        validate_discriminator(prop)


def test_literal_key_normalizes_unrepresentable_values():
    assert literal_key("car") == "car"
    assert literal_key(7) == 7
    assert literal_key(None) is None
    assert literal_key(["a"]) == "['a']"


def test_literal_key_unwraps_enum_members():
    assert type(literal_key(Kind.SEDAN)) is str
    assert literal_key(Kind.SEDAN) == "sedan"
    assert type(literal_key(Size.BIG)) is int
    assert literal_key(Size.BIG) == 3


def test_enum_discriminators_render_valid_module(tmp_path, capsys):
    builder = FactoryBuilder(Vehicle, tmp_path / "vehicle_factory.py")
    builder.add(_spec(Sedan, tmp_path / "s.py"))
    builder.add(_spec(Lorry, tmp_path / "l.py"))
    text = builder.render()

    ast.parse(text)
    assert "'sedan': cls_" in text
    assert "3: cls_" in text
    assert "Kind.SEDAN" not in text
    namespace: dict = {}
    exec(compile(text, "vehicle_factory.py", "exec"), namespace)
    assert type(namespace["VehicleFactory"].create(Kind.SEDAN)) is Sedan


class Kind(enum.StrEnum):
    SEDAN = "sedan"


class Size(enum.IntEnum):
    BIG = 3


class Sedan(Vehicle):
    type_name = Kind.SEDAN


class Lorry(Vehicle):
    type_name = Size.BIG


def test_origin_module_uses_dunder_module():
    assert origin_module(Car) == Car.__module__


def test_origin_module_for_main_uses_source_file(tmp_path):
    from factorygen.locations import SourceLocation

    script = tmp_path / "script.py"
    fake = type("Fake", (), {"__module__": "__main__"})
    assert origin_module(fake, lambda _h: SourceLocation(str(script), 1, 0)) == "script"


# ── rendering ────────────────────────────────────────────────


def test_render_produces_valid_python(builder, tmp_path):
    builder.add(_spec(Car, tmp_path / "a.py"))
    builder.add(_spec(Truck, tmp_path / "b.py"))
    text = builder.render()
    tree = ast.parse(text)
    names = {node.name for node in tree.body if isinstance(node, ast.ClassDef)}
    assert names == {"VehicleFactory", "VehicleFactoryCreateError"}


def test_render_layout(builder, tmp_path):
    builder.add(_spec(Car, tmp_path / "a.py"))
    text = builder.render()
    assert text.startswith("# ┌")
    assert "auto-generated by factorygen" in text
    assert "import typing\n" in text
    assert f"from {Vehicle.__module__} import Vehicle\n" in text
    assert f"from {Car.__module__} import Car as {unique_name(list(builder)[0])}" in text
    assert "TYPE_MAPPINGS = {\n    'car': cls_" in text
    assert "Specialisation: typing.TypeAlias = typing.Literal['car']" in text
    assert "class VehicleFactoryCreateError(LookupError):" in text
    assert "def create(type_name: Specialisation, *args: typing.Any, **kwargs: typing.Any) -> Vehicle:" in text
    assert "# arguments are forwarded unchecked" in text


def test_render_empty_registry(builder):
    text = builder.render()
    assert "TYPE_MAPPINGS = {}" in text
    assert "typing.Never" in text
    ast.parse(text)


def test_render_is_byte_identical_for_same_records(builder, tmp_path):
    builder.add(_spec(Car, tmp_path / "a.py"))
    builder.add(_spec(Truck, tmp_path / "b.py"))
    assert builder.render() == builder.render()


def test_render_header_lists_sources_relative_to_output(builder):
    builder.add(_spec(Car, __file__))
    builder.add(_spec(Truck, __file__))
    text = builder.render()
    header = text.split("import typing")[0]
    assert header.count("test_registry.py") == 1


def test_render_header_marks_unresolved_locations(tmp_path):
    builder = FactoryBuilder(Vehicle, tmp_path / "vehicle_factory.py", locator=lambda _h: None)
    builder.add(_spec(Car, tmp_path / "a.py"))
    text = builder.render()
    assert "a.py (location unresolved)" in text


def test_generated_factory_dispatches(builder, tmp_path):
    builder.add(_spec(Car, tmp_path / "a.py"))
    namespace: dict = {}
    exec(compile(builder.render(), "vehicle_factory.py", "exec"), namespace)

    car = namespace["VehicleFactory"].create("car")
    assert type(car) is Car
    with pytest.raises(namespace["VehicleFactoryCreateError"], match="'bus' is not a valid value"):
        namespace["VehicleFactory"].create("bus")


def test_generated_factory_forwards_arguments(tmp_path):
    builder = FactoryBuilder(Point, tmp_path / "point_factory.py", "kind")
    builder.add(_spec(Point3, tmp_path / "p.py"))
    namespace: dict = {}
    exec(compile(builder.render(), "point_factory.py", "exec"), namespace)
    point = namespace["PointFactory"].create("p3", 1, 2, z=3)
    assert (point.x, point.y, point.z) == (1, 2, 3)


class Point:
    pass


class Point3(Point):
    kind = "p3"

    def __init__(self, x, y, z=0):
        self.x, self.y, self.z = x, y, z


# ── data-quality diagnostics ─────────────────────────────────


def test_equal_values_of_different_types_share_one_key(builder, tmp_path, capsys):
    builder.add(_spec(Raft, tmp_path / "r.py"))
    builder.add(_spec(Canoe, tmp_path / "c.py"))
    text = builder.render()

    assert "Multiple classes use the same value" in capsys.readouterr().err
    namespace: dict = {}
    exec(compile(text, "vehicle_factory.py", "exec"), namespace)
    # The generated dict merges them exactly as the warning says
    assert len(namespace["TYPE_MAPPINGS"]) == 1
    assert namespace["VehicleFactory"].create(True) is not None
    assert type(namespace["VehicleFactory"].create(1)) is Canoe
    assert "typing.Literal[True, 1]" in text


class Raft(Vehicle):
    type_name = True


class Canoe(Vehicle):
    type_name = 1


def test_collision_warns_and_last_added_wins(builder, tmp_path, capsys):
    builder.add(_spec(Car, tmp_path / "a.py"))
    builder.add(_spec(Van, tmp_path / "b.py"))
    text = builder.render()

    err = capsys.readouterr().err
    assert "WARNING" in err
    assert "Multiple classes use the same value for type_name ('car')" in err
    mapping = next(
        node.value for node in ast.parse(text).body
        if isinstance(node, ast.Assign) and node.targets[0].id == "TYPE_MAPPINGS"
    )
    assert [k.value for k in mapping.keys] == ["car"]
    assert mapping.values[0].id == unique_name(list(builder)[1])


def test_collision_warning_names_every_source(tmp_path, capsys):
    builder = FactoryBuilder(Vehicle, tmp_path / "vehicle_factory.py", locator=lambda _h: None)
    builder.add(_spec(Car, tmp_path / "first.py"))
    builder.add(_spec(Van, tmp_path / "second.py"))
    builder.render()
    err = capsys.readouterr().err
    assert "first.py" in err
    assert "second.py" in err


def test_missing_discriminator_is_error_but_still_emitted(builder, tmp_path, capsys):
    builder.add(_spec(Hovercraft, tmp_path / "h.py"))
    text = builder.render()
    err = capsys.readouterr().err
    assert "ERROR" in err
    assert "Hovercraft is missing discriminating property type_name" in err
    assert "None: cls_" in text


def test_non_string_discriminator_is_error(builder, tmp_path, capsys):
    builder.add(_spec(Boat, tmp_path / "b.py"))
    text = builder.render()
    assert "discriminating property type_name is not a string" in capsys.readouterr().err
    assert "7: cls_" in text


# ── generate ─────────────────────────────────────────────────


def test_generate_writes_file_and_reports(builder, tmp_path, capsys):
    builder.add(_spec(Car, tmp_path / "a.py"))
    text = builder.generate("testing")
    assert (tmp_path / "out" / "vehicle_factory.py").read_text() == text
    assert "Generating Vehicle factory because testing" in capsys.readouterr().out

    builder.generate("again")
    assert "Regenerating Vehicle factory because again" in capsys.readouterr().out


def test_generate_is_deterministic_on_disk(builder, tmp_path):
    builder.add(_spec(Car, tmp_path / "a.py"))
    out = tmp_path / "out" / "vehicle_factory.py"
    builder.generate("one")
    first = out.read_bytes()
    builder.generate("two")
    assert out.read_bytes() == first


def test_generate_propagates_write_errors(builder):
    with patch("factorygen.registry.safe_write_text", side_effect=PermissionError("nope")):
        with pytest.raises(PermissionError):
            builder.generate("testing")
