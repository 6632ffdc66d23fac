import typing
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

import pytest

from document_framework import Document, DocumentState, Layer, Model, Presence, Subdocument
from document_framework.exceptions import (
    AlreadyExists,
    InvalidIdentity,
    LayerMismatch,
    ModelNotBound,
    SchemaError,
    ValidationError,
)
from document_framework.storages import MemoryStore


class Genre(Enum):
    ACTION = "action"
    DRAMA = "drama"


class Movie(Document):
    title: str
    year: typing.Optional[int]
    rating: float = 0.0
    genre: typing.Optional[Genre]
    tags: typing.List[str] = []
    trailer: typing.Optional["Trailer"]
    technical_specs: typing.Optional["TechnicalSpecs"]
    director: typing.Optional["Director"]


class Trailer(Subdocument):
    url: str


class TechnicalSpecs(Model):
    color: bool
    aspect_ratio: str


class Director(Document):
    full_name: str


class Ticket(Document):
    code: UUID
    price: Decimal
    day: date
    printed_at: datetime


@pytest.fixture()
def layer() -> Layer:
    return Layer(Movie, Trailer, TechnicalSpecs, Director, Ticket, store=MemoryStore())


def test_unbound_models_cannot_be_instantiated():
    with pytest.raises(ModelNotBound):
        Movie(title="Inception")


def test_bound_classes_are_subclasses_of_the_models(layer: Layer):
    assert issubclass(layer.Movie, Movie)
    assert layer.Movie.__name__ == "Movie"
    assert layer["Movie"] is layer.Movie
    assert isinstance(layer.Movie(title="Inception"), Movie)


def test_fields_start_unknown_and_become_present(layer: Layer):
    movie = layer.Movie(title="Inception")

    assert movie.state is DocumentState.NEW
    assert movie.is_new
    assert movie.field_presence("title") is Presence.PRESENT
    assert movie.field_presence("year") is Presence.UNKNOWN
    assert movie.year is None
    assert movie.field_presence("rating") is Presence.PRESENT
    assert movie.rating == 0.0


def test_list_defaults_are_not_shared(layer: Layer):
    movie = layer.Movie(title="Inception")

    assert movie.tags == []
    movie.tags.append("dream")
    assert layer.Movie(title="Memento").tags == []


def test_assigning_none_unsets_optional_fields(layer: Layer):
    movie = layer.Movie(title="Inception", year=2010)

    movie.year = None
    assert movie.field_presence("year") is Presence.ABSENT
    assert movie.year is None

    del movie.genre
    assert movie.field_presence("genre") is Presence.ABSENT

    with pytest.raises(ValidationError, match="not optional"):
        movie.title = None


@pytest.mark.parametrize(
    "field_name, value",
    [
        ("title", 42),
        ("year", "2010"),
        ("year", True),
        ("rating", "high"),
        ("genre", "action"),
        ("tags", "dream"),
        ("tags", [1, 2]),
        ("trailer", "https://example.com"),
        ("director", 42),
    ],
)
def test_assigning_values_of_the_wrong_type_is_rejected(layer: Layer, field_name: str, value: typing.Any):
    movie = layer.Movie(title="Inception")

    with pytest.raises(ValidationError):
        setattr(movie, field_name, value)


def test_int_is_accepted_for_float_fields(layer: Layer):
    movie = layer.Movie(title="Inception", rating=8)

    assert movie.rating == 8


def test_dates_and_datetimes_are_not_interchangeable(layer: Layer):
    with pytest.raises(ValidationError):
        layer.Ticket(code=UUID(int=1), price=Decimal("9.50"), day=datetime(2010, 7, 16), printed_at=datetime.now())


def test_unexpected_fields_are_rejected(layer: Layer):
    with pytest.raises(TypeError, match="unexpected fields: budget"):
        layer.Movie(title="Inception", budget=160)


def test_dicts_become_instances_of_the_same_layer(layer: Layer):
    movie = layer.Movie(
        title="Inception",
        trailer={"url": "https://www.youtube.com/watch?v=YoHD9XEInc0"},
        technical_specs={"color": True, "aspect_ratio": "2.39:1"},
        director={"full_name": "Christopher Nolan"},
    )

    assert isinstance(movie.trailer, layer.Trailer)
    assert isinstance(movie.technical_specs, layer.TechnicalSpecs)
    assert isinstance(movie.director, layer.Director)
    assert movie.technical_specs.aspect_ratio == "2.39:1"


def test_replacing_a_subdocument_gives_it_a_new_identity(layer: Layer):
    movie = layer.Movie(title="Inception", trailer={"url": "https://example.com/1"})
    trailer_id = movie.trailer.id

    movie.trailer = {"url": "https://example.com/2"}

    assert isinstance(movie.trailer.id, str)
    assert movie.trailer.id != trailer_id


def test_instances_of_another_layer_are_rejected(layer: Layer):
    other_layer = layer.fork()
    movie = layer.Movie(title="Inception")

    with pytest.raises(LayerMismatch):
        movie.director = other_layer.Director(full_name="Christopher Nolan")


def test_ids_are_generated_unless_given(layer: Layer):
    generated = layer.Movie(title="Inception")
    given = layer.Movie(id="movie1", title="Memento")

    assert isinstance(generated.id, str) and generated.id
    assert given.id == "movie1"


@pytest.mark.parametrize("id", ["", 42])
def test_invalid_ids_are_rejected(layer: Layer, id: typing.Any):
    with pytest.raises(InvalidIdentity):
        layer.Movie(id=id, title="Inception")


def test_an_id_is_live_only_once_per_layer(layer: Layer):
    layer.Movie(id="movie1", title="Inception")

    with pytest.raises(AlreadyExists):
        layer.Movie(id="movie1", title="Inception")

    assert layer.fork().Movie(id="movie1", title="Inception").id == "movie1"


def test_unknown_field_presence_is_a_schema_error(layer: Layer):
    with pytest.raises(SchemaError):
        layer.Movie(title="Inception").field_presence("budget")


def test_serialize(layer: Layer):
    movie = layer.Movie(
        id="movie1",
        title="Inception",
        genre=Genre.ACTION,
        trailer={"id": "trailer1", "url": "https://example.com"},
        technical_specs={"color": True, "aspect_ratio": "2.39:1"},
        director={"id": "director1", "full_name": "Christopher Nolan"},
    )
    movie.year = None

    assert movie.serialize() == {
        "_type": "Movie",
        "_id": "movie1",
        "title": "Inception",
        "rating": 0.0,
        "genre": "action",
        "tags": [],
        "trailer": {"_type": "Trailer", "_id": "trailer1", "url": "https://example.com"},
        "technical_specs": {"_type": "TechnicalSpecs", "color": True, "aspect_ratio": "2.39:1"},
        "director": {"_type": "Director", "_id": "director1"},
    }


def test_serialize_converts_primitives(layer: Layer):
    ticket = layer.Ticket(
        id="ticket1",
        code=UUID(int=1),
        price=Decimal("9.50"),
        day=date(2010, 7, 16),
        printed_at=datetime(2010, 7, 16, 20, 30),
    )

    assert ticket.serialize() == {
        "_type": "Ticket",
        "_id": "ticket1",
        "code": "00000000-0000-0000-0000-000000000001",
        "price": "9.50",
        "day": "2010-07-16",
        "printed_at": "2010-07-16T20:30:00",
    }
