import enum
import typing
import uuid
from datetime import date, datetime
from decimal import Decimal
from functools import singledispatch


PRIMITIVE_TYPES: typing.Tuple[typing.Type, ...] = (str, int, float, bool, uuid.UUID, datetime, date, Decimal)


def is_primitive(field_type: typing.Type) -> bool:
    try:
        return issubclass(field_type, PRIMITIVE_TYPES) or issubclass(field_type, enum.Enum)
    except TypeError:
        return False


def is_instance_of(value: typing.Any, field_type: typing.Type) -> bool:
    if field_type is float:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if field_type is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if field_type is date:
        # datetime is a date subclass, but it would not survive the round trip through isoformat
        return isinstance(value, date) and not isinstance(value, datetime)
    return isinstance(value, field_type)


@singledispatch
def to_storage(argument: typing.Any) -> typing.Any:
    return argument


@to_storage.register(uuid.UUID)
def _(argument: uuid.UUID) -> str:
    return str(argument)


@to_storage.register(enum.Enum)
def _(argument: enum.Enum) -> typing.Any:
    return argument.value


@to_storage.register(date)
def _(argument: date) -> str:
    return argument.isoformat()


@to_storage.register(Decimal)
def _(argument: Decimal) -> str:
    return str(argument)


mapping: typing.Dict[typing.Type, typing.Callable[[typing.Any], typing.Any]] = {
    uuid.UUID: uuid.UUID,
    datetime: datetime.fromisoformat,
    date: date.fromisoformat,
    Decimal: Decimal,
    float: float,
}


def from_storage(argument: typing.Any, field_type: typing.Type) -> typing.Any:
    if issubclass(field_type, enum.Enum):
        return field_type(argument)

    try:
        return mapping[field_type](argument)
    except KeyError:
        return argument
