import abc
import enum
import inspect
import typing
import uuid

import attr

from document_framework import hooks, types
from document_framework.exceptions import (
    AlreadyDeleted,
    AlreadyExists,
    LayerMismatch,
    ModelNotBound,
    ReservedFieldName,
    SchemaError,
    ValidationError,
)
from document_framework.schema import FieldNode, FieldVisitor, ModelSchema
from document_framework.storages.base import Record, validate_id

if typing.TYPE_CHECKING:
    from document_framework.layer import Layer


class Presence(enum.Enum):
    UNKNOWN = "UNKNOWN"
    ABSENT = "ABSENT"
    PRESENT = "PRESENT"


@attr.s(auto_attribs=True, frozen=True)
class FieldValue:
    presence: Presence = Presence.UNKNOWN
    value: typing.Any = None

    @classmethod
    def present(cls, value: typing.Any) -> "FieldValue":
        return cls(Presence.PRESENT, value)


UNKNOWN = FieldValue()
ABSENT = FieldValue(Presence.ABSENT)


class DocumentState(enum.Enum):
    NEW = "NEW"
    SAVED = "SAVED"
    DELETED = "DELETED"


RESERVED_FIELD_NAMES = frozenset({"id"})


def generate_id() -> str:
    return str(uuid.uuid4())


def _is_class_var(annotation: typing.Any) -> bool:
    if isinstance(annotation, str):
        return annotation.startswith(("ClassVar", "typing.ClassVar"))
    return getattr(annotation, "__origin__", None) is typing.ClassVar


class FieldAccessor:
    def __init__(self, name: str) -> None:
        self.name = name

    def __get__(self, instance: typing.Optional["Model"], owner: typing.Type) -> typing.Any:
        if instance is None:
            return self
        return instance._read_field(self.name)

    def __set__(self, instance: "Model", value: typing.Any) -> None:
        instance._write_field(self.name, value)

    def __delete__(self, instance: "Model") -> None:
        instance._write_field(self.name, None)


class ModelMeta(abc.ABCMeta):
    def __new__(mcs, name: str, bases: tuple, namespace: dict, **kwargs: typing.Any):
        cls = super().__new__(mcs, name, bases, namespace, **kwargs)

        own_fields = []
        for field_name, annotation in inspect.get_annotations(cls).items():
            if _is_class_var(annotation):
                continue
            if field_name in RESERVED_FIELD_NAMES or field_name.startswith("_"):
                raise ReservedFieldName(f"'{name}.{field_name}' - field names must not be 'id' or start with '_'")
            own_fields.append(field_name)

        inherited = [
            field_name for base in reversed(cls.__mro__[1:]) for field_name in getattr(base, "__own_fields__", ())
        ]
        cls.__own_fields__ = tuple(own_fields)
        cls.__field_names__ = tuple(dict.fromkeys(inherited + own_fields))

        defaults = {}
        for base in reversed(cls.__mro__[1:]):
            defaults.update(getattr(base, "__own_defaults__", {}))
        own_defaults = {field_name: namespace[field_name] for field_name in own_fields if field_name in namespace}
        cls.__own_defaults__ = own_defaults
        cls.__field_defaults__ = {**defaults, **own_defaults}

        for field_name in own_fields:
            setattr(cls, field_name, FieldAccessor(field_name))

        return cls


class Model(metaclass=ModelMeta):
    """Schema-bound value with per-field presence tracking.

    A plain ``Model`` has no identity: embedded in another model it is stored inline
    and always written as a whole. Instances are created through the classes bound
    to a :class:`~document_framework.layer.Layer`, e.g. ``layer.TechnicalSpecs(color=True)``.
    """

    _layer: typing.ClassVar[typing.Any] = None
    _has_identity = False
    _is_document = False

    def __init__(self, **values: typing.Any) -> None:
        cls = type(self)
        cls._bound_layer()
        self._init_state(DocumentState.NEW)

        unexpected = set(values) - set(cls.__field_names__)
        if unexpected:
            raise TypeError(f"{cls.__name__}() got unexpected fields: {', '.join(sorted(unexpected))}")

        for name in cls.__field_names__:
            if name in values:
                setattr(self, name, values[name])
            elif name in cls.__field_defaults__:
                default = cls.__field_defaults__[name]
                setattr(self, name, list(default) if isinstance(default, list) else default)

    def _init_state(self, state: DocumentState) -> None:
        self._state = state
        self._fields: typing.Dict[str, FieldValue] = {name: UNKNOWN for name in type(self).__field_names__}
        self._dirty: typing.Set[str] = set()

    @classmethod
    def _bound_layer(cls) -> "Layer":
        if cls._layer is None:
            raise ModelNotBound(f"'{cls.__name__}' is not bound to a layer, use 'layer.{cls.__name__}' instead")
        return cls._layer

    @classmethod
    def _materialize(cls, id: typing.Optional[str] = None) -> "Model":
        instance = cls.__new__(cls)
        instance._init_state(DocumentState.SAVED)
        return instance

    @classmethod
    def register_hook(cls, event: str, fn: hooks.Hook) -> None:
        hooks.register(cls, event, fn)

    @property
    def _schema(self) -> ModelSchema:
        cls = type(self)
        return cls._bound_layer().registry.schema(cls.__name__)

    @property
    def state(self) -> DocumentState:
        return self._state

    @property
    def is_new(self) -> bool:
        return self._state is DocumentState.NEW

    @property
    def is_deleted(self) -> bool:
        return self._state is DocumentState.DELETED

    def field_presence(self, name: str) -> Presence:
        if name not in self._schema:
            raise SchemaError(f"'{type(self).__name__}' has no field '{name}'")
        return self._fields[name].presence

    def _get_field(self, name: str) -> FieldValue:
        return self._fields[name]

    def _set_field(self, name: str, field_value: FieldValue, dirty: bool = False) -> None:
        self._fields[name] = field_value
        if dirty:
            self._dirty.add(name)
        else:
            self._dirty.discard(name)

    def _read_field(self, name: str) -> typing.Any:
        field_value = self._fields[name]
        if field_value.presence is Presence.PRESENT:
            return field_value.value
        return [] if self._schema[name].is_list else None

    def _write_field(self, name: str, value: typing.Any) -> None:
        self._ensure_not_deleted()
        node = self._schema[name]
        if value is None:
            if not node.optional:
                raise ValidationError(f"'{type(self).__name__}.{name}' is not optional")
            self._set_field(name, ABSENT, dirty=True)
            return
        self._set_field(name, FieldValue.present(node.accept(_AssignmentVisitor(self, value))), dirty=True)

    def _ensure_not_deleted(self) -> None:
        if self._state is DocumentState.DELETED:
            raise AlreadyDeleted(f"{self!r} has been deleted")

    def _mark_saved(self) -> None:
        self._state = DocumentState.SAVED
        self._dirty.clear()

    def _mark_deleted(self) -> None:
        self._state = DocumentState.DELETED
        self._dirty.clear()

    def serialize(self) -> Record:
        """Snapshot of the known state: embedded values inline, references as stubs."""
        result = stub(self)
        for node in self._schema:
            field_value = self._fields[node.name]
            if field_value.presence is Presence.PRESENT:
                result[node.name] = node.accept(_SnapshotVisitor(field_value.value))
        return result

    def __repr__(self) -> str:
        values = [
            f"{name}={field_value.value!r}"
            for name, field_value in self._fields.items()
            if field_value.presence is Presence.PRESENT
        ]
        return f"{type(self).__name__}({', '.join(values)})"


class Entity(Model):
    """Model with an immutable string identity, unique per layer."""

    _has_identity = True

    def __init__(self, id: typing.Optional[str] = None, **values: typing.Any) -> None:
        if id is None:
            id = generate_id()
        validate_id(id)
        self._id = id
        super().__init__(**values)

        identity_map = type(self)._bound_layer().identity_map
        if identity_map.get(type(self).__name__, id) is not None:
            raise AlreadyExists(type(self).__name__, id)
        identity_map.register(self)

    @classmethod
    def _materialize(cls, id: typing.Optional[str] = None) -> "Entity":
        instance = super()._materialize()
        instance._id = id
        return instance

    @property
    def id(self) -> str:
        return self._id

    def __repr__(self) -> str:
        values = [f"id={self._id!r}"]
        values.extend(
            f"{name}={field_value.value!r}"
            for name, field_value in self._fields.items()
            if field_value.presence is Presence.PRESENT and not isinstance(field_value.value, (Model, list))
        )
        return f"{type(self).__name__}({', '.join(values)})"


class Subdocument(Entity):
    """Entity living inside the document that embeds it.

    It is saved through its owner and removed together with it; it cannot be
    fetched or saved on its own.
    """


def stub(instance: Model) -> Record:
    result = {"_type": type(instance).__name__}
    if instance._has_identity:
        result["_id"] = instance.id
    return result


def _elements(node: FieldNode, value: typing.Any) -> typing.List[typing.Any]:
    return list(value) if node.is_list else [value]


class _AssignmentVisitor(FieldVisitor):
    """Validates an assigned value and converts plain dicts into model instances."""

    def __init__(self, owner: Model, value: typing.Any) -> None:
        self._owner = owner
        self._value = value

    def _values(self, node: FieldNode) -> typing.List[typing.Any]:
        if node.is_list and not isinstance(self._value, (list, tuple)):
            raise ValidationError(f"'{type(self._owner).__name__}.{node.name}' expects a list")
        return _elements(node, self._value)

    def _result(self, node: FieldNode, values: typing.List[typing.Any]) -> typing.Any:
        return values if node.is_list else values[0]

    def visit_primitive(self, field: FieldNode) -> typing.Any:
        values = self._values(field)
        for value in values:
            if not types.is_instance_of(value, field.type):
                raise ValidationError(
                    f"'{type(self._owner).__name__}.{field.name}' expects {field.type.__name__}, "
                    f"got {type(value).__name__}"
                )
        return self._result(field, values)

    def visit_embedded(self, field: FieldNode) -> typing.Any:
        layer = type(self._owner)._bound_layer()
        model_cls = layer[field.type.__name__]
        instances = []
        for value in self._values(field):
            if isinstance(value, dict):
                value = model_cls(**value)
            elif not isinstance(value, field.type):
                raise ValidationError(
                    f"'{type(self._owner).__name__}.{field.name}' expects {field.type.__name__}, "
                    f"got {type(value).__name__}"
                )
            elif type(value)._layer is not layer:
                raise LayerMismatch(f"{value!r} belongs to another layer")
            instances.append(value)
        return self._result(field, instances)

    visit_reference = visit_embedded


class _SnapshotVisitor(FieldVisitor):
    def __init__(self, value: typing.Any) -> None:
        self._value = value

    def _map(self, field: FieldNode, fn: typing.Callable[[typing.Any], typing.Any]) -> typing.Any:
        values = [fn(value) for value in _elements(field, self._value)]
        return values if field.is_list else values[0]

    def visit_primitive(self, field: FieldNode) -> typing.Any:
        return self._map(field, types.to_storage)

    def visit_embedded(self, field: FieldNode) -> typing.Any:
        return self._map(field, lambda instance: instance.serialize())

    def visit_reference(self, field: FieldNode) -> typing.Any:
        return self._map(field, stub)
