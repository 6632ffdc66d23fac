import abc
import typing
from types import UnionType

import attr

from document_framework import types
from document_framework.exceptions import SchemaError, UnknownModel


def _is_generic(field_type: typing.Type) -> bool:
    return typing.get_origin(field_type) is not None


def _get_wrapped_type(wrapped_type: typing.Type) -> typing.Type:
    return next(arg for arg in typing.get_args(wrapped_type) if arg is not type(None))


def _is_field_nullable(field_type: typing.Type) -> bool:
    args = typing.get_args(field_type)
    return typing.get_origin(field_type) in (typing.Union, UnionType) and len(args) == 2 and type(None) in args


def _is_list(field_type: typing.Type) -> bool:
    return typing.get_origin(field_type) is list


def _is_model(field_type: typing.Type) -> bool:
    return isinstance(field_type, type) and hasattr(field_type, "__field_names__")


class FieldVisitor:
    def visit_primitive(self, field: "PrimitiveFieldNode") -> typing.Any:
        pass

    def visit_embedded(self, field: "EmbeddedFieldNode") -> typing.Any:
        pass

    def visit_reference(self, field: "ReferenceFieldNode") -> typing.Any:
        pass


@attr.s(auto_attribs=True)
class FieldNode(abc.ABC):
    name: str
    type: typing.Type
    optional: bool = False
    is_list: bool = False

    @abc.abstractmethod
    def accept(self, visitor: FieldVisitor) -> typing.Any:
        pass


@attr.s(auto_attribs=True)
class PrimitiveFieldNode(FieldNode):
    def accept(self, visitor: FieldVisitor) -> typing.Any:
        return visitor.visit_primitive(self)


@attr.s(auto_attribs=True)
class EmbeddedFieldNode(FieldNode):
    """Value owned by its parent: saved and deleted together with it."""

    def accept(self, visitor: FieldVisitor) -> typing.Any:
        return visitor.visit_embedded(self)


@attr.s(auto_attribs=True)
class ReferenceFieldNode(FieldNode):
    """Identity of another document, which has a lifetime of its own."""

    def accept(self, visitor: FieldVisitor) -> typing.Any:
        return visitor.visit_reference(self)


@attr.s(auto_attribs=True)
class ModelSchema:
    name: str
    model: typing.Type
    fields: typing.Dict[str, FieldNode] = attr.Factory(dict)

    def __iter__(self) -> typing.Iterator[FieldNode]:
        return iter(self.fields.values())

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def __getitem__(self, name: str) -> FieldNode:
        try:
            return self.fields[name]
        except KeyError:
            raise SchemaError(f"'{self.name}' has no field '{name}'") from None


def build(model: typing.Type, namespace: typing.Mapping[str, typing.Type]) -> ModelSchema:
    """Resolves the annotations of ``model`` into a schema.

    Forward references are looked up by name in ``namespace``, which holds every
    model bound together with ``model``. This is what allows models to reference
    each other in cycles.
    """

    try:
        hints = typing.get_type_hints(model, localns=dict(namespace))
    except NameError as e:
        raise UnknownModel(f"Cannot resolve a field type of '{model.__name__}' - {e}") from e

    def parse_node(name: str, annotation: typing.Any) -> FieldNode:
        field_type = annotation
        optional = False
        is_list = False

        if _is_generic(field_type) and _is_field_nullable(field_type):
            field_type = _get_wrapped_type(field_type)
            optional = True
        if _is_generic(field_type) and _is_list(field_type):
            field_type = _get_wrapped_type(field_type)
            is_list = True

        if _is_model(field_type):
            if namespace.get(field_type.__name__) is not field_type:
                raise UnknownModel(f"'{model.__name__}.{name}' refers to '{field_type.__name__}', which is not bound")
            node_cls = ReferenceFieldNode if field_type._is_document else EmbeddedFieldNode
            return node_cls(name, field_type, optional, is_list)

        if _is_generic(field_type):
            raise SchemaError(f"Unhandled Generic type - {annotation}")
        if not types.is_primitive(field_type):
            raise SchemaError(f"Unsupported type - {annotation}")

        return PrimitiveFieldNode(name, field_type, optional, is_list)

    fields = {name: parse_node(name, hints[name]) for name in model.__field_names__}
    return ModelSchema(model.__name__, model, fields)
