import typing

import attr

from document_framework import schema
from document_framework.exceptions import SchemaError, UnknownModel
from document_framework.model import Model
from document_framework.schema import ModelSchema


@attr.s(auto_attribs=True)
class Registry:
    models: typing.Dict[str, typing.Type[Model]] = attr.Factory(dict)
    schemas: typing.Dict[str, ModelSchema] = attr.Factory(dict)

    @classmethod
    def build(cls, models: typing.Iterable[typing.Type[Model]]) -> "Registry":
        registry = cls()
        for model in models:
            if not (isinstance(model, type) and issubclass(model, Model)):
                raise SchemaError(f"{model!r} is not a model class")
            if model._layer is not None:
                raise SchemaError(f"'{model.__name__}' is already bound to a layer")
            if registry.models.setdefault(model.__name__, model) is not model:
                raise SchemaError(f"Two models are named '{model.__name__}'")

        for name, model in registry.models.items():
            registry.schemas[name] = schema.build(model, registry.models)
        return registry

    def schema(self, name: str) -> ModelSchema:
        try:
            return self.schemas[name]
        except KeyError:
            raise UnknownModel(f"No model named '{name}' is registered") from None
