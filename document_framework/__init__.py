from document_framework.document import Document
from document_framework.exceptions import (
    AlreadyDeleted,
    AlreadyExists,
    DocumentFrameworkError,
    InvalidIdentity,
    InvalidValue,
    LayerMismatch,
    ModelNotBound,
    NotFound,
    ReservedFieldName,
    SchemaError,
    TypeMismatch,
    UnknownModel,
    ValidationError,
)
from document_framework.hooks import hook
from document_framework.layer import Layer
from document_framework.model import DocumentState, Entity, Model, Presence, Subdocument

__all__ = [
    "AlreadyDeleted",
    "AlreadyExists",
    "Document",
    "DocumentFrameworkError",
    "DocumentState",
    "Entity",
    "InvalidIdentity",
    "InvalidValue",
    "Layer",
    "LayerMismatch",
    "Model",
    "ModelNotBound",
    "NotFound",
    "Presence",
    "ReservedFieldName",
    "SchemaError",
    "Subdocument",
    "TypeMismatch",
    "UnknownModel",
    "ValidationError",
    "hook",
]
