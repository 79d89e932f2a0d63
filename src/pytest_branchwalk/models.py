"""Base Pydantic models for tree elements.

This module defines the foundational model classes used by all tree
structures and runtime settings. Structural models reject unknown fields
so that serialized trees with typos fail loudly, while state models
validate assignments to keep in-place outcome updates well-typed.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Base immutable model for declarative tree elements.

    Design principles enforced by this model:
        - Immutability: elements cannot be modified after creation.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos in tree documents.
        - camelCase aliases: serialized documents use camelCase keys,
          Python code uses snake_case attributes.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra='forbid',
    )


class StateModel(BaseModel):
    """Base model for tree elements carrying mutable execution state.

    Steps and branches keep a stable identity during a run: their
    outcome fields are assigned in place and never replaced. Assignments
    are validated, so a runtime component cannot store an outcome of
    the wrong type.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        validate_assignment=True,
        extra='forbid',
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Design principles enforced by this model:
        - Immutability: resolved settings cannot be modified after creation.
          This guarantees consistent behavior during a run.
        - Tolerant schema handling: unknown or extra fields are ignored.
          This allows the surrounding environment to contain unrelated
          variables without breaking configuration resolution.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
