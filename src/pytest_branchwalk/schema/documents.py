"""Serialized tree documents.

A tree document is a YAML mapping describing an already-built tree: the
ordinary branches, optional Before Everything and After Everything hook
branches, and initial persistent variables. Keys use camelCase, as
produced by the tree builder.

Example:

    persistent:
      baseUrl: https://example.com
    branches:
      - steps:
          - text: "{user}='alice'"
            varsBeingSet:
              - name: user
                value: "'alice'"
          - text: Greet the user
            codeBlock: |
              return 'Hello, ' + g('user')
"""

from typing import TYPE_CHECKING, Any
from warnings import warn

from pydantic import Field, ValidationError
from yaml import safe_load
from yaml.error import MarkedYAMLError

from pytest_branchwalk.errors import DSLSchemaError, TreeWarning
from pytest_branchwalk.models import SchemaModel

from .branches import Branch

if TYPE_CHECKING:
    from io import TextIOBase


class TreeDocument(SchemaModel):
    """Root model of a serialized tree."""

    branches: list[Branch] = Field(
        default_factory=list,
        title='Branches',
        description='Ordinary branches of the tree, in scheduling order.',
    )

    before_everything: list[Branch] = Field(
        default_factory=list,
        title='Before Everything hooks',
        description='Hook branches executed before any ordinary branch.',
    )

    after_everything: list[Branch] = Field(
        default_factory=list,
        title='After Everything hooks',
        description='Hook branches executed once every ordinary branch is finished.',
    )

    persistent: dict[str, Any] = Field(
        default_factory=dict,
        title='Persistent variables',
        description='Initial values of the variables kept for the whole run.',
    )


def load_document(content: 'str | TextIOBase', *,
                  filename: str | None = None) -> TreeDocument:
    """Parse and validate a tree document.

    Args:
        content: YAML text or a readable text stream.
        filename: Optional source name used in error messages.
            Defaults to the stream name when available.

    Returns:
        The validated tree document.

    Raises:
        DSLSchemaError: If the content is not valid YAML or does not
            match the tree document schema.
    """
    if filename is None:
        filename = getattr(content, 'name', None)

    try:
        data = safe_load(content)
    except MarkedYAMLError as error:
        raise DSLSchemaError.from_yaml_error(error) from error

    if data is None:
        data = {}

    try:
        document = TreeDocument.model_validate(data)
    except ValidationError as error:
        raise DSLSchemaError.from_pydantic_error(
            error,
            data=data,
            filename=filename,
        ) from error

    if not document.branches:
        warn(
            f'Tree document {filename or '<unicode string>'!r} contains no branches',
            category=TreeWarning,
            stacklevel=2,
        )

    return document
