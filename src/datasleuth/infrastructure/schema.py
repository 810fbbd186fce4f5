"""Output-schema adapters.

The engine only ever calls ``validate(value)`` on the output schema, once,
against the last result of a top-level run.  ``as_validator`` turns the
usual ways of describing a schema into that one-method interface.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import pydantic
from pydantic import BaseModel, TypeAdapter

from datasleuth.domain.exceptions import ValidationError


@runtime_checkable
class SchemaValidator(Protocol):
    def validate(self, value: Any) -> Any: ...


class PydanticValidator:
    """Validates with a pydantic model class or ``TypeAdapter``.

    Pydantic model instances and dataclasses are dumped to plain Python
    first, so a result that is already a model of another type still gets
    checked against this schema.
    """

    def __init__(self, schema: type[BaseModel] | TypeAdapter[Any]) -> None:
        self.schema = schema
        self._adapter = schema if isinstance(schema, TypeAdapter) else TypeAdapter(schema)

    def validate(self, value: Any) -> Any:
        if isinstance(value, BaseModel) and not isinstance(self.schema, TypeAdapter):
            if isinstance(value, self.schema):
                return value
            value = value.model_dump()
        try:
            return self._adapter.validate_python(value)
        except pydantic.ValidationError as exc:
            raise ValidationError(
                f"Result does not match the output schema: {exc.error_count()} error(s)",
                details={"errors": exc.errors(include_url=False)},
                suggestions=["Check that the final step produces the expected fields"],
            ) from exc


class CallableValidator:
    """Wraps ``fn(value) -> value``; any exception it raises is a validation failure."""

    def __init__(self, fn: Callable[[Any], Any]) -> None:
        self._fn = fn

    def validate(self, value: Any) -> Any:
        try:
            return self._fn(value)
        except ValidationError:
            raise
        except Exception as exc:
            raise ValidationError(f"Result failed validation: {exc}") from exc


def as_validator(schema: Any) -> SchemaValidator:
    """Adapt *schema* to the :class:`SchemaValidator` interface.

    Accepts a pydantic model class, a ``TypeAdapter``, any object with a
    ``validate`` method, or a plain callable.
    """
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return PydanticValidator(schema)
    if isinstance(schema, TypeAdapter):
        return PydanticValidator(schema)
    if isinstance(schema, SchemaValidator) and not isinstance(schema, type):
        return schema
    if callable(schema):
        return CallableValidator(schema)
    raise ValidationError(
        f"Cannot use {type(schema).__name__} as an output schema",
        suggestions=["Pass a pydantic model class, a TypeAdapter or a callable"],
    )
