"""Tools agents may call.

A tool is a named function with a pydantic input schema. The schema is
rendered into an OpenAI function declaration and used to validate the
arguments the model produces.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError

from agent_automation.errors import ToolExecutionError

logger = logging.getLogger(__name__)

ToolFunction = Callable[[BaseModel], Any]


@dataclass(frozen=True, slots=True)
class Tool:
    name: str
    description: str
    input_schema: type[BaseModel]
    fn: ToolFunction = field(repr=False)

    def to_openai_schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema.model_json_schema(),
            },
        }

    def invoke(self, arguments: dict[str, Any]) -> Any:
        """Validate `arguments` and call the tool.

        Returns a JSON-serialisable value: pydantic models are dumped to dicts.

        Raises:
            ToolExecutionError: On invalid arguments or when the tool raises.
        """
        try:
            parsed = self.input_schema.model_validate(arguments)
        except ValidationError as e:
            raise ToolExecutionError(self.name, f"invalid arguments: {e}") from e

        try:
            result = self.fn(parsed)
        except Exception as e:
            logger.warning("Tool raised", extra={"tool": self.name, "error": str(e)})
            raise ToolExecutionError(self.name, str(e)) from e

        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        return result


def tool(
    *,
    name: str | None = None,
    description: str | None = None,
    input_schema: type[BaseModel] | None = None,
) -> Callable[[ToolFunction], Tool]:
    """Build a :class:`Tool` from a function taking one pydantic model.

    The input schema defaults to the annotation of the function's only
    parameter and the description to its docstring.
    """

    def decorator(fn: ToolFunction) -> Tool:
        schema = input_schema or _schema_from_signature(fn)
        return Tool(
            name=name or fn.__name__,
            description=description or inspect.getdoc(fn) or "",
            input_schema=schema,
            fn=fn,
        )

    return decorator


def _schema_from_signature(fn: Callable[..., Any]) -> type[BaseModel]:
    params = list(inspect.signature(fn, eval_str=True).parameters.values())
    if len(params) != 1:
        raise TypeError(f"Tool function {fn.__name__} must take exactly one argument")
    annotation = params[0].annotation
    if not (inspect.isclass(annotation) and issubclass(annotation, BaseModel)):
        raise TypeError(
            f"Tool function {fn.__name__} must annotate its argument with a pydantic model"
        )
    return annotation


def dump_tool_result(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)
