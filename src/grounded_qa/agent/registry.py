"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from grounded_qa.errors import ToolArgumentError, UnknownToolError


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(min_length=1)
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], Any]
    tags: list[str] = Field(default_factory=list)

    def parameters(self) -> dict[str, dict[str, Any]]:
        """Describe arguments as `name -> {type, description, required}`."""

        schema = self.args_schema.model_json_schema()
        required = set(schema.get("required", []))
        described: dict[str, dict[str, Any]] = {}
        for name, prop in schema.get("properties", {}).items():
            described[name] = {
                "type": _json_type(prop),
                "description": prop.get("description", ""),
                "required": name in required,
            }
        return described

    def validate_arguments(self, payload: dict[str, Any]) -> BaseModel:
        try:
            return self.args_schema.model_validate(payload)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
                for error in exc.errors()
            )
            raise ToolArgumentError(
                f"Invalid arguments for tool '{self.name}': {problems}"
            ) from exc

    def invoke(self, payload: dict[str, Any]) -> str:
        return str(self.handler(self.validate_arguments(payload)))

    def as_langchain_tool(self) -> StructuredTool:
        def _callable(**kwargs: Any) -> str:
            return self.invoke(kwargs)

        return StructuredTool.from_function(
            name=self.name,
            description=self.description,
            args_schema=self.args_schema,
            func=_callable,
        )


def _json_type(prop: dict[str, Any]) -> str:
    # Optional fields render as anyOf [{type: X}, {type: null}].
    for option in prop.get("anyOf", [prop]):
        if option.get("type", "null") != "null":
            return option["type"]
    return "string"


class ToolRegistry:
    """Stores tool specs by name; resolution and execution go through it."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def resolve(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        return spec

    def schemas(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def execute(self, name: str, payload: dict[str, Any]) -> str:
        return self.resolve(name).invoke(payload)
