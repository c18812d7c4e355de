"""Tool dispatch: validate arguments, run the handler, render one envelope.

Every outcome of a tool call, success or failure, comes back as a
ToolResponse. Nothing raised by a handler or a backend escapes dispatch(),
so one failing call never ends the protocol session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import pydantic

from taskmem.core.errors import TaskmemError, ValidationError
from taskmem.core.session import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """One entry of the tool catalogue."""
    name: str
    description: str
    params: type[pydantic.BaseModel]
    handler: Callable[[Session, Any], str]
    read_only: bool = False

    def input_schema(self) -> dict:
        return self.params.model_json_schema(by_alias=True)


@dataclass(frozen=True)
class ToolResponse:
    text: str
    is_error: bool = False

    @classmethod
    def error(cls, message: str) -> ToolResponse:
        return cls(text=f"Error: {message}", is_error=True)


def describe_validation_error(tool: str, exc: pydantic.ValidationError) -> str:
    """Collapse pydantic's error list into ``field: reason`` pairs."""
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "arguments"
        problems.append(f"{field}: {err['msg']}")
    return f"Invalid arguments for {tool}: " + "; ".join(problems)


def validate_arguments(spec: ToolSpec, arguments: dict | None) -> pydantic.BaseModel:
    try:
        return spec.params.model_validate(arguments or {})
    except pydantic.ValidationError as e:
        raise ValidationError(describe_validation_error(spec.name, e)) from e


class ToolDispatcher:
    """Routes named calls to handlers over one shared Session."""

    def __init__(self, session: Session, tools: list[ToolSpec]):
        self.session = session
        self._tools = {spec.name: spec for spec in tools}

    def tools(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise ValidationError(
                f"Unknown tool: {name!r}. Available: {', '.join(sorted(self._tools))}"
            )
        return spec

    def dispatch(self, name: str, arguments: dict | None = None) -> ToolResponse:
        try:
            spec = self.get(name)
            params = validate_arguments(spec, arguments)
            return ToolResponse(text=spec.handler(self.session, params))
        except TaskmemError as e:
            logger.info("Tool %s failed: %s: %s", name, type(e).__name__, e)
            return ToolResponse.error(str(e))
        except Exception as e:
            logger.exception("Tool %s raised an unexpected error", name)
            return ToolResponse.error(f"Internal error: {e}")
        finally:
            self._release()

    def _release(self) -> None:
        try:
            self.session.backend.release()
        except Exception:
            logger.warning("Backend release failed", exc_info=True)
