"""
MCP tools: declarations, argument checks and dispatch to the user store.

Every call returns a ``CallToolResult`` with a single text block. Per-request
failures never escape as exceptions; they come back with ``isError`` set.
"""
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from mcp.types import CallToolResult, TextContent, Tool

from .context import ServerContext
from .errors import MCPMongoError, UnknownToolError, ValidationError
from .store import DEFAULT_LIST_LIMIT, records_to_json


class ToolName(str, Enum):
    CREATE_USER = "create-user"
    GET_USER = "get-user"
    LIST_USERS = "list-users"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str
    description: str
    required: bool = True


@dataclass(frozen=True)
class ToolSpec:
    description: str
    fields: Tuple[FieldSpec, ...]

    def input_schema(self) -> Dict[str, Any]:
        """JSON Schema used by the MCP layer to validate arguments."""
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {
                f.name: {"type": f.kind, "description": f.description} for f in self.fields
            },
        }
        required = [f.name for f in self.fields if f.required]
        if required:
            schema["required"] = required
        return schema


TOOL_SPECS: Dict[ToolName, ToolSpec] = {
    ToolName.CREATE_USER: ToolSpec(
        description="Create a new user in the database",
        fields=(
            FieldSpec("name", "string", "User's full name"),
            FieldSpec("email", "string", "User's email address"),
            FieldSpec("age", "number", "User's age"),
        ),
    ),
    ToolName.GET_USER: ToolSpec(
        description="Retrieve a user by email address",
        fields=(FieldSpec("email", "string", "User's email address"),),
    ),
    ToolName.LIST_USERS: ToolSpec(
        description="List all users in the database",
        fields=(
            FieldSpec(
                "limit",
                "number",
                f"Maximum number of users to return (default: {DEFAULT_LIST_LIMIT})",
                required=False,
            ),
        ),
    ),
}


def tool_definitions() -> List[Tool]:
    """Get all tool definitions for MCP registration."""
    return [
        Tool(name=name.value, description=spec.description, inputSchema=spec.input_schema())
        for name, spec in TOOL_SPECS.items()
    ]


_KIND_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, Real) and not isinstance(v, bool),
}


def validate_arguments(tool: ToolName, arguments: Dict[str, Any]) -> None:
    """Check required fields are present and declared fields have the right kind."""
    for field in TOOL_SPECS[tool].fields:
        value = arguments.get(field.name)
        if value is None:
            if field.required:
                raise ValidationError(f"Missing required argument: {field.name}")
            continue
        if not _KIND_CHECKS[field.kind](value):
            raise ValidationError(f"Argument '{field.name}' must be a {field.kind}")


def text_result(text: str, is_error: bool = False) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)


def error_result(message: str) -> CallToolResult:
    return text_result(f"Error: {message}", is_error=True)


def _as_limit(value: Optional[Real]) -> int:
    if value is None:
        return DEFAULT_LIST_LIMIT
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"limit must be a whole number, got {value}")
        return int(value)
    return value


class ToolDispatcher:
    """Routes tool calls to the user store."""

    def __init__(self, context: ServerContext):
        self.context = context

    def list_tools(self) -> List[Tool]:
        return tool_definitions()

    async def dispatch(self, name: str, arguments: Optional[Dict[str, Any]]) -> CallToolResult:
        """Run a tool and wrap the outcome in a response envelope."""
        if self.context.shutting_down:
            logger.warning(f"Rejecting {name}: server is shutting down")
            return text_result("Server is shutting down, cannot process request", is_error=True)

        arguments = arguments or {}
        logger.debug(f"Calling tool {name} with {arguments}")
        try:
            with self.context.request():
                return await self._call(name, arguments)
        except MCPMongoError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return error_result(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in tool {name}: {e}")
            return error_result(str(e))

    async def _call(self, name: str, arguments: Dict[str, Any]) -> CallToolResult:
        try:
            tool = ToolName(name)
        except ValueError:
            raise UnknownToolError(name)

        validate_arguments(tool, arguments)
        users = self.context.connection.users

        if tool is ToolName.CREATE_USER:
            record = await users.insert(arguments["name"], arguments["email"], arguments["age"])
            return text_result(f"User created successfully!\n\n{record.to_json()}")

        elif tool is ToolName.GET_USER:
            email = arguments["email"]
            record = await users.find_by_email(email)
            if record is None:
                return text_result(f'User with email "{email}" not found.')
            return text_result(f"User found:\n\n{record.to_json()}")

        elif tool is ToolName.LIST_USERS:
            records = await users.find_all(_as_limit(arguments.get("limit")))
            return text_result(f"Found {len(records)} users:\n\n{records_to_json(records)}")

        else:
            raise UnknownToolError(name)
