"""
Tool registry for fincoach.

A :class:`Tool` bundles a name, a description, an input schema, an async executor and whether a
human must approve the call before it runs.  A :class:`ToolRegistry` is assembled once per turn
from the agent's local tools and whatever the remote tool source advertises.

Executors are called with one positional argument: an instance of the tool's ``input_model`` when
the tool declares one (the arguments are validated first), otherwise the raw argument dict.
"""

import logging
from dataclasses import (
    dataclass,
    field,
    replace,
)
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Type,
    TypedDict,
)

from pydantic import BaseModel

from fincoach.errors import (
    DuplicateToolName,
    UnknownTool,
)

logger = logging.getLogger(__name__)

ToolExecutor = Callable[[Any], Awaitable[Any]]

TOOLS_REQUIRING_CONFIRMATION: frozenset[str] = frozenset(
    {"getInvestmentRecommendations", "generateBudgetPlan"}
)
"""Tools the presentation layer must get explicit approval for before they run."""


class ToolSpec(TypedDict):
    """Description of a tool as handed to the model oracle."""

    name: str
    description: str
    input_schema: Dict[str, Any]


@dataclass(frozen=True)
class Tool:
    """A callable capability exposed to the model."""

    name: str
    description: str
    executor: ToolExecutor
    input_model: Optional[Type[BaseModel]] = None
    input_schema: Dict[str, Any] = field(default_factory=dict)
    requires_confirmation: bool = False
    source: str = "local"

    def __post_init__(self) -> None:
        if self.input_model is not None and not self.input_schema:
            object.__setattr__(self, "input_schema", self.input_model.model_json_schema())
        if not self.input_schema:
            object.__setattr__(self, "input_schema", {"type": "object", "properties": {}})

    def parse_arguments(self, arguments: Dict[str, Any]) -> Any:
        """Validate *arguments* against the input model (raises ``pydantic.ValidationError``)."""
        if self.input_model is None:
            return dict(arguments)
        return self.input_model.model_validate(arguments)

    def spec(self) -> ToolSpec:
        """Return the oracle-facing description of this tool."""
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}


def tool(
    name: str,
    description: str,
    input_model: Optional[Type[BaseModel]] = None,
    requires_confirmation: bool = False,
) -> Callable[[ToolExecutor], Tool]:
    """
    Turn an async function into a :class:`Tool`.

    Used like this:
        @tool("setUserName", "Set or update the user's name", SetUserNameArgs)
        async def set_user_name(args: SetUserNameArgs) -> str:
            ...

    The decorated name is bound to the resulting :class:`Tool`, not to the function.
    """

    def wrapper(fn: ToolExecutor) -> Tool:
        return Tool(
            name=name,
            description=description,
            executor=fn,
            input_model=input_model,
            requires_confirmation=requires_confirmation,
        )

    return wrapper


class ToolRegistry:
    """
    Name-to-tool mapping for one agent turn.

    Tools are never mutated after registration.  A tool whose name appears in the confirmation
    allow-list is stored with ``requires_confirmation=True`` whatever it declared itself.
    """

    def __init__(self, confirmation_required: Iterable[str] = TOOLS_REQUIRING_CONFIRMATION):
        self._tools: Dict[str, Tool] = {}
        self._confirmation_required: Set[str] = set(confirmation_required)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, new_tool: Tool) -> Tool:
        """
        Add *new_tool* to the registry.

        Raises
        ------
        DuplicateToolName
            If a tool with the same name is already registered.
        """
        if new_tool.name in self._tools:
            raise DuplicateToolName(new_tool.name)
        if new_tool.name in self._confirmation_required and not new_tool.requires_confirmation:
            new_tool = replace(new_tool, requires_confirmation=True)
        self._tools[new_tool.name] = new_tool
        logger.debug(
            "Registered tool '%s' (source=%s, confirm=%s)",
            new_tool.name,
            new_tool.source,
            new_tool.requires_confirmation,
        )
        return new_tool

    def merge(self, tools: Iterable[Tool]) -> List[Tool]:
        """Register *tools*, skipping (and logging) names that are already taken."""
        added: List[Tool] = []
        for candidate in tools:
            try:
                added.append(self.register(candidate))
            except DuplicateToolName:
                logger.warning(
                    "Skipping %s tool '%s': name already registered", candidate.source, candidate.name
                )
        return added

    def resolve(self, name: str) -> Tool:
        """Return the tool called *name* or raise :class:`UnknownTool`."""
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownTool(name) from None

    def list_confirmation_required(self) -> Set[str]:
        """Names the presentation layer must gate behind an explicit user decision."""
        flagged = {name for name, entry in self._tools.items() if entry.requires_confirmation}
        return flagged | self._confirmation_required

    def specs(self) -> List[ToolSpec]:
        """Oracle-facing descriptions of every registered tool."""
        return [entry.spec() for entry in self._tools.values()]
