"""
Profile tools owned by the chat agent.

These tools mutate the agent's :class:`~fincoach.core.state.SessionState` directly.  They have no
effect outside the session, so they never need a human decision.
"""

import json
from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from fincoach.core.state import (
    RiskTolerance,
    SessionState,
)
from fincoach.tools import (
    Tool,
    tool,
)


class EmptyArgs(BaseModel):
    """No arguments."""


class UpdateUserProfileArgs(BaseModel):
    """Fields the model may set on the user's profile; all optional."""

    age: Optional[int] = None
    profession: Optional[str] = None
    monthly_income: Optional[float] = Field(None, alias="monthlyIncome")
    financial_goals: Optional[List[str]] = Field(None, alias="financialGoals")
    risk_tolerance: Optional[RiskTolerance] = Field(None, alias="riskTolerance")

    model_config = {"populate_by_name": True}


class SetUserNameArgs(BaseModel):
    """The user's name."""

    name: str


def build_profile_tools(state: SessionState) -> List[Tool]:
    """Return the profile tools bound to *state*."""

    @tool("getUserInfo", "Get the user's name and profile information", EmptyArgs)
    async def get_user_info(_: EmptyArgs) -> str:
        profile = state.user_profile.model_dump(by_alias=True, exclude_none=True)
        return (
            f"User: {state.user_name or 'unknown'}\n"
            f"Profile: {json.dumps(profile, indent=2)}\n"
            f"Profile Complete: {str(state.is_profile_complete).lower()}"
        )

    @tool("updateUserProfile", "Update the user's financial profile information", UpdateUserProfileArgs)
    async def update_user_profile(args: UpdateUserProfileArgs) -> str:
        state.merge_profile(**args.model_dump())
        return f"Profile updated successfully! Profile complete: {str(state.is_profile_complete).lower()}"

    @tool("setUserName", "Set or update the user's name", SetUserNameArgs)
    async def set_user_name(args: SetUserNameArgs) -> str:
        state.user_name = args.name
        return (
            f"Hello {args.name}! I'm your personal financial coach from Investec. "
            "Let's work together to achieve your financial goals!"
        )

    return [get_user_info, update_user_profile, set_user_name]
