"""Per-agent session state mutated by the local profile tools."""

from typing import (
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
    computed_field,
)

RiskTolerance = Literal["conservative", "moderate", "aggressive"]


class UserProfile(BaseModel):
    """Financial profile gathered during the conversation."""

    age: Optional[int] = None
    profession: Optional[str] = None
    monthly_income: Optional[float] = Field(None, alias="monthlyIncome")
    financial_goals: Optional[List[str]] = Field(None, alias="financialGoals")
    risk_tolerance: Optional[RiskTolerance] = Field(None, alias="riskTolerance")

    model_config = {"populate_by_name": True}


class SessionState(BaseModel):
    """
    Profile record owned by exactly one chat agent.

    Completeness is derived from the profile fields on every read and never stored on its own.
    """

    user_name: Optional[str] = Field(None, alias="userName")
    user_profile: UserProfile = Field(default_factory=UserProfile, alias="userProfile")

    model_config = {"populate_by_name": True}

    @computed_field(alias="isProfileComplete")  # type: ignore[misc]
    @property
    def is_profile_complete(self) -> bool:
        """Age, monthly income and at least one financial goal are required."""
        profile = self.user_profile
        return bool(profile.age and profile.monthly_income and profile.financial_goals)

    def merge_profile(self, **fields: object) -> UserProfile:
        """Overwrite profile fields with the truthy values in *fields*; others are kept."""
        updates = {key: value for key, value in fields.items() if value}
        self.user_profile = self.user_profile.model_copy(update=updates)
        return self.user_profile
