"""
Financial coaching tools served to the chat agent over MCP.

Two of them answer from fixed demo data (``COACHING_MOCK_DATA``); the other three ask the model
oracle for a short piece of advice.  ``generateBudgetPlan`` and ``getInvestmentRecommendations``
are the tools the chat client gates behind a user decision.
"""

import json
import logging
import math
from typing import (
    Callable,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from fincoach.agent.oracle import ModelOracle
from fincoach.core.schema import Message
from fincoach.core.state import RiskTolerance
from fincoach.tools import (
    Tool,
    tool,
)

logger = logging.getLogger(__name__)

OracleProvider = Callable[[], ModelOracle]

GoalType = Literal["emergency_fund", "house_deposit", "retirement", "vacation", "debt_payoff", "other"]

BUDGET_SYSTEM = (
    "You are an expert financial advisor specializing in creating personalized budget plans for young "
    "professionals in South Africa. Provide practical, actionable advice."
)
GOALS_SYSTEM = (
    "You are a motivational financial coach. Provide encouraging and practical advice for reaching "
    "financial goals."
)
TIPS_SYSTEM = (
    "You are a financial wellness coach for young South African professionals. Provide practical, "
    "culturally relevant financial tips."
)

# Portfolio split per risk profile: SA equity, global equity, bonds, cash.
PORTFOLIOS = {
    "aggressive": ("40%", "30%", "20%", "10%", "12-15%"),
    "moderate": ("30%", "25%", "30%", "15%", "8-12%"),
    "conservative": ("20%", "15%", "45%", "20%", "6-9%"),
}


def _rand(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------
class Expense(BaseModel):
    category: str
    amount: float
    description: Optional[str] = None


class SpendingArgs(BaseModel):
    monthly_income: Optional[float] = Field(None, alias="monthlyIncome")
    expenses: Optional[List[Expense]] = None

    model_config = {"populate_by_name": True}


class BudgetPlanArgs(BaseModel):
    monthly_income: float = Field(alias="monthlyIncome")
    financial_goals: List[str] = Field(alias="financialGoals")
    current_age: Optional[int] = Field(None, alias="currentAge")
    retirement_age: Optional[int] = Field(None, alias="retirementAge")

    model_config = {"populate_by_name": True}


class InvestmentArgs(BaseModel):
    risk_tolerance: RiskTolerance = Field(alias="riskTolerance")
    investment_amount: float = Field(alias="investmentAmount")
    time_horizon: float = Field(alias="timeHorizon", description="Years")
    investment_goals: List[str] = Field(alias="investmentGoals")

    model_config = {"populate_by_name": True}


class GoalArgs(BaseModel):
    goal_type: GoalType = Field(alias="goalType")
    target_amount: float = Field(alias="targetAmount", gt=0)
    current_amount: float = Field(alias="currentAmount")
    monthly_contribution: float = Field(alias="monthlyContribution", gt=0)

    model_config = {"populate_by_name": True}


class TipsProfile(BaseModel):
    age: int
    profession: Optional[str] = None
    monthly_income: float = Field(alias="monthlyIncome")
    main_financial_challenges: List[str] = Field(alias="mainFinancialChallenges")

    model_config = {"populate_by_name": True}


class TipsArgs(BaseModel):
    user_profile: TipsProfile = Field(alias="userProfile")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
def build_coaching_tools(oracle: OracleProvider, mock_data: bool = True) -> List[Tool]:
    """
    Return the coaching tools.

    Parameters
    ----------
    oracle:
        Called on each advice request; lets the server load the provider lazily.
    mock_data:
        Answer the data tools from demo figures instead of a placeholder notice.
    """

    async def advise(system: str, prompt: str) -> str:
        answer = await oracle().complete(system, [Message.user(prompt)], [])
        return answer.text

    @tool("analyzeSpendingPatterns", "Analyze user's spending patterns and provide insights", SpendingArgs)
    async def analyze_spending_patterns(args: SpendingArgs) -> str:
        if not mock_data:
            return "Spending analysis would connect to real banking data here"
        income = args.monthly_income
        analysis = {
            "totalSpending": 15000,
            "topCategories": ["Groceries: R3,500", "Entertainment: R2,800", "Transport: R2,200"],
            "savingsRate": f"{(income - 15000) / income * 100:.1f}" if income else "25.0",
            "recommendations": [
                "Consider reducing entertainment spending by 15%",
                "Look into bulk buying for groceries to save 10%",
                "Consider carpooling or public transport to reduce transport costs",
            ],
        }
        return json.dumps(analysis, indent=2)

    @tool("generateBudgetPlan", "Create a personalized budget plan based on income and goals", BudgetPlanArgs)
    async def generate_budget_plan(args: BudgetPlanArgs) -> str:
        age = f"They are {args.current_age} years old" if args.current_age else ""
        retire = f"and want to retire at {args.retirement_age}" if args.retirement_age else ""
        prompt = (
            f"Create a detailed budget plan for someone with monthly income of R{_rand(args.monthly_income)}. "
            f"Their financial goals are: {', '.join(args.financial_goals)}. {age} {retire}. "
            "Include specific rand amounts and percentages."
        )
        return await advise(BUDGET_SYSTEM, prompt)

    @tool(
        "getInvestmentRecommendations",
        "Provide personalized investment recommendations based on risk profile and goals",
        InvestmentArgs,
    )
    async def get_investment_recommendations(args: InvestmentArgs) -> str:
        if not mock_data:
            return "Investment recommendations would connect to real market data here"
        sa_equity, global_equity, bonds, cash, expected = PORTFOLIOS[args.risk_tolerance]
        recommendations = {
            "riskProfile": args.risk_tolerance,
            "recommendedPortfolio": {
                "SA Equity Funds": sa_equity,
                "Global Equity Funds": global_equity,
                "Bonds": bonds,
                "Cash/Money Market": cash,
            },
            "specificProducts": [
                "Investec Equity Fund",
                "Satrix Top 40 ETF",
                "Government Retail Savings Bonds",
            ],
            "projectedReturns": f"Expected annual return: {expected}",
        }
        return json.dumps(recommendations, indent=2)

    @tool("trackFinancialGoals", "Track progress towards financial goals and provide motivation", GoalArgs)
    async def track_financial_goals(args: GoalArgs) -> str:
        remaining = args.target_amount - args.current_amount
        months = max(math.ceil(remaining / args.monthly_contribution), 0)
        progress = args.current_amount / args.target_amount * 100
        prompt = (
            f"A user is saving for {args.goal_type.replace('_', ' ')}. "
            f"Target: R{_rand(args.target_amount)}, Current: R{_rand(args.current_amount)} "
            f"({progress:.1f}% complete), Monthly contribution: R{_rand(args.monthly_contribution)}. "
            f"They need R{_rand(remaining)} more and will reach their goal in {months} months. "
            "Provide encouraging feedback and tips to stay on track."
        )
        return await advise(GOALS_SYSTEM, prompt)

    @tool("getPersonalizedFinancialTips", "Get daily personalized financial tips based on user profile", TipsArgs)
    async def get_personalized_financial_tips(args: TipsArgs) -> str:
        profile = args.user_profile
        prompt = (
            f"Provide 3 personalized financial tips for a {profile.age}-year-old "
            f"{profile.profession or 'professional'} earning R{_rand(profile.monthly_income)} per month. "
            f"Their main challenges are: {', '.join(profile.main_financial_challenges)}. "
            "Make tips specific and actionable for the South African context."
        )
        return await advise(TIPS_SYSTEM, prompt)

    return [
        analyze_spending_patterns,
        generate_budget_plan,
        get_investment_recommendations,
        track_financial_goals,
        get_personalized_financial_tips,
    ]
