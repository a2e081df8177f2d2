"""
Response contracts for the financial backend API.

One model per endpoint.  A body that fails its contract is treated as an error by the client; a
body that passes with empty lists is a legitimate empty result.
"""

from typing import List

from pydantic import (
    BaseModel,
    ConfigDict,
)


class _Contract(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Core APIs
# ---------------------------------------------------------------------------
class Transaction(_Contract):
    date: str
    merchant: str
    category: str
    amount: float
    carbonImpact: float
    isRecurring: bool
    merchantType: str


class TransactionSummary(_Contract):
    totalSpent: float
    totalCarbonKg: float
    recurringTransactions: int
    topCategory: str


class TransactionsResponse(_Contract):
    transactions: List[Transaction]
    summary: TransactionSummary


class Investment(_Contract):
    name: str
    riskLevel: str
    recommendedAmount: float
    expectedReturn: str
    esgScore: float
    category: str


class InvestmentsResponse(_Contract):
    investments: List[Investment]


class MonthlyCarbon(_Contract):
    month: str
    carbonKg: float


class CarbonBreakdown(_Contract):
    transport: float
    food: float
    utilities: float
    shopping: float


class CarbonFootprintResponse(_Contract):
    carbonFootprintKg: float
    monthlyTrend: List[MonthlyCarbon]
    breakdown: CarbonBreakdown
    tips: List[str]


# ---------------------------------------------------------------------------
# Financial advisor
# ---------------------------------------------------------------------------
class BudgetAnalysis(_Contract):
    monthlyIncome: float
    monthlyExpenses: float
    savingsRate: float
    emergencyFundMonths: float


class Advice(_Contract):
    category: str
    priority: str
    recommendation: str
    potentialSaving: float


class Goal(_Contract):
    name: str
    target: float
    current: float
    progress: float
    timeToGoal: str


class FinancialAdviceResponse(_Contract):
    financialHealthScore: float
    budgetAnalysis: BudgetAnalysis
    advice: List[Advice]
    goals: List[Goal]


class MonthlySpending(_Contract):
    current: float
    previous: float
    change: float


class CategorySpend(_Contract):
    category: str
    amount: float
    percentage: float
    trend: str


class SpendingInsight(_Contract):
    type: str
    message: str
    suggestion: str


class UpcomingBill(_Contract):
    merchant: str
    amount: float
    dueDate: str


class SpendingInsightsResponse(_Contract):
    monthlySpending: MonthlySpending
    categoryBreakdown: List[CategorySpend]
    insights: List[SpendingInsight]
    upcomingBills: List[UpcomingBill]


# ---------------------------------------------------------------------------
# Sustainability advisor
# ---------------------------------------------------------------------------
class ESGRecommendation(_Contract):
    name: str
    esgScore: float
    impactArea: str
    riskLevel: str
    recommendedAmount: float
    expectedReturn: str
    impactDescription: str


class ESGHolding(_Contract):
    name: str
    value: float
    esgScore: float
    performance: str


class ESGInvestmentsResponse(_Contract):
    esgPortfolioScore: float
    recommendations: List[ESGRecommendation]
    currentHoldings: List[ESGHolding]


class WeeklyTip(_Contract):
    category: str
    tip: str
    carbonSaving: float
    moneySaving: float


class GreenMerchant(_Contract):
    name: str
    category: str
    discount: str
    carbonBenefit: str


class Achievement(_Contract):
    title: str
    description: str
    carbonSaved: float
    dateEarned: str


class SustainabilityTipsResponse(_Contract):
    sustainabilityScore: float
    weeklyTips: List[WeeklyTip]
    greenMerchants: List[GreenMerchant]
    achievements: List[Achievement]


class FinancialRecommendation(_Contract):
    type: str
    title: str
    description: str
    action: str
    potentialSaving: float
    priority: str


class SustainabilityRecommendation(_Contract):
    type: str
    title: str
    description: str
    action: str
    carbonSaving: float
    moneySaving: float
    priority: str


class RecommendationsResponse(_Contract):
    financial: List[FinancialRecommendation]
    sustainability: List[SustainabilityRecommendation]
