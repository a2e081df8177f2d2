"""Local tools backed by the financial backend API, one per endpoint."""

from dataclasses import dataclass
from typing import (
    List,
    Type,
)

from pydantic import (
    BaseModel,
    ConfigDict,
)

from fincoach.backend.client import BackendClient
from fincoach.backend.contracts import (
    CarbonFootprintResponse,
    ESGInvestmentsResponse,
    FinancialAdviceResponse,
    InvestmentsResponse,
    RecommendationsResponse,
    SpendingInsightsResponse,
    SustainabilityTipsResponse,
    TransactionsResponse,
)
from fincoach.errors import BackendHttpError
from fincoach.tools import Tool


class NoArguments(BaseModel):
    """Input model for tools that take no arguments."""

    model_config = ConfigDict(extra="ignore")


@dataclass(frozen=True)
class Endpoint:
    """Binding of a tool name to a backend endpoint and its response contract."""

    tool_name: str
    path: str
    contract: Type[BaseModel]
    subject: str
    description: str


ENDPOINTS: tuple[Endpoint, ...] = (
    Endpoint(
        "getTransactions",
        "/api/transactions",
        TransactionsResponse,
        "transactions",
        "Get recent transactions with merchant categories, recurring flags and carbon impact",
    ),
    Endpoint(
        "getInvestments",
        "/api/investments",
        InvestmentsResponse,
        "investment suggestions",
        "Get investment suggestions with risk level, expected return and ESG score",
    ),
    Endpoint(
        "getCarbonFootprint",
        "/api/carbon",
        CarbonFootprintResponse,
        "carbon footprint",
        "Get the user's carbon footprint, monthly trend, breakdown and reduction tips",
    ),
    Endpoint(
        "getFinancialAdvice",
        "/api/financial-advice",
        FinancialAdviceResponse,
        "financial advice",
        "Get a financial health score, budget analysis, prioritised advice and goal progress",
    ),
    Endpoint(
        "getSpendingInsights",
        "/api/spending-insights",
        SpendingInsightsResponse,
        "spending insights",
        "Get month-over-month spending, category breakdown, insights and upcoming bills",
    ),
    Endpoint(
        "getESGInvestments",
        "/api/esg-investments",
        ESGInvestmentsResponse,
        "ESG investments",
        "Get sustainable investment recommendations and the ESG score of current holdings",
    ),
    Endpoint(
        "getSustainabilityTips",
        "/api/sustainability-tips",
        SustainabilityTipsResponse,
        "sustainability tips",
        "Get weekly sustainability tips, green merchants and earned achievements",
    ),
    Endpoint(
        "getRecommendations",
        "/api/recommendations",
        RecommendationsResponse,
        "recommendations",
        "Get combined financial and sustainability recommendations with priorities",
    ),
)


def _endpoint_tool(client: BackendClient, endpoint: Endpoint) -> Tool:
    async def fetch(_: NoArguments) -> str:
        try:
            payload = await client.fetch(endpoint.path, endpoint.contract)
        except BackendHttpError as exc:
            return f"Unable to fetch {endpoint.subject}: {exc}"
        return payload.model_dump_json(indent=2)

    return Tool(
        name=endpoint.tool_name,
        description=endpoint.description,
        executor=fetch,
        input_model=NoArguments,
    )


def build_backend_tools(client: BackendClient) -> List[Tool]:
    """Return one tool per entry in :data:`ENDPOINTS`, all bound to *client*."""
    return [_endpoint_tool(client, endpoint) for endpoint in ENDPOINTS]
