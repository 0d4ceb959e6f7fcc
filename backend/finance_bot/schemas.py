from datetime import date as date_type
from typing import Any, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt, field_validator


Intent = Literal[
    "track_expense",
    "track_income",
    "query_balance",
    "query_transactions",
    "query_report",
    "archive_transaction",
    "general_chat",
    "unknown",
]
ParsedTransactionType = Literal[
    "income",
    "transfer",
    "expense",
    "credit_card_payment",
    "credit_card_purchase",
]
CurrencyCode = Literal["EUR", "USDC", "ARS", "USD"]
QueryType = Literal[
    "rank_accounts_by_expense",
    "total_spending_by_category",
    "count_archived_transactions",
    "count_remaining_installments",
    "total_credit_card_debt",
    "rank_accounts_by_transaction_count",
]
TimePeriod = Literal["today", "this_week", "this_month", "this_year", "all_time"]
SortOrder = Literal["asc", "desc"]

ALLOWED_QUERY_TYPES: frozenset[str] = frozenset(get_args(QueryType))
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class IntentDecision(BaseModel):
    model_config = ConfigDict(extra="forbid")

    intent: Intent
    confidence: float = Field(ge=0, le=1)
    reasoning: Optional[str] = None


class ParsedTransaction(BaseModel):
    """A transaction as extracted from a user message, before persistence."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: ParsedTransactionType
    description: str
    amount: PositiveFloat
    from_account: Optional[str] = Field(default=None, alias="fromAccount")
    to_account: Optional[str] = Field(default=None, alias="toAccount")
    category: Optional[str] = None
    currency: CurrencyCode
    date: str = Field(pattern=DATE_PATTERN)
    installments: PositiveInt = 1
    from_amount: Optional[PositiveFloat] = Field(default=None, alias="fromAmount")
    to_amount: Optional[PositiveFloat] = Field(default=None, alias="toAmount")
    confidence: float = Field(ge=0, le=100)

    @field_validator("date")
    @classmethod
    def ensure_calendar_date(cls, value: str) -> str:
        date_type.fromisoformat(value)
        return value

    @property
    def transaction_date(self) -> date_type:
        return date_type.fromisoformat(self.date)


class GeneratedQuery(BaseModel):
    model_config = ConfigDict(extra="forbid")

    query_type: QueryType
    sort_order: Optional[SortOrder] = None
    limit: Optional[PositiveInt] = None
    time_period: TimePeriod = "all_time"
    filters: Optional[dict[str, Any]] = None
    include_archived: bool = False
    credit_card_account_id: Optional[PositiveInt] = None


class Choice(BaseModel):
    label: str
    callback_data: str


class BotReply(BaseModel):
    """What the bot answers to one inbound message or button press."""

    text: str
    choices: list[Choice] = Field(default_factory=list)
    pending: Optional[ParsedTransaction] = None
    markdown: bool = False
    columns: int = Field(default=1, ge=1)


# JSON schemas sent to the model when the prompt store carries no config.

ORCHESTRATOR_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "intent": {
            "type": "string",
            "enum": list(get_args(Intent)),
            "description": "The detected intent from the user message",
        },
        "confidence": {
            "type": "number",
            "minimum": 0,
            "maximum": 1,
            "description": "Confidence score between 0 and 1",
        },
        "reasoning": {
            "type": "string",
            "description": "Brief explanation of the classification decision",
        },
    },
    "required": ["intent", "confidence"],
    "additionalProperties": False,
}

EXPENSE_PARSER_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {
            "type": "string",
            "enum": list(get_args(ParsedTransactionType)),
            "description": "Type of financial transaction",
        },
        "description": {"type": "string", "description": "Description of the transaction"},
        "amount": {"type": "number", "exclusiveMinimum": 0, "description": "Transaction amount"},
        "fromAccount": {"type": ["string", "null"], "description": "Source account name"},
        "toAccount": {"type": ["string", "null"], "description": "Destination account name"},
        "category": {"type": ["string", "null"], "description": "Transaction category"},
        "currency": {"type": "string", "enum": list(get_args(CurrencyCode)), "description": "Currency code"},
        "date": {
            "type": "string",
            "pattern": DATE_PATTERN,
            "description": "Transaction date in YYYY-MM-DD format",
        },
        "installments": {
            "type": "integer",
            "minimum": 1,
            "description": "Number of installments for credit card purchases",
        },
        "fromAmount": {
            "type": "number",
            "exclusiveMinimum": 0,
            "description": "Source amount for transfers with conversion",
        },
        "toAmount": {
            "type": "number",
            "exclusiveMinimum": 0,
            "description": "Destination amount for transfers with conversion",
        },
        "confidence": {"type": "number", "minimum": 0, "maximum": 100, "description": "Confidence score 0-100"},
    },
    "required": ["type", "description", "amount", "currency", "date", "confidence"],
    "additionalProperties": False,
}

QUERY_GENERATOR_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query_type": {
            "type": "string",
            "enum": list(get_args(QueryType)),
            "description": "The type of query to perform",
        },
        "sort_order": {
            "type": "string",
            "enum": list(get_args(SortOrder)),
            "description": "The sort order for the results. Defaults to `desc` for rankings.",
        },
        "limit": {
            "type": "integer",
            "description": "The maximum number of results to return (e.g., for top 3, use 3).",
        },
        "time_period": {
            "type": "string",
            "enum": list(get_args(TimePeriod)),
            "description": "The time period to filter the query by. Defaults to `all_time`.",
        },
        "filters": {
            "type": "object",
            "description": 'Key-value filters to apply to the query (e.g., `{"category": "Food"}`)',
        },
        "include_archived": {
            "type": "boolean",
            "description": "Set to true to include archived transactions in the query. Defaults to false.",
        },
        "credit_card_account_id": {
            "type": "integer",
            "description": "Filter by specific credit card account ID (optional)",
        },
    },
    "required": ["query_type"],
    "additionalProperties": False,
}
