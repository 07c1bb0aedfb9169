"""
Tenant budget models: configured limits, counter snapshots and status.

Counters are persisted in the counter store as a flat hash of strings;
TenantBudgetCounters.from_store parses that hash.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from reliability_layer.models.enums import BudgetLimitKind, EnforcementMode

if TYPE_CHECKING:
    from reliability_layer.config import Settings


Amount = Union[Decimal, int]

# Counter hash field names
DAILY_COST = "daily_cost_spent"
MONTHLY_COST = "monthly_cost_spent"
DAILY_TOKENS = "daily_tokens_used"
MONTHLY_TOKENS = "monthly_tokens_used"
DAILY_EXECUTIONS = "daily_executions_count"
MONTHLY_EXECUTIONS = "monthly_executions_count"
DAILY_ERRORS = "daily_error_count"
MONTHLY_ERRORS = "monthly_error_count"
DAILY_RESET_DATE = "daily_reset_date"
MONTHLY_RESET_DATE = "monthly_reset_date"
LAST_EXECUTION_AT = "last_execution_at"
LAST_EXECUTION_STATUS = "last_execution_status"

DAILY_COUNTER_FIELDS = (DAILY_COST, DAILY_TOKENS, DAILY_EXECUTIONS, DAILY_ERRORS)
MONTHLY_COUNTER_FIELDS = (MONTHLY_COST, MONTHLY_TOKENS, MONTHLY_EXECUTIONS, MONTHLY_ERRORS)

COUNTER_FIELD_BY_LIMIT: dict[BudgetLimitKind, str] = {
    BudgetLimitKind.DAILY_COST: DAILY_COST,
    BudgetLimitKind.MONTHLY_COST: MONTHLY_COST,
    BudgetLimitKind.DAILY_TOKENS: DAILY_TOKENS,
    BudgetLimitKind.MONTHLY_TOKENS: MONTHLY_TOKENS,
    BudgetLimitKind.DAILY_EXECUTIONS: DAILY_EXECUTIONS,
    BudgetLimitKind.MONTHLY_EXECUTIONS: MONTHLY_EXECUTIONS,
}


def alerted_field(kind: BudgetLimitKind) -> str:
    """Hash field holding the window date of the last soft-cap alert for `kind`."""
    return f"alerted_{kind.value}"


class TenantBudgetLimits(BaseModel):
    """
    Per-tenant limits and enforcement mode.

    Unset limits are not enforced. With inherit_global_defaults, unset
    limits and an unset enforcement mode are taken from the global defaults
    (see resolve). Without it, an unset enforcement mode means soft.
    """
    model_config = ConfigDict(frozen=True)

    enforcement: Optional[EnforcementMode] = None
    daily_cost_limit: Optional[Decimal] = Field(default=None, ge=0)
    monthly_cost_limit: Optional[Decimal] = Field(default=None, ge=0)
    daily_token_limit: Optional[int] = Field(default=None, ge=0)
    monthly_token_limit: Optional[int] = Field(default=None, ge=0)
    daily_execution_limit: Optional[int] = Field(default=None, ge=0)
    monthly_execution_limit: Optional[int] = Field(default=None, ge=0)
    inherit_global_defaults: bool = True

    @property
    def effective_enforcement(self) -> EnforcementMode:
        return self.enforcement or EnforcementMode.SOFT

    def limit_for(self, kind: BudgetLimitKind) -> Optional[Amount]:
        return {
            BudgetLimitKind.DAILY_COST: self.daily_cost_limit,
            BudgetLimitKind.MONTHLY_COST: self.monthly_cost_limit,
            BudgetLimitKind.DAILY_TOKENS: self.daily_token_limit,
            BudgetLimitKind.MONTHLY_TOKENS: self.monthly_token_limit,
            BudgetLimitKind.DAILY_EXECUTIONS: self.daily_execution_limit,
            BudgetLimitKind.MONTHLY_EXECUTIONS: self.monthly_execution_limit,
        }[kind]

    def resolve(self, defaults: Optional["TenantBudgetLimits"]) -> "TenantBudgetLimits":
        """Fill unset values from defaults when inheritance is enabled."""
        if not self.inherit_global_defaults or defaults is None:
            return self
        merged = {
            name: value if value is not None else getattr(defaults, name)
            for name, value in self.model_dump(exclude={"inherit_global_defaults"}).items()
        }
        return TenantBudgetLimits(**merged, inherit_global_defaults=False)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TenantBudgetLimits":
        """Global default limits from application settings."""
        return cls(
            enforcement=EnforcementMode(settings.BUDGET_ENFORCEMENT.lower()),
            daily_cost_limit=settings.BUDGET_DAILY_COST_LIMIT,
            monthly_cost_limit=settings.BUDGET_MONTHLY_COST_LIMIT,
            daily_token_limit=settings.BUDGET_DAILY_TOKEN_LIMIT,
            monthly_token_limit=settings.BUDGET_MONTHLY_TOKEN_LIMIT,
            daily_execution_limit=settings.BUDGET_DAILY_EXECUTION_LIMIT,
            monthly_execution_limit=settings.BUDGET_MONTHLY_EXECUTION_LIMIT,
            inherit_global_defaults=False,
        )


def _parse_date(raw: Optional[str]) -> Optional[date]:
    return date.fromisoformat(raw) if raw else None


class TenantBudgetCounters(BaseModel):
    """Snapshot of a tenant's counters as read from the counter store."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    daily_cost_spent: Decimal = Decimal("0")
    monthly_cost_spent: Decimal = Decimal("0")
    daily_tokens_used: int = 0
    monthly_tokens_used: int = 0
    daily_executions_count: int = 0
    monthly_executions_count: int = 0
    daily_error_count: int = 0
    monthly_error_count: int = 0
    daily_reset_date: Optional[date] = None
    monthly_reset_date: Optional[date] = None
    last_execution_at: Optional[datetime] = None
    last_execution_status: Optional[str] = None

    def current_for(self, kind: BudgetLimitKind) -> Amount:
        return getattr(self, COUNTER_FIELD_BY_LIMIT[kind])

    @classmethod
    def from_store(cls, tenant_id: str, raw: Mapping[str, str]) -> "TenantBudgetCounters":
        last_at = raw.get(LAST_EXECUTION_AT)
        return cls(
            tenant_id=tenant_id,
            daily_cost_spent=Decimal(raw.get(DAILY_COST) or "0"),
            monthly_cost_spent=Decimal(raw.get(MONTHLY_COST) or "0"),
            daily_tokens_used=int(raw.get(DAILY_TOKENS) or 0),
            monthly_tokens_used=int(raw.get(MONTHLY_TOKENS) or 0),
            daily_executions_count=int(raw.get(DAILY_EXECUTIONS) or 0),
            monthly_executions_count=int(raw.get(MONTHLY_EXECUTIONS) or 0),
            daily_error_count=int(raw.get(DAILY_ERRORS) or 0),
            monthly_error_count=int(raw.get(MONTHLY_ERRORS) or 0),
            daily_reset_date=_parse_date(raw.get(DAILY_RESET_DATE)),
            monthly_reset_date=_parse_date(raw.get(MONTHLY_RESET_DATE)),
            last_execution_at=datetime.fromisoformat(last_at) if last_at else None,
            last_execution_status=raw.get(LAST_EXECUTION_STATUS) or None,
        )


class BudgetStatus(BaseModel):
    """Usage of one budget dimension against its limit."""
    model_config = ConfigDict(frozen=True)

    kind: BudgetLimitKind
    limit: Optional[Amount] = None
    current: Amount
    remaining: Optional[Amount] = None
    percentage_used: Optional[float] = None

    @property
    def exceeded(self) -> bool:
        return self.limit is not None and self.current >= self.limit
