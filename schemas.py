from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import Priority


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="circle", max_length=50)
    order: Optional[int] = None


class CategoryRenameIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class IncomeIn(BaseModel):
    name: str = Field(default="", max_length=120)
    amount_cents: int = Field(default=0, ge=0)
    is_usd: bool = False


class IncomeUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, max_length=120)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    is_usd: Optional[bool] = None


class ExpenseIn(BaseModel):
    name: str = Field(default="", max_length=120)
    amount_cents: int = Field(default=0, ge=0)
    category_name: Optional[str] = Field(default=None, max_length=100)
    is_usd: bool = False
    priority: Priority = Priority.essential
    is_paid: bool = False


class ExpenseUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, max_length=120)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    category_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_usd: Optional[bool] = None
    priority: Optional[Priority] = None
    is_paid: Optional[bool] = None


class SavingsGoalIn(BaseModel):
    name: str = Field(default="", max_length=120)
    amount_cents: int = Field(default=0, ge=0)
    is_usd: bool = False


class ExchangeRateIn(BaseModel):
    rate: Decimal = Field(..., gt=0, max_digits=12, decimal_places=6)


class SavingsAdjustmentIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
    is_usd: bool = False


class FinishMonthIn(BaseModel):
    year: int = Field(..., ge=1970, le=3000)
    month: int = Field(..., ge=1, le=12)
