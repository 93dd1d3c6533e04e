"""Pydantic schemas for request/response and the ledger core's value types."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, EmailStr, PlainSerializer, field_validator

# Decimals go over the wire as JSON numbers.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
Percent = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


def _normalize_currency(value: str) -> str:
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError("Currency must be a three-letter code")
    return code


# ----- User -----
class UserBase(BaseModel):
    email: EmailStr
    name: Optional[str] = None


class UserCreate(UserBase):
    password: str


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(UserBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class MemberInfo(BaseModel):
    id: int
    name: Optional[str] = None
    email: EmailStr
    role: Optional[MemberRole] = None


# ----- Group -----
class GroupBase(BaseModel):
    name: str
    description: Optional[str] = None


class GroupCreate(GroupBase):
    currency: str
    member_ids: list[int] = []

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    currency: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_currency(v) if v is not None else v


class GroupAddMember(BaseModel):
    email: EmailStr


class GroupMemberRole(BaseModel):
    role: MemberRole


class GroupResponse(GroupBase):
    id: int
    currency: str
    created_at: Optional[datetime] = None
    member_ids: list[int] = []
    members: list[MemberInfo] = []

    class Config:
        from_attributes = True


# ----- Expense -----
EXPENSE_CATEGORIES = [
    "food",
    "transport",
    "entertainment",
    "shopping",
    "bills",
    "other",
]


class SplitType(str, Enum):
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    CUSTOM = "custom"


class PayerShare(BaseModel):
    user_id: int
    amount: Money

    class Config:
        from_attributes = True


class SplitShare(BaseModel):
    """One participant's owed share of an expense."""

    user_id: int
    owed_amount: Money
    percentage: Optional[Percent] = None
    is_paid: bool = False

    class Config:
        from_attributes = True


class SplitInput(BaseModel):
    """Per-participant directive: `percentage` for percentage splits, `amount` for custom."""

    user_id: int
    percentage: Optional[Decimal] = None
    amount: Optional[Decimal] = None


class ExpenseCreate(BaseModel):
    group_id: int
    description: str
    amount: Decimal
    currency: Optional[str] = None
    category: str = "other"
    date: Optional[datetime] = None
    notes: Optional[str] = None
    payers: Optional[list[PayerShare]] = None
    split_type: SplitType = SplitType.EQUAL
    participant_ids: Optional[list[int]] = None
    splits: Optional[list[SplitInput]] = None


class ExpenseUpdate(BaseModel):
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    category: Optional[str] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None
    payers: Optional[list[PayerShare]] = None
    split_type: Optional[SplitType] = None
    participant_ids: Optional[list[int]] = None
    splits: Optional[list[SplitInput]] = None
    preserve_paid: bool = False


class ExpenseResponse(BaseModel):
    id: int
    group_id: int
    description: str
    amount: Money
    currency: str
    category: str
    date: Optional[datetime] = None
    notes: Optional[str] = None
    split_type: SplitType
    created_by: int
    payers: list[PayerShare] = []
    splits: list[SplitShare] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MemberSpending(BaseModel):
    user_id: int
    name: str
    paid: Money


class ExpenseSummary(BaseModel):
    group_id: int
    currency: str
    expense_count: int
    total_spent: Money
    category_totals: dict[str, Money]
    member_spending: list[MemberSpending]
    your_balance: Money
    total_paid_splits: Money
    total_unpaid_splits: Money


# ----- Settlement -----
class SettlementStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SettlementMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    DIGITAL_WALLET = "digital_wallet"
    OTHER = "other"


class SettlementSource(str, Enum):
    CALCULATED = "calculated"
    MANUAL = "manual"


class SettlementItem(BaseModel):
    """A proposed payment from a debtor to a creditor."""

    group_id: int
    from_user_id: int
    to_user_id: int
    amount: Money
    currency: Optional[str] = None
    status: SettlementStatus = SettlementStatus.PENDING


class BalanceEntry(BaseModel):
    user_id: int
    balance: Money


class SettlementSummary(BaseModel):
    group_id: int
    currency: str
    members: list[MemberInfo] = []
    balances: list[BalanceEntry]
    settlements: list[SettlementItem]


class SettlementCreate(BaseModel):
    group_id: int
    to_user_id: int
    amount: Decimal
    method: SettlementMethod = SettlementMethod.OTHER
    notes: Optional[str] = None


class SettlementUpdate(BaseModel):
    status: Optional[SettlementStatus] = None
    method: Optional[SettlementMethod] = None
    notes: Optional[str] = None


class SettlementResponse(BaseModel):
    id: int
    group_id: int
    from_user_id: int
    to_user_id: int
    amount: Money
    currency: str
    status: SettlementStatus
    method: SettlementMethod
    source: SettlementSource
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SettlementStats(BaseModel):
    total: int
    pending: int
    completed: int
    cancelled: int
    total_amount: Money
    pending_amount: Money
    completed_amount: Money
