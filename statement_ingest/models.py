"""Pydantic data models for parsed transactions, categories and summaries."""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from pydantic import BaseModel, Field, field_validator

CENT = Decimal("0.01")


class Direction(str, Enum):
    """Money flow of a transaction; the amount itself is always a magnitude."""

    INFLOW = "income"
    OUTFLOW = "expense"


class ParsedTransaction(BaseModel):
    """Transaction extracted from a statement before categorization."""

    date: date
    description: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    direction: Direction
    date_inferred: bool = Field(
        default=False, description="True when the date fell back to the processing date"
    )
    raw_text: str = Field(default="", description="Original line for debugging")

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("description must be non-empty")
        return v

    @field_validator("amount")
    @classmethod
    def _quantize_amount(cls, v: Decimal) -> Decimal:
        try:
            return v.quantize(CENT, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValueError(f"amount {v} has too many digits") from None

    @property
    def month_key(self) -> str:
        """YYYY-MM grouping key."""
        return f"{self.date.year:04d}-{self.date.month:02d}"

    @property
    def signed_amount(self) -> Decimal:
        return -self.amount if self.direction is Direction.OUTFLOW else self.amount


class CategorizedTransaction(BaseModel):
    """Transaction after categorization, ready for the store."""

    date: date
    description: str
    amount: Decimal
    direction: Direction
    category: str
    category_source: str = "rule"
    month_key: str
    date_inferred: bool = False
    user_id: str = ""
    source_reference: str = ""

    def to_csv_row(self) -> dict[str, str]:
        """Convert to CSV row dict."""
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": str(self.amount),
            "type": self.direction.value,
            "category": self.category,
            "month_key": self.month_key,
            "source_upload_id": self.source_reference,
        }


# Column mapping for delimited files: the amount layout is a tagged union
# resolved once per file.


@dataclass(frozen=True)
class SingleAmount:
    """One signed amount column."""

    idx: int


@dataclass(frozen=True)
class SplitAmount:
    """Separate withdrawal and deposit columns."""

    withdrawal_idx: int
    deposit_idx: int


@dataclass(frozen=True)
class ColumnMapping:
    """Per-file resolution of which fields hold date, description and amount."""

    delimiter: str
    date_idx: int
    description_idx: int
    amounts: SingleAmount | SplitAmount
    has_header: bool


@dataclass
class ParseResult:
    """Output of a parser run over one document."""

    transactions: list[ParsedTransaction] = field(default_factory=list)
    skipped: int = 0
    strategy: str = ""

    @property
    def total_parsed(self) -> int:
        return len(self.transactions)


class ProcessingSummary(BaseModel):
    """Counts reported back to the caller after an ingestion run."""

    success: bool = True
    filename: str = ""
    total_parsed: int = 0
    skipped_rows: int = 0
    inserted_transactions: int = 0
    duplicates: int = 0
    failed_batches: int = 0
    message: str = ""
    files: list["ProcessingSummary"] = Field(default_factory=list)

    def to_response(self) -> dict:
        """Shape consumed by the notification layer."""
        return {
            "success": self.success,
            "total_parsed": self.total_parsed,
            "skipped_rows": self.skipped_rows,
            "inserted_transactions": self.inserted_transactions,
            "message": self.message,
            "details": {
                "duplicates": self.duplicates,
                "failed_batches": self.failed_batches,
                "files": [f.model_dump(exclude={"files"}) for f in self.files],
            },
        }


class Category(BaseModel):
    """Category definition for transaction classification."""

    name: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)

    @field_validator("keywords")
    @classmethod
    def _lowercase_keywords(cls, v: list[str]) -> list[str]:
        return [k.strip().lower() for k in v if k.strip()]


class CategoriesConfig(BaseModel):
    """Container for category definitions, in match order."""

    categories: list[Category]

    def get_category_names(self) -> list[str]:
        """Get list of category names."""
        return [c.name for c in self.categories]

    def to_prompt_text(self) -> str:
        """Format categories for LLM prompt."""
        lines = []
        for cat in self.categories:
            line = f"- {cat.name}: {cat.description}"
            if cat.keywords:
                line += f" (examples: {', '.join(cat.keywords[:3])})"
            lines.append(line)
        return "\n".join(lines)


# LLM Response Schemas for structured output


class CategorizationResponse(BaseModel):
    """LLM response for batch categorization."""

    categories: list[str] = Field(
        description="One category name per transaction, in the order given"
    )
