import math
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from app.schemas.chat import ChatMessage

NO_DATA = "데이터 없음"
UNKNOWN_COMPANY = "알 수 없는 회사"
COMMENTARY_UNAVAILABLE = "분석 코멘트를 생성할 수 없습니다."


class CamelModel(BaseModel):
    """Frozen record serialized with camelCase keys (the model's JSON contract)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class PartialModel(BaseModel):
    """Lenient counterpart used for raw model output: every field optional, unknown keys dropped."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class InvestmentGrade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class ScoreDetail(CamelModel):
    value: str | int | float = NO_DATA
    score: int | float = 0


class Source(CamelModel):
    uri: str
    title: str


# --- Normalized sections ---

class ProfitabilityAnalysis(CamelModel):
    FIELDS: ClassVar[tuple[str, ...]] = ("per", "pbr", "sustainability", "duplicate_listing")

    per: ScoreDetail = ScoreDetail()
    pbr: ScoreDetail = ScoreDetail()
    sustainability: ScoreDetail = ScoreDetail()
    duplicate_listing: ScoreDetail = ScoreDetail()
    total_score: int | float = 0


class ShareholderReturnAnalysis(CamelModel):
    FIELDS: ClassVar[tuple[str, ...]] = (
        "dividend_yield",
        "quarterly_dividends",
        "dividend_increase_years",
        "buyback_and_cancellation",
        "annual_cancellation_rate",
        "treasury_stock_ratio",
    )

    dividend_yield: ScoreDetail = ScoreDetail()
    quarterly_dividends: ScoreDetail = ScoreDetail()
    dividend_increase_years: ScoreDetail = ScoreDetail()
    buyback_and_cancellation: ScoreDetail = ScoreDetail()
    annual_cancellation_rate: ScoreDetail = ScoreDetail()
    treasury_stock_ratio: ScoreDetail = ScoreDetail()
    total_score: int | float = 0


class GrowthPotentialAnalysis(CamelModel):
    FIELDS: ClassVar[tuple[str, ...]] = ("future_potential", "corporate_governance", "global_brand")

    future_potential: ScoreDetail = ScoreDetail()
    corporate_governance: ScoreDetail = ScoreDetail()
    global_brand: ScoreDetail = ScoreDetail()
    total_score: int | float = 0


class StockAnalysis(CamelModel):
    company_name: str
    profitability: ProfitabilityAnalysis
    shareholder_return: ShareholderReturnAnalysis
    growth_potential: GrowthPotentialAnalysis
    total_score: int | float
    grade: InvestmentGrade
    analyst_commentary: str
    sources: list[Source] = []


# --- Raw model output ---

class PartialScoreDetail(PartialModel):
    value: str | int | float | None = None
    score: int | float | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, v):
        if v is None or isinstance(v, (str, int, float)):
            return v
        return str(v)

    @field_validator("score", mode="before")
    @classmethod
    def _drop_non_numeric_score(cls, v):
        # Scores such as "N/A" count as missing rather than rejecting the whole result
        if isinstance(v, bool):
            return None
        if isinstance(v, int):
            return v
        if not isinstance(v, float):
            try:
                v = float(v)
            except (TypeError, ValueError):
                return None
        # NaN and infinities would poison the recomputed totals
        return v if math.isfinite(v) else None


class PartialProfitability(PartialModel):
    per: PartialScoreDetail | None = None
    pbr: PartialScoreDetail | None = None
    sustainability: PartialScoreDetail | None = None
    duplicate_listing: PartialScoreDetail | None = None


class PartialShareholderReturn(PartialModel):
    dividend_yield: PartialScoreDetail | None = None
    quarterly_dividends: PartialScoreDetail | None = None
    dividend_increase_years: PartialScoreDetail | None = None
    buyback_and_cancellation: PartialScoreDetail | None = None
    annual_cancellation_rate: PartialScoreDetail | None = None
    treasury_stock_ratio: PartialScoreDetail | None = None


class PartialGrowthPotential(PartialModel):
    future_potential: PartialScoreDetail | None = None
    corporate_governance: PartialScoreDetail | None = None
    global_brand: PartialScoreDetail | None = None


class PartialStockAnalysis(PartialModel):
    company_name: str | None = None
    profitability: PartialProfitability | None = None
    shareholder_return: PartialShareholderReturn | None = None
    growth_potential: PartialGrowthPotential | None = None
    analyst_commentary: str | None = None
    sources: list[Source] | None = None

    @field_validator("company_name", "analyst_commentary", mode="before")
    @classmethod
    def _stringify_scalar(cls, v):
        if isinstance(v, (int, float)):
            return str(v)
        return v


# --- API payloads ---

class AnalysisRequest(PartialModel):
    stock_name: str = ""


class SectionAchievement(CamelModel):
    """Percent of each section's maximum points reached (gauge values)."""

    profitability: int = 0
    shareholder_return: int = 0
    growth_potential: int = 0


class AnalysisReport(CamelModel):
    analysis: StockAnalysis
    grade_title: str
    achievement: SectionAchievement
    messages: list[ChatMessage] = []


class RubricField(CamelModel):
    key: str
    label: str
    max_score: int


class RubricSection(CamelModel):
    key: str
    title: str
    max_score: int
    fields: list[RubricField]


class Rubric(CamelModel):
    sections: list[RubricSection]
    grade_titles: dict[InvestmentGrade, str]
