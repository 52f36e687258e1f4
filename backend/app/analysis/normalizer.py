"""
Analysis normalizer - turns the model's best-effort output into a complete, consistent record.

Every named field of every section is filled (missing -> "데이터 없음" / 0), section totals are
recomputed from the named fields only, and the grade is derived from the aggregate total.
Incoming totals and unknown fields are never trusted.
"""
from app.analysis.grading import score_to_grade
from app.schemas.analysis import (
    COMMENTARY_UNAVAILABLE,
    NO_DATA,
    UNKNOWN_COMPANY,
    GrowthPotentialAnalysis,
    PartialScoreDetail,
    PartialStockAnalysis,
    ProfitabilityAnalysis,
    ScoreDetail,
    ShareholderReturnAnalysis,
    StockAnalysis,
)


def _fill_detail(detail: PartialScoreDetail | None) -> ScoreDetail:
    if detail is None:
        return ScoreDetail(value=NO_DATA, score=0)
    return ScoreDetail(
        value=detail.value if detail.value is not None else NO_DATA,
        score=detail.score if detail.score is not None else 0,
    )


def _build_section(section_cls, partial):
    details = {name: _fill_detail(getattr(partial, name, None)) for name in section_cls.FIELDS}
    total = sum(d.score for d in details.values())
    return section_cls(**details, total_score=total)


def _text_or(value: str | None, fallback: str) -> str:
    if value:
        return value
    return fallback


def normalize(partial: PartialStockAnalysis) -> StockAnalysis:
    profitability = _build_section(ProfitabilityAnalysis, partial.profitability)
    shareholder_return = _build_section(ShareholderReturnAnalysis, partial.shareholder_return)
    growth_potential = _build_section(GrowthPotentialAnalysis, partial.growth_potential)

    total = profitability.total_score + shareholder_return.total_score + growth_potential.total_score

    return StockAnalysis(
        company_name=_text_or(partial.company_name, UNKNOWN_COMPANY),
        profitability=profitability,
        shareholder_return=shareholder_return,
        growth_potential=growth_potential,
        total_score=total,
        grade=score_to_grade(total),
        analyst_commentary=_text_or(partial.analyst_commentary, COMMENTARY_UNAVAILABLE),
        sources=list(partial.sources) if partial.sources is not None else [],
    )
