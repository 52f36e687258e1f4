"""
Scoring rubric for the long-term value analysis.

Section maxima: profitability 35 + shareholder return 40 + growth potential 25 = 100.
The criteria text is embedded in the analysis prompt; labels and maxima feed the score tables
and achievement gauges.
"""
import math

from pydantic.alias_generators import to_camel

from app.schemas.analysis import (
    InvestmentGrade,
    Rubric,
    RubricField,
    RubricSection,
    SectionAchievement,
    StockAnalysis,
)

# (section attribute, title, [(field attribute, label, max points, scoring criteria), ...])
RUBRIC = [
    (
        "profitability",
        "수익성 / 가치 / 지속가능성",
        [
            ("per", "PER", 20, "<5: 20, <8: 15, <10: 10, >=10: 5"),
            ("pbr", "PBR", 5, "<0.3: 5, <0.6: 4, <1.0: 3, >=1.0: 0"),
            ("sustainability", "이익 지속성", 5, "'대체로 지속 가능': 5, '불안정한 이익 창출력': 0"),
            ("duplicate_listing", "중복 상장", 5, "'단독 상장': 5, '중복 상장': 0"),
        ],
    ),
    (
        "shareholder_return",
        "주주 환원 정책",
        [
            ("dividend_yield", "배당 수익률", 10, ">7%: 10, >5%: 7, >3%: 5, <=3%: 2"),
            ("quarterly_dividends", "분기 배당", 5, "'예': 5, '아니요': 0"),
            ("dividend_increase_years", "배당 연속 인상", 5, "10+y: 5, 5+y: 4, 3+y: 3, N/A: 0"),
            ("buyback_and_cancellation", "자사주 매입 및 소각", 7, "'예': 7, '아니요': 0"),
            ("annual_cancellation_rate", "연간 소각 비율", 8, ">2%: 8, >1.5%: 5, >0.5%: 3, <=0.5% or N/A: 0"),
            ("treasury_stock_ratio", "자사주 보유 비율", 5, "'없음': 5, <2%: 4, <5%: 2, >=5%: 0"),
        ],
    ),
    (
        "growth_potential",
        "미래 성장성 / 경쟁력",
        [
            ("future_potential", "미래 성장 잠재력", 10, "'매우 높다': 10, '높다': 7, '보통': 5, '낮다': 3"),
            ("corporate_governance", "기업 경영", 10, "'우수한 경영': 10, '전문 경영': 5, '저조한 실적 오너 경영': 0"),
            ("global_brand", "세계적 브랜드", 5, "'있다': 5, '없다': 0"),
        ],
    ),
]

GRADE_TITLES = {
    InvestmentGrade.A: "A: 장기투자 적합, 적극 매수",
    InvestmentGrade.B: "B: 장기투자 적합, 매수 고려",
    InvestmentGrade.C: "C: 보유",
    InvestmentGrade.D: "D: 장기투자 비추천",
}


def section_max(section: str) -> int:
    for key, _, fields in RUBRIC:
        if key == section:
            return sum(max_score for _, _, max_score, _ in fields)
    raise KeyError(section)


def achievement_rate(score: float, max_score: float) -> int:
    """Percent of the maximum reached, rounded half up like the gauges display it."""
    if max_score <= 0:
        return 0
    return math.floor(score / max_score * 100 + 0.5)


def section_achievement(analysis: StockAnalysis) -> SectionAchievement:
    return SectionAchievement(
        profitability=achievement_rate(analysis.profitability.total_score, section_max("profitability")),
        shareholder_return=achievement_rate(
            analysis.shareholder_return.total_score, section_max("shareholder_return")
        ),
        growth_potential=achievement_rate(analysis.growth_potential.total_score, section_max("growth_potential")),
    )


def grade_title(grade: InvestmentGrade) -> str:
    return GRADE_TITLES.get(grade, GRADE_TITLES[InvestmentGrade.D])


def build_rubric() -> Rubric:
    return Rubric(
        sections=[
            RubricSection(
                key=to_camel(key),
                title=title,
                max_score=section_max(key),
                fields=[
                    RubricField(key=to_camel(name), label=label, max_score=max_score)
                    for name, label, max_score, _ in fields
                ],
            )
            for key, title, fields in RUBRIC
        ],
        grade_titles=dict(GRADE_TITLES),
    )


def rubric_prompt_lines() -> str:
    """Render the rubric as the bullet list embedded in the analysis system prompt."""
    lines = []
    headings = ["1. Profitability/Undervaluation", "2. Shareholder Return", "3. Future Growth Potential"]
    for heading, (_, _, fields) in zip(headings, RUBRIC):
        lines.append(f"*   **{heading}**")
        for name, _, max_score, criteria in fields:
            lines.append(f"    *   {to_camel(name)} ({max_score}p): {criteria}")
    return "\n".join(lines)
