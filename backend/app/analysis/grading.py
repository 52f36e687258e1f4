"""Grading utility for converting the aggregate score to an investment grade."""
from app.schemas.analysis import InvestmentGrade


def score_to_grade(total: float) -> InvestmentGrade:
    """Convert a 0-100 total score to a letter grade.

      A = above 80 (long-term buy), B = 70-80, C = 50-69 (hold), D = below 50.
    """
    if total > 80:
        return InvestmentGrade.A
    elif total >= 70:
        return InvestmentGrade.B
    elif total >= 50:
        return InvestmentGrade.C
    else:
        return InvestmentGrade.D
