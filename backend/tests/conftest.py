"""Shared fixtures for the Value Stock Analyzer tests.

The analyst service is replaced by an in-process fake; no network access required.
"""

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_analyst
from app.main import app
from app.schemas.analysis import PartialStockAnalysis, Source
from app.services.openai_service import ChatSession
from app.services.session_store import SessionStore, get_session_store


class FakeAnalyst:
    """Stands in for OpenAIService: canned analysis, canned reply fragments."""

    def __init__(self, partial=None, error=None, fragments=None, chat_error=None):
        self.partial = partial if partial is not None else PartialStockAnalysis()
        self.error = error
        self.fragments = fragments if fragments is not None else []
        self.chat_error = chat_error
        self.requested: list[str] = []
        self.sent: list[str] = []

    async def request_analysis(self, company_name):
        self.requested.append(company_name)
        if self.error is not None:
            raise self.error
        return self.partial

    async def open_chat_session(self, analysis):
        return ChatSession(system_prompt=f"anchored to {analysis.company_name}")

    async def send_chat_message(self, session, message):
        self.sent.append(message)
        for fragment in self.fragments:
            yield fragment
        if self.chat_error is not None:
            raise self.chat_error


@pytest.fixture
def sample_raw() -> dict:
    """Model output in the camelCase JSON contract, summing to 62 (grade C)."""
    return {
        "companyName": "삼성전자",
        "profitability": {
            "per": {"value": "12.5배", "score": 5},
            "pbr": {"value": "1.1배", "score": 0},
            "sustainability": {"value": "대체로 지속 가능", "score": 5},
            "duplicateListing": {"value": "단독 상장", "score": 5},
            "totalScore": 99,
        },
        "shareholderReturn": {
            "dividendYield": {"value": "2.1%", "score": 2},
            "quarterlyDividends": {"value": "예", "score": 5},
            "dividendIncreaseYears": {"value": "N/A", "score": 0},
            "buybackAndCancellation": {"value": "예", "score": 7},
            "annualCancellationRate": {"value": "2.4%", "score": 8},
            "treasuryStockRatio": {"value": "없음", "score": 5},
        },
        "growthPotential": {
            "futurePotential": {"value": "매우 높다", "score": 10},
            "corporateGovernance": {"value": "전문 경영", "score": 5},
            "globalBrand": {"value": "있다", "score": 5},
        },
        "analystCommentary": "반도체 업황 회복에 따른 이익 개선이 기대됩니다.",
    }


@pytest.fixture
def sample_partial(sample_raw) -> PartialStockAnalysis:
    partial = PartialStockAnalysis.model_validate(sample_raw)
    return partial.model_copy(update={"sources": [Source(uri="https://example.com/a", title="A")]})


@pytest.fixture
def store() -> SessionStore:
    return SessionStore(ttl=3600, max_entries=500)


@pytest.fixture
def analyst(sample_partial) -> FakeAnalyst:
    return FakeAnalyst(partial=sample_partial, fragments=["삼성전자의 ", "배당은 ", "안정적입니다."])


@pytest.fixture
def client(store, analyst):
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_analyst] = lambda: analyst
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
