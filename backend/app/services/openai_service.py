import json
import logging
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from pydantic import ValidationError

from app.analysis.rubric import rubric_prompt_lines
from app.config import get_settings
from app.schemas.analysis import PartialStockAnalysis, Source, StockAnalysis

logger = logging.getLogger(__name__)

SEARCH_URL_PREFIXES = (
    "https://www.google.com/search",
    "https://www.bing.com/search",
    "https://search.yahoo.com/search",
    "https://duckduckgo.com/?",
)

SYSTEM_PROMPT = f"""You are a professional stock analyst providing long-term value investment analysis.

**TASK:**
Analyze the provided stock name and return a detailed analysis in a specific JSON format.

**PROCESS:**
1.  **Use Web Search:** You MUST use web search to get the most recent and accurate financial data for the analysis.
2.  **Apply Scoring Rubric:** Strictly follow the detailed scoring rubric provided below to calculate scores for each category.
3.  **Write Commentary:** 약 1000자 분량으로 상세한 애널리스트 코멘트를 한국어로 작성하세요. 코멘트는 반드시 3가지 주요 분석 기준(1. 수익성/저평가, 2. 주주 환원, 3. 미래 성장 잠재력) 각각에 대한 상세한 설명을 포함해야 합니다. 최종 투자 의견으로 마무리하세요. JSON의 모든 'value' 필드도 한국어로 작성해야 합니다.

**SCORING RUBRIC:**
{rubric_prompt_lines()}

**OUTPUT FORMAT (MUST BE ONLY THIS JSON OBJECT):**
{{
  "companyName": "The name of the company analyzed",
  "profitability": {{
    "per": {{ "value": "...", "score": ... }},
    "pbr": {{ "value": "...", "score": ... }},
    "sustainability": {{ "value": "...", "score": ... }},
    "duplicateListing": {{ "value": "...", "score": ... }}
  }},
  "shareholderReturn": {{
    "dividendYield": {{ "value": "...", "score": ... }},
    "quarterlyDividends": {{ "value": "...", "score": ... }},
    "dividendIncreaseYears": {{ "value": "...", "score": ... }},
    "buybackAndCancellation": {{ "value": "...", "score": ... }},
    "annualCancellationRate": {{ "value": "...", "score": ... }},
    "treasuryStockRatio": {{ "value": "...", "score": ... }}
  }},
  "growthPotential": {{
    "futurePotential": {{ "value": "...", "score": ... }},
    "corporateGovernance": {{ "value": "...", "score": ... }},
    "globalBrand": {{ "value": "...", "score": ... }}
  }},
  "analystCommentary": "약 1000자 분량의 상세 분석 (한국어). 3가지 기준(수익성, 주주환원, 성장성)에 대한 상세 설명과 최종 투자 의견을 포함해야 합니다."
}}
"""

CHAT_SYSTEM_PROMPT = """You are a helpful stock analyst assistant. You are answering follow-up questions based on a previous, comprehensive analysis. Be concise and helpful. Answer in Korean.

The analysis (JSON) the user is asking about:
{analysis}
"""


class AnalystNotConfiguredError(Exception):
    pass


class AnalysisError(Exception):
    """The model answered but no usable analysis could be extracted."""


class AnalysisNotFoundError(AnalysisError):
    def __init__(self):
        super().__init__("모델 응답에서 유효한 분석 데이터를 찾지 못했습니다.")


class MalformedAnalysisError(AnalysisError):
    def __init__(self):
        super().__init__("모델이 반환한 데이터의 형식이 올바르지 않습니다.")


@dataclass
class ChatSession:
    """Conversation handle: system prompt plus the completed turns sent back on every message."""

    system_prompt: str
    history: list[dict] = field(default_factory=list)


def parse_analysis(text: str) -> PartialStockAnalysis:
    """Pull the first {...} block out of free-form model output and parse it."""
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        logger.error(f"Failed to find JSON in response: {text}")
        raise AnalysisNotFoundError()

    json_text = match.group(0)
    try:
        data = json.loads(json_text)
        return PartialStockAnalysis.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Failed to parse JSON response: {json_text} ({e})")
        raise MalformedAnalysisError() from e


def dedupe_sources(sources: list[Source]) -> list[Source]:
    """Drop search-engine result pages and collapse repeated URIs (first position, last title)."""
    unique: dict[str, Source] = {}
    for source in sources:
        if source.uri.startswith(SEARCH_URL_PREFIXES):
            continue
        unique[source.uri] = source
    return list(unique.values())


def extract_sources(response) -> list[Source]:
    """Collect url_citation annotations from a Responses API result."""
    sources = []
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for part in getattr(item, "content", None) or []:
            for annotation in getattr(part, "annotations", None) or []:
                if getattr(annotation, "type", None) != "url_citation":
                    continue
                uri = getattr(annotation, "url", None)
                title = getattr(annotation, "title", None)
                if uri and title:
                    sources.append(Source(uri=uri, title=title))
    return dedupe_sources(sources)


class OpenAIService:
    def __init__(self):
        settings = get_settings()
        self.api_key = settings.openai_api_key
        self.analysis_model = settings.analysis_model
        self.chat_model = settings.chat_model
        self.max_output_tokens = settings.analysis_max_output_tokens
        self._client = None

    @property
    def client(self):
        if self._client is None:
            import openai
            self._client = openai.AsyncOpenAI(api_key=self.api_key)
        return self._client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def request_analysis(self, company_name: str) -> PartialStockAnalysis:
        if not self.is_configured:
            raise AnalystNotConfiguredError("OPENAI_API_KEY is not set")

        response = await self.client.responses.create(
            model=self.analysis_model,
            instructions=SYSTEM_PROMPT,
            input=f"Analyze the stock: {company_name}",
            tools=[{"type": "web_search"}],
            max_output_tokens=self.max_output_tokens,
        )

        partial = parse_analysis((response.output_text or "").strip())
        sources = extract_sources(response)
        logger.info(f"Analysis received for {company_name} ({len(sources)} sources)")
        return partial.model_copy(update={"sources": sources})

    async def open_chat_session(self, analysis: StockAnalysis) -> ChatSession:
        prompt = CHAT_SYSTEM_PROMPT.format(analysis=analysis.model_dump_json(by_alias=True, exclude={"sources"}))
        return ChatSession(system_prompt=prompt)

    async def send_chat_message(self, session: ChatSession, message: str) -> AsyncIterator[str]:
        """Stream the reply one fragment at a time; the turn is kept only if the stream completes."""
        if not self.is_configured:
            raise AnalystNotConfiguredError("OPENAI_API_KEY is not set")

        user_turn = {"role": "user", "content": message}
        stream = await self.client.chat.completions.create(
            model=self.chat_model,
            stream=True,
            messages=[
                {"role": "system", "content": session.system_prompt},
                *session.history,
                user_turn,
            ],
        )

        parts = []
        async for chunk in stream:
            if not chunk.choices:
                continue
            fragment = chunk.choices[0].delta.content
            if fragment:
                parts.append(fragment)
                yield fragment

        session.history.append(user_turn)
        session.history.append({"role": "assistant", "content": "".join(parts)})
