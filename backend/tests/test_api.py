"""Endpoint tests: analysis request/response, validation, transcript, streamed chat."""

import time

import pytest

from app.api.endpoints.chat import send_message
from app.schemas.chat import ChatRequest
from app.services.openai_service import AnalystNotConfiguredError, ChatSession, MalformedAnalysisError
from app.services.session_store import REPLY_TIMEOUT, Workspace


def _analyze(client, name="삼성전자"):
    return client.post("/api/analysis", json={"stockName": name})


def _workspace(client, store):
    return store.get(client.cookies.get("session_id"))


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestRubricEndpoint:
    def test_rubric(self, client):
        data = client.get("/api/analysis/rubric").json()
        assert [s["maxScore"] for s in data["sections"]] == [35, 40, 25]
        assert data["gradeTitles"]["C"] == "C: 보유"


class TestAnalyze:
    def test_report(self, client, analyst):
        response = _analyze(client)
        assert response.status_code == 200
        data = response.json()

        analysis = data["analysis"]
        assert analysis["companyName"] == "삼성전자"
        assert analysis["totalScore"] == 62
        assert analysis["grade"] == "C"
        assert analysis["profitability"]["totalScore"] == 15
        assert analysis["sources"] == [{"uri": "https://example.com/a", "title": "A"}]
        assert data["gradeTitle"] == "C: 보유"
        assert data["achievement"] == {"profitability": 43, "shareholderReturn": 68, "growthPotential": 80}
        assert data["messages"] == [
            {"role": "model", "text": "삼성전자에 대한 분석이 완료되었습니다. 궁금한 점이 있다면 질문해주세요."},
        ]
        assert analyst.requested == ["삼성전자"]
        assert "session_id" in client.cookies

    def test_name_is_stripped(self, client, analyst):
        _analyze(client, "  SK하이닉스 ")
        assert analyst.requested == ["SK하이닉스"]

    def test_empty_name_rejected_before_request(self, client, analyst):
        response = _analyze(client, "   ")
        assert response.status_code == 400
        assert response.json()["detail"] == "종목명을 입력해주세요."
        assert analyst.requested == []

    def test_missing_name_rejected(self, client):
        assert client.post("/api/analysis", json={}).status_code == 400

    def test_too_long_name_rejected(self, client):
        assert _analyze(client, "가" * 101).status_code == 400

    def test_parse_error_message(self, client, analyst, store):
        analyst.error = MalformedAnalysisError()
        response = _analyze(client, "없는회사")
        assert response.status_code == 502
        assert response.json()["detail"] == (
            "'없는회사' 분석 중 오류 발생: 모델이 반환한 데이터의 형식이 올바르지 않습니다. "
            "회사명을 확인하거나 잠시 후 다시 시도해주세요."
        )
        workspace = _workspace(client, store)
        assert workspace.analysis is None
        assert not workspace.analyzing

    def test_unexpected_upstream_error(self, client, analyst):
        analyst.error = RuntimeError("503 from upstream")
        response = _analyze(client)
        assert response.status_code == 502
        assert "알 수 없는 오류가 발생했습니다." in response.json()["detail"]

    def test_not_configured(self, client, analyst):
        analyst.error = AnalystNotConfiguredError("OPENAI_API_KEY is not set")
        assert _analyze(client).status_code == 503

    def test_concurrent_analysis_rejected(self, client, analyst, store):
        _analyze(client)
        workspace = _workspace(client, store)
        workspace.analyzing = True

        response = _analyze(client, "LG화학")

        assert response.status_code == 409
        assert analyst.requested == ["삼성전자"]
        assert workspace.analysis.company_name == "삼성전자"

    def test_new_analysis_replaces_previous(self, client, store):
        _analyze(client)
        client.post("/api/chat/messages", json={"message": "배당은?"})
        assert len(_workspace(client, store).messages) == 3

        _analyze(client)

        assert len(_workspace(client, store).messages) == 1

    def test_current_analysis(self, client):
        assert client.get("/api/analysis").status_code == 404
        _analyze(client)
        response = client.get("/api/analysis")
        assert response.status_code == 200
        assert response.json()["analysis"]["grade"] == "C"


class TestChat:
    def test_chat_before_analysis(self, client):
        response = client.post("/api/chat/messages", json={"message": "안녕하세요"})
        assert response.status_code == 400
        assert response.json()["detail"] == "채팅이 초기화되지 않았습니다."

    def test_empty_message_rejected(self, client):
        _analyze(client)
        assert client.post("/api/chat/messages", json={"message": " "}).status_code == 400

    def test_reply_is_streamed_and_recorded(self, client, analyst):
        _analyze(client)

        response = client.post("/api/chat/messages", json={"message": "배당은 어떤가요?"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "삼성전자의 배당은 안정적입니다."
        assert analyst.sent == ["배당은 어떤가요?"]
        messages = client.get("/api/chat/messages").json()
        assert messages[1:] == [
            {"role": "user", "text": "배당은 어떤가요?"},
            {"role": "model", "text": "삼성전자의 배당은 안정적입니다."},
        ]

    def test_failure_becomes_apology(self, client, analyst, store):
        _analyze(client)
        analyst.fragments = []
        analyst.chat_error = RuntimeError("stream dropped")

        response = client.post("/api/chat/messages", json={"message": "전망은?"})

        assert response.status_code == 200
        assert response.text == "죄송합니다, 오류가 발생했습니다. 다시 시도해 주세요."
        messages = client.get("/api/chat/messages").json()
        assert messages[-2:] == [
            {"role": "user", "text": "전망은?"},
            {"role": "model", "text": "죄송합니다, 오류가 발생했습니다. 다시 시도해 주세요."},
        ]
        assert not _workspace(client, store).chatting

    def test_failure_mid_stream_keeps_partial_reply(self, client, analyst):
        _analyze(client)
        analyst.fragments = ["부분 답변"]
        analyst.chat_error = RuntimeError("stream dropped")

        response = client.post("/api/chat/messages", json={"message": "전망은?"})

        assert response.text == "부분 답변\n\n죄송합니다, 오류가 발생했습니다. 다시 시도해 주세요."
        messages = client.get("/api/chat/messages").json()
        assert [m["text"] for m in messages[-2:]] == [
            "부분 답변", "죄송합니다, 오류가 발생했습니다. 다시 시도해 주세요.",
        ]

    def test_conversation_continues_after_failure(self, client, analyst):
        _analyze(client)
        analyst.chat_error = RuntimeError("stream dropped")
        client.post("/api/chat/messages", json={"message": "첫 질문"})

        analyst.chat_error = None
        response = client.post("/api/chat/messages", json={"message": "다시 질문"})

        assert response.status_code == 200
        assert response.text == "삼성전자의 배당은 안정적입니다."

    def test_concurrent_message_rejected(self, client, store):
        _analyze(client)
        _workspace(client, store).begin_chat()
        response = client.post("/api/chat/messages", json={"message": "질문"})
        assert response.status_code == 409

    def test_transcript_without_session(self, client):
        assert client.get("/api/chat/messages").json() == []


class TestUnreadReply:
    """Replies whose streamed body is dropped before it is read."""

    @staticmethod
    def _ready_workspace():
        workspace = Workspace(client_id="c1")
        workspace.chat = ChatSession(system_prompt="system")
        return workspace

    @pytest.mark.asyncio
    async def test_new_analysis_releases_the_workspace(self, analyst):
        workspace = self._ready_workspace()
        await send_message(ChatRequest(message="질문"), workspace, analyst)
        assert workspace.busy

        workspace.begin_analysis()
        workspace.end_analysis()
        workspace.chat = ChatSession(system_prompt="system")

        assert not workspace.chatting
        assert not workspace.busy
        response = await send_message(ChatRequest(message="다시 질문"), workspace, analyst)
        assert [f async for f in response.body_iterator] == analyst.fragments
        assert not workspace.busy

    @pytest.mark.asyncio
    async def test_stale_reply_does_not_release_newer_one(self, analyst):
        workspace = self._ready_workspace()
        stale = await send_message(ChatRequest(message="첫 질문"), workspace, analyst)
        workspace.begin_analysis()
        workspace.end_analysis()
        workspace.chat = ChatSession(system_prompt="system")
        await send_message(ChatRequest(message="두 번째 질문"), workspace, analyst)

        [f async for f in stale.body_iterator]

        assert workspace.chatting
        assert workspace.busy

    @pytest.mark.asyncio
    async def test_abandoned_reply_times_out(self, analyst):
        workspace = self._ready_workspace()
        await send_message(ChatRequest(message="질문"), workspace, analyst)
        workspace.chat_started_at = time.time() - REPLY_TIMEOUT - 1

        assert not workspace.busy
        response = await send_message(ChatRequest(message="다시 질문"), workspace, analyst)
        assert [f async for f in response.body_iterator] == analyst.fragments
