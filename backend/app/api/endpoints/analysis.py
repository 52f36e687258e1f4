import logging

from fastapi import APIRouter, Depends, HTTPException

from app.analysis.normalizer import normalize
from app.analysis.rubric import build_rubric, grade_title, section_achievement
from app.api.dependencies import get_analyst, get_existing_workspace, get_workspace
from app.api.validation import validate_company_name
from app.schemas.analysis import AnalysisReport, AnalysisRequest, Rubric
from app.schemas.chat import ChatMessage
from app.services.openai_service import AnalysisError, AnalystNotConfiguredError, OpenAIService
from app.services.session_store import Workspace, WorkspaceBusyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analysis", tags=["analysis"])

GREETING = "{company_name}에 대한 분석이 완료되었습니다. 궁금한 점이 있다면 질문해주세요."
UNKNOWN_ERROR = "알 수 없는 오류가 발생했습니다."


def _failure_detail(stock_name: str, reason: str) -> str:
    return f"'{stock_name}' 분석 중 오류 발생: {reason} 회사명을 확인하거나 잠시 후 다시 시도해주세요."


def _build_report(workspace: Workspace) -> AnalysisReport:
    analysis = workspace.analysis
    return AnalysisReport(
        analysis=analysis,
        grade_title=grade_title(analysis.grade),
        achievement=section_achievement(analysis),
        messages=list(workspace.messages),
    )


@router.get("/rubric", response_model=Rubric)
async def get_rubric():
    return build_rubric()


@router.post("", response_model=AnalysisReport)
async def analyze_stock(
    request: AnalysisRequest,
    workspace: Workspace = Depends(get_workspace),
    analyst: OpenAIService = Depends(get_analyst),
):
    """Run a scored analysis for a company and open a follow-up chat anchored to it."""
    stock_name = validate_company_name(request.stock_name)

    try:
        workspace.begin_analysis()
    except WorkspaceBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    try:
        raw = await analyst.request_analysis(stock_name)
        analysis = normalize(raw)
        chat = await analyst.open_chat_session(analysis)
    except AnalystNotConfiguredError as e:
        logger.error(f"Analyst unavailable: {e}")
        raise HTTPException(status_code=503, detail="분석 서비스가 설정되지 않았습니다.")
    except AnalysisError as e:
        raise HTTPException(status_code=502, detail=_failure_detail(stock_name, str(e)))
    except Exception as e:
        logger.error(f"Analysis request failed for {stock_name}: {e}")
        raise HTTPException(status_code=502, detail=_failure_detail(stock_name, UNKNOWN_ERROR))
    finally:
        workspace.end_analysis()

    workspace.analysis = analysis
    workspace.chat = chat
    workspace.messages = [ChatMessage(role="model", text=GREETING.format(company_name=analysis.company_name))]
    logger.info(f"{analysis.company_name}: total {analysis.total_score}, grade {analysis.grade.value}")
    return _build_report(workspace)


@router.get("", response_model=AnalysisReport)
async def get_current_analysis(workspace: Workspace | None = Depends(get_existing_workspace)):
    if workspace is None or workspace.analysis is None:
        raise HTTPException(status_code=404, detail="분석 결과가 없습니다.")
    return _build_report(workspace)
