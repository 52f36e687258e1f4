"""API request validation utilities."""
from fastapi import HTTPException

MAX_COMPANY_NAME_LENGTH = 100
MAX_CHAT_MESSAGE_LENGTH = 2000


def validate_company_name(name: str | None) -> str:
    """Validate and normalize a company/stock name.

    Args:
        name: Raw company name from the request body

    Returns:
        Company name with surrounding whitespace stripped

    Raises:
        HTTPException: If the name is empty or too long
    """
    if not name or not name.strip():
        raise HTTPException(status_code=400, detail="종목명을 입력해주세요.")

    name = name.strip()

    if len(name) > MAX_COMPANY_NAME_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"종목명은 {MAX_COMPANY_NAME_LENGTH}자 이하로 입력해주세요."
        )

    return name


def validate_chat_message(message: str | None) -> str:
    if not message or not message.strip():
        raise HTTPException(status_code=400, detail="메시지를 입력해주세요.")

    message = message.strip()

    if len(message) > MAX_CHAT_MESSAGE_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"메시지는 {MAX_CHAT_MESSAGE_LENGTH}자 이하로 입력해주세요."
        )

    return message
