import logging
import traceback

from fastapi.responses import JSONResponse

from patent_explorer.config import settings
from patent_explorer.schemas.chat import ChatErrorCode

logger = logging.getLogger(__name__)

def error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__ or "An unexpected error occurred"

def compatibility_issue(message: str):
    """'tools' or 'thinking' when the failure points at an unsupported model feature, else None."""
    lowered = message.lower()
    if "tool" in lowered or "function" in lowered:
        return "tools"
    if "thinking" in lowered:
        return "thinking"
    return None

def classify_chat_error(error: BaseException) -> JSONResponse:
    """
    Map a failure raised before the stream opened to the chat error
    contract: 400 MODEL_COMPATIBILITY_ERROR for tool or reasoning support
    problems, 500 CHAT_ERROR otherwise.
    """
    message = error_message(error)
    issue = compatibility_issue(message)
    logger.error(f"[Chat API] Error: {message} (compatibility issue: {issue})")

    if issue:
        return JSONResponse(
            status_code=400,
            content={
                "error": ChatErrorCode.MODEL_COMPATIBILITY_ERROR.value,
                "message": message,
                "compatibilityIssue": issue,
            },
        )

    content = {"error": ChatErrorCode.CHAT_ERROR.value, "message": message}
    # Stack traces stay out of production responses
    if settings.is_development:
        content["details"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return JSONResponse(status_code=500, content=content)
