"""LINE relay API: forwards a text message to the LINE push endpoint."""

import logging

import httpx
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.core.deps import LinePushClientDep
from app.models.line import RelayRequest, RelayResult
from app.services.line_relay import MISSING_FIELDS_ERROR

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/line", tags=["line"])

# The relay is callable from any origin; preflights are answered in app.main
RELAY_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With, Accept",
}


def _result_response(status_code: int, result: RelayResult) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=result.model_dump(exclude_none=True))


@router.api_route(
    "/push",
    methods=["GET", "PUT", "PATCH", "DELETE"],
    response_model=RelayResult,
    status_code=405,
    include_in_schema=False,
)
def push_method_not_allowed() -> JSONResponse:
    return _result_response(405, RelayResult(success=False, error="Method not allowed"))


@router.post("/push", response_model=RelayResult, response_model_exclude_none=True)
async def push_message(body: RelayRequest, push_client: LinePushClientDep) -> JSONResponse:
    """Forward `text` to `destination` using `credential` as the bearer token.

    Upstream failures keep LINE's status code; success is always 200.
    """
    credential = body.credential or ""
    logger.info(
        "Relay request: token length %d (%s...), destination %s, text length %d",
        len(credential),
        credential[:6],
        body.destination,
        len(body.text or ""),
    )
    if not body.credential or not body.destination or not body.text:
        return _result_response(400, RelayResult(success=False, error=MISSING_FIELDS_ERROR))

    try:
        status_code, result = await push_client.push_text(
            credential=body.credential,
            destination=body.destination,
            text=body.text,
        )
    except httpx.HTTPError as e:
        err_msg = str(e).strip() or type(e).__name__
        logger.error("LINE push request failed: %s", err_msg)
        return _result_response(500, RelayResult(success=False, error=err_msg))

    return _result_response(200 if result.success else status_code, result)
