"""
API routes for telemetry frame decoding.
"""

from fastapi import APIRouter, HTTPException

from tanklevel.api.schemas import DecodeFrameRequest, ErrorResponse, FrameResponse
from tanklevel.models.frame import TelemetryFrame
from tanklevel.services.frame_decoder import DecodeError, decode


router = APIRouter(prefix="/frames", tags=["frames"])


def build_frame_response(frame: TelemetryFrame) -> FrameResponse:
    record = frame.to_record()
    return FrameResponse(
        **record,
        declared_length_matches=frame.declared_length_matches,
        fields=list(frame.fields),
    )


@router.post(
    "/decode",
    response_model=FrameResponse,
    responses={422: {"model": ErrorResponse}},
)
async def decode_frame(request: DecodeFrameRequest):
    """
    Decode one hex payload without storing it.

    Malformed, truncated, non-hex or wrong-header payloads are rejected with 422.
    """
    try:
        frame = decode(request.raw_line, request.timestamp)
    except DecodeError as e:
        raise HTTPException(status_code=422, detail=f"{type(e).__name__}: {e}")

    return build_frame_response(frame)
