"""
Control & status routes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from commentator.domain.errors import ConfigurationError, MarketDataUnavailable
from commentator.domain.schemas.control import SpeakRequest, SpeakResponse, WatchRequest, WatchResponse
from commentator.realtime.runtime import CommentaryEngine

router = APIRouter()


def get_engine(request: Request) -> CommentaryEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Commentary engine not initialized")
    return engine


def require_control_token(request: Request, authorization: Optional[str] = Header(default=None)) -> None:
    expected = getattr(request.app.state, "control_token", None)
    if not expected:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or token.strip() != expected:
        raise HTTPException(status_code=401, detail="Invalid control token")


@router.get("/status")
async def status(engine: CommentaryEngine = Depends(get_engine)):
    return engine.status()


@router.post("/control/watch", response_model=WatchResponse, dependencies=[Depends(require_control_token)])
async def watch(payload: WatchRequest, engine: CommentaryEngine = Depends(get_engine)):
    try:
        if engine.live:
            await engine.retarget(payload.address)
        else:
            await engine.start(payload.address)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except MarketDataUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    market = engine.aggregator.market
    return WatchResponse(
        address=engine.address or payload.address,
        symbol=market.symbol if market else None,
        live=engine.live,
    )


@router.post("/control/speak", response_model=SpeakResponse, dependencies=[Depends(require_control_token)])
async def speak(payload: SpeakRequest, engine: CommentaryEngine = Depends(get_engine)):
    accepted = engine.say(payload.text, payload.emotion)
    return SpeakResponse(accepted=accepted, queue_depth=engine.speech_queue.size())
