"""
HTTP surface for the Echo Show bridge.

- POST /turn: one turn in the host boundary shape (already-dispatched intent)
- POST /alexa: a raw Alexa request envelope, routed by request type/intent
- GET /health

The bridge runtime is built once at startup and kept on app.state. Turn
endpoints always answer 200 with speech; failures become spoken apologies.
"""
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from echo_bridge.adapter import (
    BridgeResponse,
    BridgeRuntime,
    TurnRequest,
    handle_envelope,
    load_runtime,
    respond_to_turn,
)
from echo_bridge.errors import GENERIC_ERROR_REPROMPT, GENERIC_ERROR_SPEECH
from logging_setup import get_logger, Component
from observability.events import Severity, skill_server_emitter


logger = get_logger(Component.SKILL_SERVER)


class TurnPayload(BaseModel):
    """Per-turn fields supplied by the voice-dispatch host."""

    model_config = ConfigDict(populate_by_name=True)

    app_id: Optional[str] = Field(None, alias="appId")
    user_id: Optional[str] = Field(None, alias="userId")
    device_id: Optional[str] = Field(None, alias="deviceId")
    request_id: Optional[str] = Field(None, alias="requestId")
    utterance: Optional[str] = None
    device_supports_visual_rendering: bool = Field(False, alias="deviceSupportsVisualRendering")

    @field_validator("app_id", "user_id", "device_id", "request_id", "utterance", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Optional[str]:
        # hosts send numeric ids; anything that is not a scalar is dropped
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None

    @field_validator("device_supports_visual_rendering", mode="before")
    @classmethod
    def coerce_flag(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)

    def to_turn_request(self) -> TurnRequest:
        return TurnRequest(
            app_id=self.app_id,
            user_id=self.user_id,
            device_id=self.device_id,
            request_id=self.request_id,
            utterance=self.utterance or "",
            device_supports_visual_rendering=self.device_supports_visual_rendering,
        )


def _apology() -> BridgeResponse:
    return BridgeResponse(speech_text=GENERIC_ERROR_SPEECH, reprompt_text=GENERIC_ERROR_REPROMPT)


def create_app(runtime: Optional[BridgeRuntime] = None, *, load_from_env: bool = True) -> FastAPI:
    """
    Build the app. Pass `runtime` to skip environment loading (tests, embedding).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.runtime is None and load_from_env:
            app.state.runtime = load_runtime()
        yield

    app = FastAPI(title="Spacebot Echo Show Bridge", lifespan=lifespan)
    app.state.runtime = runtime

    @app.post("/turn")
    async def handle_turn(payload: TurnPayload, request: Request) -> Dict[str, Any]:
        turn = payload.to_turn_request()
        try:
            response = await respond_to_turn(turn, request.app.state.runtime)
        except Exception as e:
            # respond_to_turn should not raise; keep the host answered regardless
            logger.exception("Turn handler exception", error_type=type(e).__name__)
            skill_server_emitter.emit(
                "skill.request_failed",
                conversation_id="unknown",
                severity=Severity.ERROR,
                correlation_id=payload.request_id,
                error_class=type(e).__name__,
            )
            response = _apology()
        return response.to_dict()

    @app.post("/alexa")
    async def handle_alexa(request: Request):
        try:
            envelope = await request.json()
        except ValueError:
            logger.warning("Alexa request body is not JSON")
            return JSONResponse(status_code=400, content={"error": "invalid_json"})
        if not isinstance(envelope, dict):
            return JSONResponse(status_code=400, content={"error": "invalid_envelope"})

        alexa_request = envelope.get("request")
        request_id = alexa_request.get("requestId") if isinstance(alexa_request, dict) else None
        try:
            response = await handle_envelope(envelope, request.app.state.runtime)
        except Exception as e:
            logger.exception("Alexa handler exception", error_type=type(e).__name__)
            skill_server_emitter.emit(
                "skill.request_failed",
                conversation_id="unknown",
                severity=Severity.ERROR,
                correlation_id=request_id,
                error_class=type(e).__name__,
            )
            response = _apology()

        if response is None:
            return {}
        return response.to_dict()

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "component": "skill_server",
            "configured": app.state.runtime is not None,
        }

    return app


app = create_app()
