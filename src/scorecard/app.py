"""HTTP, webhook and WebSocket surface of the mystery-shopper service.

create_app() wires the collaborators together; main() validates the
environment, configures logging and serves the app with uvicorn.
"""

import asyncio
import json
import logging
import random
import re
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from scorecard.bridge import MediaBridge, SessionFactory
from scorecard.call_status import advance_status, apply_status_event
from scorecard.config import Settings, validate_config
from scorecard.conversation import ConversationController
from scorecard.errors import NotFoundError, ScorecardError, SignalError, ValidationError
from scorecard.judge import Judge
from scorecard.llm import ChatClient
from scorecard.models import CallRecord, CallStatus, PracticeInfo
from scorecard.observer import EventType, ObserverEvent, ObserverHub, build_snapshot, status_event
from scorecard.post_call import handle_call_ended
from scorecard.prompts import realtime_instructions
from scorecard.realtime import RealtimeSession
from scorecard.scoring import ScoringEngine
from scorecard.store import CallRecordStore, InMemoryCallRecordStore
from scorecard.telephony import (
    TWIML_CONTENT_TYPE,
    TelephonyGateway,
    TwilioGateway,
    build_stream_twiml,
    media_stream_url,
    stream_twiml_url,
    turn_url,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DIGITS_RE = re.compile(r"^[0-9*#wW]+$")


def _twiml(xml: str) -> Response:
    return Response(content=xml, media_type=TWIML_CONTENT_TYPE)


def _parse_confidence(value) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def create_app(
    settings: Settings,
    store: CallRecordStore | None = None,
    gateway: TelephonyGateway | None = None,
    chat: ChatClient | None = None,
    judge_chat: ChatClient | None = None,
    hub: ObserverHub | None = None,
    session_factory: SessionFactory | None = None,
    rng: random.Random | None = None,
) -> FastAPI:
    store = store or InMemoryCallRecordStore()
    hub = hub or ObserverHub()
    gateway = gateway or TwilioGateway(settings)
    chat = chat or ChatClient(
        settings.openai_api_key, settings.openai_chat_model, settings.openai_base_url,
    )
    judge_chat = judge_chat or ChatClient(
        settings.openai_api_key, settings.openai_judge_model, settings.openai_base_url,
    )

    if session_factory is None:
        async def session_factory(call_id: str) -> RealtimeSession:
            record = await store.require(call_id)
            return RealtimeSession(
                settings.openai_api_key,
                settings.openai_realtime_model,
                realtime_instructions(record.practice_info),
                voice=settings.realtime_voice,
            )

    controller = ConversationController(store, hub, chat, settings.public_base_url, rng=rng)
    bridge = MediaBridge(hub, session_factory)
    scoring = ScoringEngine(store, Judge(judge_chat))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await chat.close()
        await judge_chat.close()

    app = FastAPI(title="Scorecard Call Agent", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.hub = hub
    app.state.controller = controller
    app.state.bridge = bridge
    app.state.scoring = scoring

    @app.exception_handler(ScorecardError)
    async def scorecard_error_handler(request: Request, exc: ScorecardError):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})

    async def on_status_changed(record: CallRecord) -> None:
        hub.publish(record.call_id, status_event(record.status.value))
        if record.status.is_terminal:
            controller.release(record.call_id)
            handle_call_ended(record)

    @app.get("/health")
    async def health():
        return PlainTextResponse("ok")

    # --- Sessions ---

    @app.post("/session")
    async def create_session(request: Request):
        practice_info = PracticeInfo.from_payload(await _json_body(request))
        record = await store.create(practice_info)
        call_id = record.call_id
        logger.info("Created call %s for %s", call_id, practice_info.practice_name)

        try:
            provider_ref = await gateway.place_call(
                practice_info.phone_number, call_id, settings.public_base_url,
            )
        except ScorecardError:
            record, changed = await store.update(
                call_id, lambda r: advance_status(r, CallStatus.FAILED),
            )
            if changed:
                await on_status_changed(record)
            raise

        def set_ref(r: CallRecord) -> None:
            r.provider_call_ref = provider_ref

        await store.update(call_id, set_ref)
        return {"success": True, "callId": call_id, "providerCallRef": provider_ref}

    @app.get("/session")
    async def list_sessions():
        records = await store.list_all()
        return {"success": True, "calls": [r.summary() for r in records]}

    @app.get("/session/{call_id}")
    async def get_session(call_id: str):
        record = await store.require(call_id)
        return {"success": True, "call": record.to_dict()}

    @app.delete("/session/{call_id}")
    async def delete_session(call_id: str):
        await store.delete(call_id)
        controller.release(call_id)
        hub.close(call_id)
        return {"success": True}

    @app.post("/session/{call_id}/turn")
    async def take_turn(call_id: str, request: Request, step: int = 0):
        form = await request.form()
        result = await controller.take_turn(
            call_id,
            step,
            utterance=form.get("SpeechResult"),
            confidence=_parse_confidence(form.get("Confidence")),
        )
        return _twiml(result.twiml)

    @app.post("/session/{call_id}/signal")
    async def send_signal(call_id: str, request: Request):
        body = await _json_body(request)
        digits = str(body.get("digit") or body.get("digits") or "")
        if not DIGITS_RE.match(digits):
            raise ValidationError("digit must be one or more of 0-9, * or #")

        record = await store.require(call_id)
        if not record.provider_call_ref or not record.status.is_active:
            raise SignalError(f"Call {call_id} is not active", status_code=409)

        if settings.call_mode == "stream":
            resume_url = stream_twiml_url(settings.public_base_url, call_id)
        else:
            step = controller.pending_step(call_id) or 1
            resume_url = turn_url(settings.public_base_url, call_id, step)

        await gateway.send_tone(record.provider_call_ref, digits, resume_url)
        hub.publish(call_id, ObserverEvent(EventType.IVR, {"digits": digits}))
        return {"success": True}

    @app.post("/session/{call_id}/hangup")
    async def hangup(call_id: str):
        record = await store.require(call_id)
        if not record.provider_call_ref:
            raise NotFoundError(f"Call {call_id} has no provider call")
        await gateway.hangup(record.provider_call_ref)
        return {"success": True}

    # --- Observer ---

    @app.get("/session/{call_id}/observe")
    async def observe_snapshot(call_id: str):
        record = await store.require(call_id)
        return {
            "success": True,
            **build_snapshot(record),
            "pollInterval": settings.observer_poll_interval,
        }

    @app.websocket("/session/{call_id}/observe")
    async def observe_stream(websocket: WebSocket, call_id: str):
        await websocket.accept()
        subscription = hub.attach(call_id)
        record = await store.get(call_id)
        if record is None:
            hub.detach(call_id, subscription)
            await websocket.send_json(
                ObserverEvent(EventType.ERROR, {"error": f"Call {call_id} not found"}).to_dict()
            )
            await websocket.close(code=4404)
            return

        snapshot = build_snapshot(record)
        subscription.discard_covered(snapshot)
        await websocket.send_json(ObserverEvent(EventType.STATUS, snapshot).to_dict())
        if record.status.is_terminal:
            hub.detach(call_id, subscription)
            await websocket.close()
            return

        async def watch_disconnect():
            with suppress(WebSocketDisconnect):
                while True:
                    await websocket.receive_text()
            hub.detach(call_id, subscription)

        watcher = asyncio.create_task(watch_disconnect())
        try:
            while True:
                event = await subscription.next()
                if event is None:
                    break
                await websocket.send_json(event.to_dict())
        except WebSocketDisconnect:
            logger.info("Observer for %s went away", call_id)
        finally:
            watcher.cancel()
            with suppress(asyncio.CancelledError):
                await watcher
            hub.detach(call_id, subscription)
        with suppress(RuntimeError):
            await websocket.close()

    # --- Provider webhooks ---

    @app.post("/webhook/status")
    async def status_webhook(request: Request):
        call_id = request.query_params.get("callId")
        if not call_id:
            return JSONResponse(status_code=400, content={"success": False, "error": "Missing callId"})
        try:
            form = await request.form()
            record, changed = await store.update(
                call_id,
                lambda r: apply_status_event(
                    r,
                    form.get("CallStatus", ""),
                    duration=form.get("CallDuration"),
                    timestamp=form.get("Timestamp"),
                    answered_by=form.get("AnsweredBy", ""),
                ),
            )
            if changed:
                await on_status_changed(record)
        except Exception as e:
            logger.error("Status webhook failed for %s: %s", call_id, e, exc_info=True)
        return {"success": True}

    @app.post("/webhook/recording")
    async def recording_webhook(request: Request):
        call_id = request.query_params.get("callId")
        if not call_id:
            return JSONResponse(status_code=400, content={"success": False, "error": "Missing callId"})
        try:
            form = await request.form()
            recording_status = form.get("RecordingStatus", "")
            recording_url = form.get("RecordingUrl", "")
            logger.info("Recording %s status for %s: %s", form.get("RecordingSid", ""), call_id, recording_status)
            if recording_status == "completed" and recording_url:
                def set_audio(r: CallRecord) -> bool:
                    if r.audio_url is not None:
                        return False
                    r.audio_url = f"{recording_url}.mp3"
                    return True

                record, saved = await store.update(call_id, set_audio)
                if saved:
                    logger.info("Recording saved for call %s", call_id)
        except Exception as e:
            logger.error("Recording webhook failed for %s: %s", call_id, e, exc_info=True)
        return {"success": True}

    @app.api_route("/webhook/twiml", methods=["GET", "POST"])
    async def stream_twiml(request: Request):
        """TwiML that tells Twilio to open a media stream for this call."""
        call_id = request.query_params.get("callId")
        if not call_id:
            return PlainTextResponse("Missing callId", status_code=400)
        return _twiml(build_stream_twiml(media_stream_url(settings.websocket_base_url, call_id)))

    @app.websocket("/webhook/media-stream/{call_id}")
    async def media_stream(websocket: WebSocket, call_id: str):
        await websocket.accept()
        await bridge.run(websocket, call_id)

    # --- Scoring ---

    @app.post("/score/{call_id}")
    async def score_call(call_id: str, rescore: bool = False):
        report = await scoring.score_call(call_id, rescore=rescore)
        return {"success": True, **report.to_dict()}

    @app.get("/score/{call_id}")
    async def get_scores(call_id: str):
        report = await scoring.get_scores(call_id)
        return {"success": True, **report.to_dict()}

    return app


def main() -> None:
    validate_config()
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    app = create_app(settings)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
