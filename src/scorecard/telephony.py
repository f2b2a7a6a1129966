"""Telephony gateway (Twilio) and the call-control documents it serves.

Outbound calls point Twilio back at this server: the turn endpoint for
turn-based calls, or the stream TwiML for continuous-stream calls.
Lifecycle and recording events come back through /webhook/status and
/webhook/recording with the callId in the query string.
"""

import asyncio
import logging
from typing import Protocol

import aiohttp
from twilio.base.exceptions import TwilioException
from twilio.http.async_http_client import AsyncTwilioHttpClient
from twilio.rest import Client
from twilio.twiml.voice_response import Connect, Gather, VoiceResponse

from scorecard.config import Settings
from scorecard.errors import DialError, SignalError
from scorecard.prompts import APOLOGY_LINE, CLOSING_LINE

logger = logging.getLogger(__name__)

VOICE = "Polly.Joanna"
TWIML_CONTENT_TYPE = "text/xml"
STATUS_EVENTS = ["initiated", "ringing", "answered", "completed"]

# The async Twilio client runs on aiohttp; transport failures never become TwilioException
PROVIDER_ERRORS = (TwilioException, aiohttp.ClientError, asyncio.TimeoutError, OSError)


def turn_url(base_url: str, call_id: str, step: int) -> str:
    return f"{base_url}/session/{call_id}/turn?step={step}"


def stream_twiml_url(base_url: str, call_id: str) -> str:
    return f"{base_url}/webhook/twiml?callId={call_id}"


def media_stream_url(ws_base_url: str, call_id: str) -> str:
    return f"{ws_base_url}/webhook/media-stream/{call_id}"


# --- Call-control documents ---


def build_turn_twiml(line: str, action_url: str) -> str:
    """Speak line, listen for the reply, and come back to action_url either way."""
    response = VoiceResponse()
    response.say(line, voice=VOICE)
    gather = Gather(
        input="speech",
        action=action_url,
        method="POST",
        speech_timeout="3",
        timeout=10,
        language="en-US",
    )
    gather.pause(length=5)
    response.append(gather)
    response.redirect(action_url, method="POST")
    return str(response)


def build_end_twiml(line: str) -> str:
    response = VoiceResponse()
    response.say(line, voice=VOICE)
    response.pause(length=2)
    response.say(CLOSING_LINE, voice=VOICE)
    response.hangup()
    return str(response)


def build_hangup_twiml() -> str:
    response = VoiceResponse()
    response.hangup()
    return str(response)


def build_apology_twiml() -> str:
    response = VoiceResponse()
    response.say(APOLOGY_LINE, voice=VOICE)
    response.hangup()
    return str(response)


def build_stream_twiml(stream_url: str) -> str:
    response = VoiceResponse()
    connect = Connect()
    connect.stream(url=stream_url)
    response.append(connect)
    return str(response)


def build_tone_twiml(digits: str, resume_url: str) -> str:
    """Play touch-tones into the call, then hand control back to resume_url."""
    response = VoiceResponse()
    response.play(digits=digits)
    response.redirect(resume_url, method="POST")
    return str(response)


# --- Gateway ---


class TelephonyGateway(Protocol):
    async def place_call(self, destination: str, call_id: str, callback_base_url: str) -> str:
        ...

    async def send_tone(self, provider_call_ref: str, digits: str, resume_url: str) -> None:
        ...

    async def hangup(self, provider_call_ref: str) -> None:
        ...


class TwilioGateway:
    def __init__(self, settings: Settings, client: Client | None = None):
        self.settings = settings
        self.client = client or Client(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            http_client=AsyncTwilioHttpClient(),
        )

    def answer_url(self, call_id: str, callback_base_url: str) -> str:
        if self.settings.call_mode == "stream":
            return stream_twiml_url(callback_base_url, call_id)
        return turn_url(callback_base_url, call_id, 0)

    async def place_call(self, destination: str, call_id: str, callback_base_url: str) -> str:
        """Dial destination and return Twilio's CallSid."""
        try:
            call = await self.client.calls.create_async(
                to=destination,
                from_=self.settings.twilio_phone_number,
                url=self.answer_url(call_id, callback_base_url),
                method="POST",
                status_callback=f"{callback_base_url}/webhook/status?callId={call_id}",
                status_callback_method="POST",
                status_callback_event=STATUS_EVENTS,
                record=True,
                recording_status_callback=f"{callback_base_url}/webhook/recording?callId={call_id}",
                recording_status_callback_method="POST",
                machine_detection="Enable",
            )
        except PROVIDER_ERRORS as e:
            logger.error("Dial failed for %s: %s", call_id, e)
            raise DialError(str(e)) from e
        logger.info("Dialed %s for call %s: sid=%s", destination, call_id, call.sid)
        return call.sid

    async def send_tone(self, provider_call_ref: str, digits: str, resume_url: str) -> None:
        try:
            await self.client.calls(provider_call_ref).update_async(
                twiml=build_tone_twiml(digits, resume_url),
            )
        except PROVIDER_ERRORS as e:
            logger.error("Tone %s rejected for %s: %s", digits, provider_call_ref, e)
            raise SignalError(str(e)) from e
        logger.info("Sent tone %s to %s", digits, provider_call_ref)

    async def hangup(self, provider_call_ref: str) -> None:
        try:
            await self.client.calls(provider_call_ref).update_async(status="completed")
        except PROVIDER_ERRORS as e:
            logger.error("Hangup rejected for %s: %s", provider_call_ref, e)
            raise SignalError(str(e)) from e
        logger.info("Hung up %s", provider_call_ref)
