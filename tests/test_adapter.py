"""
Tests for the host boundary: runtime construction, turn responses, envelope routing.
"""
import pytest

from echo_bridge import adapter
from echo_bridge.adapter import (
    CHAT_REPROMPT,
    EMPTY_UTTERANCE_SPEECH,
    GOODBYE_SPEECH,
    HELP_SPEECH,
    LAUNCH_SPEECH,
    BridgeRuntime,
    TurnRequest,
    handle_envelope,
    load_runtime,
    respond_to_turn,
)
from echo_bridge.config import Settings
from echo_bridge.errors import (
    GENERIC_ERROR_SPEECH,
    NOT_CONFIGURED_SPEECH,
    TransportError,
)
from echo_bridge.spacebot_client import InboundMessage, ReplyCollection


DIRECTIVE_REPLY = "\n".join([
    "Here is your update.",
    "```json",
    '{"echo_show":{"template":"content_list_v1","title":"Now","body":"Do these","items":["A","B"]}}',
    "```",
])


class MockClient:
    def __init__(self, text=DIRECTIVE_REPLY, error=None):
        self.text = text
        self.error = error
        self.sent = []

    async def send_message(self, conversation_id, sender_id, content, agent_id=None):
        self.sent.append(content)
        if self.error:
            raise self.error

    async def collect_reply(self, conversation_id):
        return ReplyCollection(
            text=self.text,
            raw_messages=(InboundMessage(type="text", content=self.text),),
            timed_out=False,
            received_messages=True,
        )


def make_runtime(client):
    return BridgeRuntime(settings=Settings(base_url="http://localhost:18789"), client=client)


def make_turn(utterance="status report", visual=True):
    return TurnRequest(
        app_id="amzn1.ask.skill.test",
        user_id="amzn1.ask.account.user",
        device_id="amzn1.ask.device.device",
        request_id="EdwRequestId.test",
        utterance=utterance,
        device_supports_visual_rendering=visual,
    )


def make_envelope(request, apl=True):
    interfaces = {"Alexa.Presentation.APL": {}} if apl else {}
    return {
        "context": {
            "System": {
                "application": {"applicationId": "amzn1.ask.skill.test"},
                "user": {"userId": "amzn1.ask.account.user"},
                "device": {
                    "deviceId": "amzn1.ask.device.device",
                    "supportedInterfaces": interfaces,
                },
            }
        },
        "request": {"requestId": "EdwRequestId.test", **request},
    }


def chat_request(query):
    return {
        "type": "IntentRequest",
        "intent": {"name": "ChatIntent", "slots": {"query": {"name": "query", "value": query}}},
    }


def test_load_runtime_returns_none_when_not_configured():
    assert load_runtime({}) is None


def test_load_runtime_builds_client_from_settings():
    runtime = load_runtime({"SPACEBOT_WEBHOOK_BASE": "https://example.test/", "SPACEBOT_MAX_WAIT_MS": "2000"})

    assert runtime is not None
    assert runtime.client.base_url == "https://example.test"
    assert runtime.client.max_wait_ms == 2000


@pytest.mark.asyncio
async def test_respond_to_turn_with_directive_on_visual_device():
    client = MockClient()

    response = await respond_to_turn(make_turn(), make_runtime(client))

    assert response.speech_text == "Here is your update."
    assert response.card_text == "Here is your update."
    assert response.reprompt_text == CHAT_REPROMPT
    assert response.directive["template"] == "content_list_v1"
    assert response.directive["items"] == ["A", "B"]
    assert "imageUrl" not in response.directive
    assert len(client.sent) == 1


@pytest.mark.asyncio
async def test_respond_to_turn_omits_directive_for_voice_only_device():
    response = await respond_to_turn(make_turn(visual=False), make_runtime(MockClient()))

    assert response.speech_text == "Here is your update."
    assert response.directive is None
    assert "directive" not in response.to_dict()


@pytest.mark.asyncio
async def test_respond_to_turn_not_configured_does_no_io():
    response = await respond_to_turn(make_turn(), None)
    assert response.speech_text == NOT_CONFIGURED_SPEECH


@pytest.mark.asyncio
async def test_respond_to_turn_empty_utterance_asks_again():
    client = MockClient()

    response = await respond_to_turn(make_turn(utterance="   "), make_runtime(client))

    assert response.speech_text == EMPTY_UTTERANCE_SPEECH
    assert response.reprompt_text
    assert client.sent == []


@pytest.mark.asyncio
async def test_respond_to_turn_maps_transport_error_to_apology():
    client = MockClient(error=TransportError("HTTP 503", operation="send", status=503))

    response = await respond_to_turn(make_turn(), make_runtime(client))

    assert response.speech_text == GENERIC_ERROR_SPEECH
    assert response.directive is None
    assert "503" not in response.speech_text


@pytest.mark.asyncio
async def test_respond_to_turn_maps_unexpected_error_to_apology():
    client = MockClient(error=RuntimeError("boom"))

    response = await respond_to_turn(make_turn(), make_runtime(client))

    assert response.speech_text == GENERIC_ERROR_SPEECH


def test_turn_request_from_envelope():
    turn = TurnRequest.from_envelope(make_envelope(chat_request("  show my tasks ")))

    assert turn.utterance == "show my tasks"
    assert turn.device_supports_visual_rendering is True
    assert turn.identity.device_id == "amzn1.ask.device.device"
    assert turn.identity.request_id == "EdwRequestId.test"


def test_turn_request_from_envelope_without_apl_or_slot():
    envelope = make_envelope({"type": "IntentRequest", "intent": {"name": "ChatIntent"}}, apl=False)

    turn = TurnRequest.from_envelope(envelope)

    assert turn.utterance == ""
    assert turn.device_supports_visual_rendering is False


@pytest.mark.asyncio
async def test_handle_envelope_routes_chat_intent():
    response = await handle_envelope(make_envelope(chat_request("status")), make_runtime(MockClient()))

    assert response.speech_text == "Here is your update."
    assert response.directive is not None


@pytest.mark.asyncio
async def test_handle_envelope_canned_intents():
    runtime = make_runtime(MockClient())

    launch = await handle_envelope(make_envelope({"type": "LaunchRequest"}), runtime)
    help_ = await handle_envelope(
        make_envelope({"type": "IntentRequest", "intent": {"name": "AMAZON.HelpIntent"}}), runtime
    )
    stop = await handle_envelope(
        make_envelope({"type": "IntentRequest", "intent": {"name": "AMAZON.StopIntent"}}), runtime
    )
    ended = await handle_envelope(make_envelope({"type": "SessionEndedRequest"}), runtime)

    assert launch.speech_text == LAUNCH_SPEECH
    assert help_.speech_text == HELP_SPEECH
    assert stop.speech_text == GOODBYE_SPEECH
    assert stop.should_end_session is True
    assert ended is None


@pytest.mark.asyncio
async def test_handle_envelope_not_configured():
    launch = await handle_envelope(make_envelope({"type": "LaunchRequest"}), None)
    chat = await handle_envelope(make_envelope(chat_request("status")), None)
    stop = await handle_envelope(
        make_envelope({"type": "IntentRequest", "intent": {"name": "AMAZON.CancelIntent"}}), None
    )

    assert launch.speech_text == NOT_CONFIGURED_SPEECH
    assert chat.speech_text == NOT_CONFIGURED_SPEECH
    assert stop.speech_text == GOODBYE_SPEECH


@pytest.mark.asyncio
async def test_handle_envelope_unknown_intent_falls_back():
    response = await handle_envelope(
        make_envelope({"type": "IntentRequest", "intent": {"name": "AMAZON.FallbackIntent"}}),
        make_runtime(MockClient()),
    )
    assert response.speech_text == adapter.FALLBACK_SPEECH
