"""
Tests for the skill server HTTP surface.
"""
import json

import pytest
from fastapi.testclient import TestClient

from echo_bridge.adapter import EMPTY_UTTERANCE_SPEECH, BridgeRuntime
from echo_bridge.config import Settings
from echo_bridge.errors import GENERIC_ERROR_SPEECH, NOT_CONFIGURED_SPEECH
from echo_bridge.spacebot_client import ReplyCollection
from skill_server import webhook_server
from skill_server.webhook_server import create_app


REPLY = (
    'Two things. ```json\n{"echo_show":{"template":"content_list_v1","title":"Today",'
    '"items":["Standup","Review"],"image_url":"https://example.com/today.png"}}\n```'
)


class MockClient:
    def __init__(self, text=REPLY):
        self.text = text

    async def send_message(self, conversation_id, sender_id, content, agent_id=None):
        return None

    async def collect_reply(self, conversation_id):
        return ReplyCollection(text=self.text, raw_messages=(), timed_out=False, received_messages=True)


@pytest.fixture
def client():
    runtime = BridgeRuntime(settings=Settings(base_url="http://localhost:18789"), client=MockClient())
    return TestClient(create_app(runtime))


@pytest.fixture
def unconfigured_client():
    return TestClient(create_app(None, load_from_env=False))


def turn_body(**overrides):
    body = {
        "appId": "amzn1.ask.skill.test",
        "userId": "amzn1.ask.account.user",
        "deviceId": "amzn1.ask.device.device",
        "requestId": "EdwRequestId.test",
        "utterance": "what is on today",
        "deviceSupportsVisualRendering": True,
    }
    body.update(overrides)
    return body


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "component": "skill_server", "configured": True}


def test_turn_returns_speech_card_and_directive(client):
    res = client.post("/turn", json=turn_body())

    assert res.status_code == 200
    data = res.json()
    assert data["speechText"] == "Two things."
    assert data["cardText"] == "Two things."
    assert data["directive"]["items"] == ["Standup", "Review"]
    assert data["directive"]["imageUrl"] == "https://example.com/today.png"


def test_turn_omits_directive_without_visual_support(client):
    res = client.post("/turn", json=turn_body(deviceSupportsVisualRendering=False))

    assert res.status_code == 200
    assert "directive" not in res.json()


def test_turn_null_utterance_and_numeric_ids_are_accepted(client):
    res = client.post("/turn", json={"utterance": None, "appId": 123})

    assert res.status_code == 200
    assert res.json()["speechText"] == EMPTY_UTTERANCE_SPEECH


def test_turn_payload_coerces_loose_fields():
    payload = webhook_server.TurnPayload.model_validate(
        {"appId": 123, "userId": ["x"], "utterance": None, "deviceSupportsVisualRendering": "true"}
    )
    turn = payload.to_turn_request()

    assert turn.app_id == "123"
    assert turn.user_id is None
    assert turn.utterance == ""
    assert turn.device_supports_visual_rendering is True


def test_turn_not_configured(unconfigured_client):
    res = unconfigured_client.post("/turn", json=turn_body())

    assert res.status_code == 200
    assert res.json()["speechText"] == NOT_CONFIGURED_SPEECH


def test_turn_unexpected_failure_still_answers(client, monkeypatch, capsys):
    async def _boom(_request, _runtime):
        raise RuntimeError("boom")

    monkeypatch.setattr(webhook_server, "respond_to_turn", _boom)

    res = client.post("/turn", json=turn_body())
    assert res.status_code == 200
    assert res.json()["speechText"] == GENERIC_ERROR_SPEECH

    events = [json.loads(line) for line in capsys.readouterr().out.splitlines() if '"event_type"' in line]
    failed = [event for event in events if event["event_type"] == "skill.request_failed"]
    assert len(failed) == 1
    assert failed[0]["error_class"] == "RuntimeError"
    assert failed[0]["correlation_id"] == "EdwRequestId.test"


def test_alexa_chat_intent(client):
    envelope = {
        "context": {"System": {"device": {"deviceId": "d1", "supportedInterfaces": {"Alexa.Presentation.APL": {}}}}},
        "request": {
            "type": "IntentRequest",
            "requestId": "r1",
            "intent": {"name": "ChatIntent", "slots": {"query": {"value": "today"}}},
        },
    }

    res = client.post("/alexa", json=envelope)

    assert res.status_code == 200
    assert res.json()["speechText"] == "Two things."
    assert res.json()["directive"]["title"] == "Today"


def test_alexa_unexpected_failure_still_answers(client, monkeypatch, capsys):
    async def _boom(_envelope, _runtime):
        raise RuntimeError("boom")

    monkeypatch.setattr(webhook_server, "handle_envelope", _boom)

    res = client.post("/alexa", json={"request": {"type": "LaunchRequest", "requestId": "r9"}})
    assert res.status_code == 200
    assert res.json()["speechText"] == GENERIC_ERROR_SPEECH

    events = [json.loads(line) for line in capsys.readouterr().out.splitlines() if '"event_type"' in line]
    assert [event["event_type"] for event in events] == ["skill.request_failed"]
    assert events[0]["correlation_id"] == "r9"


def test_alexa_session_ended_returns_empty(client):
    res = client.post("/alexa", json={"request": {"type": "SessionEndedRequest"}})
    assert res.status_code == 200
    assert res.json() == {}


def test_alexa_rejects_non_json(client):
    res = client.post("/alexa", content=b"not json", headers={"content-type": "application/json"})
    assert res.status_code == 400
