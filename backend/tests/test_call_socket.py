from conftest import FakeLLM, rubric_reply
from fastapi.testclient import TestClient

from defence_coach.config import Settings
from defence_coach.main import GENERATE_PATH, create_app

BODY = {"projectTitle": "Line Follower", "technologiesUsed": "C, Arduino", "academicLevel": "diploma", "userId": "u1"}


def final(role, text):
    return {"type": "message", "message": {"type": "transcript", "transcriptType": "final", "role": role, "transcript": text}}


def test_call_over_websocket_produces_feedback(db_url):
    llm = FakeLLM(['["What does the PID loop do?"]', rubric_reply(defence=True)])
    settings = Settings(database_url=db_url, vapi_web_token="t" * 40, vapi_workflow_id="wf-42")
    with TestClient(create_app(settings, llm=llm)) as client:
        interview_id = client.post(GENERATE_PATH, json=BODY).json()["interviewId"]

        with client.websocket_connect(f"/ws/call/{interview_id}?userId=u1") as ws:
            assert ws.receive_json()["type"] == "session_ready"
            ws.send_json({"type": "start"})
            assert ws.receive_json() == {"type": "status", "status": "CONNECTING"}
            start = ws.receive_json()
            assert start["type"] == "start_call"
            assert start["workflowId"] == "wf-42"
            assert start["variableValues"]["questions"] == "- What does the PID loop do?"
            assert start["variableValues"]["projectTitle"] == "Line Follower"

            ws.send_json({"type": "call-start"})
            assert ws.receive_json() == {"type": "status", "status": "ACTIVE"}
            ws.send_json({"type": "speech-start"})
            assert ws.receive_json() == {"type": "speaking", "speaking": True}
            ws.send_json(
                {"type": "message", "message": {"type": "transcript", "transcriptType": "partial", "role": "assistant", "transcript": "Expl"}}
            )
            ws.send_json(final("assistant", "Explain the PID loop."))
            assert ws.receive_json() == {"type": "transcript", "role": "assistant", "content": "Explain the PID loop."}
            ws.send_json(final("user", "It corrects the motor speed."))
            assert ws.receive_json()["content"] == "It corrects the motor speed."

            ws.send_json({"type": "call-end"})
            assert ws.receive_json() == {"type": "status", "status": "FINISHED"}
            assert ws.receive_json() == {"type": "speaking", "speaking": False}
            result = ws.receive_json()
            assert result["type"] == "feedback"
            assert result["success"] is True
            feedback_id = result["feedbackId"]

        data = client.get(f"/interviews/{interview_id}/feedback", params={"userId": "u1"}).json()["feedback"]
        assert data["id"] == feedback_id
        assert [entry["content"] for entry in data["transcript"]] == [
            "Explain the PID loop.",
            "It corrects the motor speed.",
        ]
        assert len([c for c in llm.calls if c["purpose"] == "feedback"]) == 1


def test_start_without_voice_configuration_is_reported(db_url):
    llm = FakeLLM(['["Q1"]'])
    with TestClient(create_app(Settings(database_url=db_url), llm=llm)) as client:
        interview_id = client.post(GENERATE_PATH, json=BODY).json()["interviewId"]
        with client.websocket_connect(f"/ws/call/{interview_id}?userId=u1") as ws:
            ws.receive_json()
            ws.send_json({"type": "start"})
            notification = ws.receive_json()
            assert notification["type"] == "notification"
            assert ws.receive_json() == {"type": "status", "status": "INACTIVE"}


def test_unknown_interview_closes_socket(db_url):
    with TestClient(create_app(Settings(database_url=db_url), llm=FakeLLM())) as client:
        with client.websocket_connect("/ws/call/nope?userId=u1") as ws:
            assert ws.receive_json() == {"type": "error", "message": "Interview not found"}


def test_vendor_status_messages_are_ignored(db_url):
    llm = FakeLLM(['["Q1"]'])
    settings = Settings(database_url=db_url, vapi_web_token="t" * 40, vapi_workflow_id="wf-42")
    with TestClient(create_app(settings, llm=llm)) as client:
        interview_id = client.post(GENERATE_PATH, json=BODY).json()["interviewId"]
        with client.websocket_connect(f"/ws/call/{interview_id}?userId=u1") as ws:
            ws.receive_json()
            ws.send_json({"type": "message", "message": {"type": "status-update", "status": "in-progress"}})
            ws.send_json({"type": "message", "message": {"type": "conversation-update"}})
            ws.send_json({"type": "volume"})
            assert ws.receive_json() == {"type": "error", "message": "Unrecognized message type: volume"}
