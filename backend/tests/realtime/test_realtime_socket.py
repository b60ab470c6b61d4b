# backend/tests/realtime/test_realtime_socket.py
"""
End-to-end WebSocket tests.

The TestClient is used as a context manager so the lifespan starts the
realtime gateway.
"""

from datetime import timedelta

from fastapi.testclient import TestClient
import pytest
from starlette.websockets import WebSocketDisconnect

from mentorlink.auth import create_access_token
from mentorlink.database import get_db
from mentorlink.main import app
from mentorlink.services.messaging import get_gateway


def token_for(user) -> str:
    return create_access_token({"sub": user.id}, expires_delta=timedelta(minutes=30))


@pytest.fixture
def live_client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def test_lifespan_starts_and_clears_gateway(db):
    with TestClient(app):
        assert get_gateway() is not None
    assert get_gateway() is None


def test_invalid_token_is_rejected(live_client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with live_client.websocket_connect("/ws?token=not-a-jwt"):
            pass

    assert exc_info.value.code == 4001


def test_missing_token_is_rejected(live_client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with live_client.websocket_connect("/ws"):
            pass

    assert exc_info.value.code == 4001


def test_inactive_user_is_rejected(live_client, make_user):
    inactive = make_user(is_active=False)

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with live_client.websocket_connect(f"/ws?token={token_for(inactive)}"):
            pass

    assert exc_info.value.code == 4001


def test_identify_and_ping(live_client, student):
    with live_client.websocket_connect(f"/ws?token={token_for(student)}") as ws:
        connected = ws.receive_json()
        assert connected["type"] == "connected"
        assert connected["data"]["userId"] == student.id

        ws.send_json({"type": "identify", "data": {"userId": student.id}})
        assert ws.receive_json() == {"type": "online_users", "data": {"userIds": [student.id]}}

        ws.send_json({"type": "ping"})
        pong = ws.receive_json()
        assert pong["type"] == "pong"
        assert pong["data"]["timestamp"]


def test_malformed_frame_gets_error_and_socket_stays_open(live_client, student):
    with live_client.websocket_connect(f"/ws?token={token_for(student)}") as ws:
        ws.receive_json()

        ws.send_text("{broken")
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["data"]["code"] == "INVALID_EVENT"

        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_identity_mismatch_over_socket(live_client, student, mentor):
    with live_client.websocket_connect(f"/ws?token={token_for(student)}") as ws:
        ws.receive_json()

        ws.send_json({"type": "identify", "data": {"userId": mentor.id}})

        error = ws.receive_json()
        assert error["data"]["code"] == "IDENTITY_MISMATCH"


def test_sent_message_is_pushed_to_online_recipient(live_client, connected_pair, auth_headers):
    mentor, student = connected_pair

    with live_client.websocket_connect(f"/ws?token={token_for(mentor)}") as mentor_ws:
        mentor_ws.receive_json()
        mentor_ws.send_json({"type": "identify", "data": {}})
        online_users = mentor_ws.receive_json()
        assert online_users["type"] == "online_users"
        assert mentor.id in online_users["data"]["userIds"]

        response = live_client.post(
            "/messages",
            json={"recipientId": mentor.id, "content": "Can we meet on Friday?"},
            headers=auth_headers(student),
        )
        assert response.status_code == 201

        pushed = mentor_ws.receive_json()
        assert pushed["type"] == "receive_message"
        assert pushed["data"]["content"] == "Can we meet on Friday?"
        assert pushed["data"]["_id"] == response.json()["message"]["_id"]


def test_read_receipt_is_pushed_to_sender(live_client, connected_pair, auth_headers):
    mentor, student = connected_pair
    sent = live_client.post(
        "/messages",
        json={"recipientId": student.id, "content": "Homework feedback is ready"},
        headers=auth_headers(mentor),
    )
    assert sent.status_code == 201

    with live_client.websocket_connect(f"/ws?token={token_for(mentor)}") as mentor_ws:
        mentor_ws.receive_json()
        mentor_ws.send_json({"type": "identify", "data": {}})
        mentor_ws.receive_json()

        response = live_client.put(
            f"/messages/mark-read/{mentor.id}", headers=auth_headers(student)
        )
        assert response.status_code == 200

        receipt = mentor_ws.receive_json()
        assert receipt["type"] == "messages_marked_read"
        assert receipt["data"]["readBy"] == student.id


def test_presence_follows_socket_lifetime(live_client, connected_pair):
    mentor, student = connected_pair

    with live_client.websocket_connect(f"/ws?token={token_for(mentor)}") as mentor_ws:
        mentor_ws.receive_json()
        mentor_ws.send_json({"type": "identify", "data": {}})
        mentor_ws.receive_json()

        with live_client.websocket_connect(f"/ws?token={token_for(student)}") as student_ws:
            student_ws.receive_json()
            student_ws.send_json({"type": "identify", "data": {}})
            assert set(student_ws.receive_json()["data"]["userIds"]) == {mentor.id, student.id}

            assert mentor_ws.receive_json() == {
                "type": "user_status_changed",
                "data": {"userId": student.id, "status": "online"},
            }

        assert mentor_ws.receive_json() == {
            "type": "user_status_changed",
            "data": {"userId": student.id, "status": "offline"},
        }


def test_socket_events_require_mentorship_connection(live_client, connected_pair, outsider):
    mentor, student = connected_pair

    with live_client.websocket_connect(f"/ws?token={token_for(mentor)}") as mentor_ws:
        mentor_ws.receive_json()
        mentor_ws.send_json({"type": "identify", "data": {}})
        mentor_ws.receive_json()

        with live_client.websocket_connect(f"/ws?token={token_for(outsider)}") as outsider_ws:
            outsider_ws.receive_json()
            outsider_ws.send_json({"type": "identify", "data": {}})
            outsider_ws.receive_json()
            assert mentor_ws.receive_json()["data"] == {"userId": outsider.id, "status": "online"}

            outsider_ws.send_json(
                {
                    "type": "send_message",
                    "data": {
                        "recipientId": mentor.id,
                        "message": {"sender": {"_id": outsider.id}, "content": "hi"},
                    },
                }
            )
            error = outsider_ws.receive_json()
            assert error["type"] == "error"
            assert error["data"]["code"] == "NO_MENTORSHIP_CONNECTION"

        assert mentor_ws.receive_json()["data"] == {"userId": outsider.id, "status": "offline"}

        with live_client.websocket_connect(f"/ws?token={token_for(student)}") as student_ws:
            student_ws.receive_json()
            student_ws.send_json({"type": "identify", "data": {}})
            student_ws.receive_json()
            assert mentor_ws.receive_json()["data"] == {"userId": student.id, "status": "online"}

            student_ws.send_json({"type": "typing_start", "data": {"recipientId": mentor.id}})

            # Nothing from the outsider reached the mentor in between
            assert mentor_ws.receive_json() == {
                "type": "user_typing",
                "data": {"userId": student.id},
            }
