#!/usr/bin/env python3

from __future__ import annotations

import unittest
from typing import Any, Dict, List

from fastapi.testclient import TestClient

from aroundu.main import create_app
from tests.support import fast_settings


def _reply(messages: List[Dict[str, str]]) -> str:
    return "namaste"


class WebSocketApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.app = create_app(fast_settings(), generate_fn=_reply)
        self.client = TestClient(self.app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)

    def send(self, ws, event: str, data: Any = None) -> None:
        ws.send_json({"event": event, "data": data if data is not None else {}})

    def expect(self, ws, event: str) -> Dict[str, Any]:
        frame = ws.receive_json()
        self.assertEqual(frame["event"], event, frame)
        return frame["data"]

    def test_meta_endpoints(self) -> None:
        root = self.client.get("/").json()
        self.assertEqual(root["name"], "AroundU Chat Server")

        health = self.client.get("/health").json()
        self.assertEqual(health["status"], "ok")
        self.assertEqual(health["environment"], "test")
        self.assertTrue(health["generator_configured"])

    def test_register_location_round_trip(self) -> None:
        with self.client.websocket_connect("/ws/chat") as ws:
            user = self.expect(ws, "session_config")["user"]
            self.assertEqual(user["status"], "AVAILABLE")

            self.send(ws, "register_location", {"lat": 0.0, "lon": 0.0, "radius": 250})
            registered = self.expect(ws, "registration_success")["user"]
            self.assertEqual(registered["id"], user["id"])
            self.assertEqual(registered["location"]["lat"], 0.0)

            nearby = self.expect(ws, "nearby_users")["users"]
            self.assertEqual([u["distanceMeters"] for u in nearby], [100, 150, 200])
            self.assertEqual({u["displayName"] for u in nearby}, {"Stranger"})

            status = self.client.get("/status/presence").json()
            self.assertEqual(status["connections"], 1)
            self.assertEqual(status["presence"]["participants"], 1)
            self.assertEqual(status["invariant_violations"], [])

    def test_malformed_frames_keep_connection_open(self) -> None:
        with self.client.websocket_connect("/ws/chat") as ws:
            self.expect(ws, "session_config")

            ws.send_text("not json at all")
            self.assertEqual(self.expect(ws, "error")["code"], "invalid_frame")

            ws.send_json(["start_matching"])
            self.assertEqual(self.expect(ws, "error")["code"], "invalid_frame")

            ws.send_bytes(b"\x00\x01 binary noise")
            self.assertEqual(self.expect(ws, "error")["code"], "invalid_frame")

            ws.send_bytes(b'{"event": "update_profile", "data": {"interestTag": "any"}}')
            self.assertEqual(self.expect(ws, "profile_updated")["user"]["interestTag"], "ANY")

            self.send(ws, "dance")
            self.assertEqual(self.expect(ws, "error")["code"], "unknown_event")

            self.send(ws, "update_profile", {"displayName": "Blue Heron"})
            self.assertEqual(self.expect(ws, "profile_updated")["user"]["displayName"], "Blue Heron")

    def test_two_participants_match_chat_and_leave(self) -> None:
        with self.client.websocket_connect("/ws/chat") as ws_a, self.client.websocket_connect("/ws/chat") as ws_b:
            a_id = self.expect(ws_a, "session_config")["user"]["id"]
            b_id = self.expect(ws_b, "session_config")["user"]["id"]

            for ws in (ws_a, ws_b):
                self.send(ws, "update_profile", {"interestTag": "ANY"})
                self.expect(ws, "profile_updated")

            self.send(ws_a, "start_matching")
            for ws in (ws_a, ws_b):
                room = self.expect(ws, "room_joined")["room"]
                self.assertEqual({u["id"] for u in room["users"]}, {a_id, b_id})
                self.expect(ws, "room_users")

            self.send(ws_a, "typing", {"isTyping": True})
            typing = self.expect(ws_b, "user_typing")
            self.assertEqual(typing, {"userId": a_id, "isTyping": True})

            self.send(ws_a, "send_message", {"text": "hi b"})
            for ws in (ws_a, ws_b):
                msg = self.expect(ws, "receive_message")
                self.assertEqual((msg["userId"], msg["text"]), (a_id, "hi b"))

            self.send(ws_a, "leave_room")
            self.assertEqual(self.expect(ws_b, "chat_ended"), {"reason": "partner_left"})

    def test_direct_agent_chat(self) -> None:
        with self.client.websocket_connect("/ws/chat") as ws:
            self.expect(ws, "session_config")

            self.send(ws, "request_chat", {"targetId": "bot-vikram"})
            room = self.expect(ws, "room_joined")["room"]
            agent = [u for u in room["users"] if u["id"] == "bot-vikram"][0]
            self.assertEqual(agent["displayName"], "Stranger")
            self.expect(ws, "room_users")

            self.assertTrue(self.expect(ws, "user_typing")["isTyping"])
            self.assertFalse(self.expect(ws, "user_typing")["isTyping"])
            greeting = self.expect(ws, "receive_message")
            self.assertEqual(greeting["text"], "namaste")
            self.assertEqual(greeting["displayName"], "Stranger")

            self.send(ws, "send_message", "kaise ho")
            self.assertEqual(self.expect(ws, "receive_message")["text"], "kaise ho")
            self.assertTrue(self.expect(ws, "user_typing")["isTyping"])
            self.assertFalse(self.expect(ws, "user_typing")["isTyping"])
            self.assertEqual(self.expect(ws, "receive_message")["userId"], "bot-vikram")


if __name__ == "__main__":
    unittest.main()
