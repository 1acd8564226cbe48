import json
import unittest
from unittest.mock import MagicMock

from nacl.signing import SigningKey

from tickertape.errors import DatabaseError
from tickertape.notify.interactions import create_app
from tickertape.notify.render import RenderedMessage


class TestInteractionsEndpoint(unittest.TestCase):
    def setUp(self):
        self.signing_key = SigningKey.generate()
        public_key = self.signing_key.verify_key.encode().hex()
        self.pager = MagicMock()
        self.pager.render.return_value = RenderedMessage({"description": "page"}, [])
        self.client = create_app(self.pager, public_key).test_client()

    def _post(self, payload, *, tamper=False):
        body = json.dumps(payload).encode()
        timestamp = "1714380000"
        signature = self.signing_key.sign(timestamp.encode() + body).signature.hex()
        if tamper:
            body = body.replace(b"}", b" }")
        return self.client.post(
            "/interactions",
            data=body,
            headers={
                "X-Signature-Ed25519": signature,
                "X-Signature-Timestamp": timestamp,
                "Content-Type": "application/json",
            },
        )

    def test_ping(self):
        resp = self._post({"type": 1})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"type": 1})

    def test_bad_signature_rejected(self):
        resp = self._post({"type": 1}, tamper=True)
        self.assertEqual(resp.status_code, 401)

    def test_missing_headers_rejected(self):
        resp = self.client.post("/interactions", json={"type": 1})
        self.assertEqual(resp.status_code, 401)

    def test_navigation_rerenders_requested_page(self):
        resp = self._post({"type": 3, "data": {"custom_id": "hourly_next:2"}})
        data = resp.get_json()
        self.assertEqual(data["type"], 7)
        self.assertEqual(data["data"]["embeds"], [{"description": "page"}])
        self.assertEqual(data["data"]["components"], [])
        self.pager.render.assert_called_once_with(2)

    def test_navigation_on_empty_window(self):
        self.pager.render.return_value = None
        data = self._post({"type": 3, "data": {"custom_id": "hourly_prev:1"}}).get_json()
        self.assertEqual(data["type"], 7)
        self.assertEqual(data["data"]["embeds"], [])

    def test_store_failure_answers_with_notice(self):
        self.pager.render.side_effect = DatabaseError("database is locked")
        resp = self._post({"type": 3, "data": {"custom_id": "hourly_next:2"}})
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertEqual(data["type"], 7)
        self.assertEqual(data["data"]["embeds"], [])
        self.assertIn("unavailable", data["data"]["content"])

    def test_unknown_component_is_acknowledged(self):
        data = self._post({"type": 3, "data": {"custom_id": "something_else"}}).get_json()
        self.assertEqual(data, {"type": 6})
        self.pager.render.assert_not_called()

    def test_health(self):
        self.assertEqual(self.client.get("/health").get_json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
