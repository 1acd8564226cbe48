"""Discord interactions endpoint for digest page navigation.

Discord POSTs a signed JSON body for every button click. A click carrying a
digest navigation token is answered with UPDATE_MESSAGE and the page
re-rendered from the store at that moment.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from flask import Flask, jsonify, request
from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey
from werkzeug.serving import make_server

from tickertape.errors import DatabaseError
from tickertape.notify.digest import DigestPager, parse_nav_token

logger = logging.getLogger(__name__)

# Interaction types
PING = 1
MESSAGE_COMPONENT = 3

# Response types
PONG = 1
DEFERRED_UPDATE_MESSAGE = 6
UPDATE_MESSAGE = 7


def verify_signature(verify_key: VerifyKey, signature: str, timestamp: str, body: bytes) -> bool:
    try:
        verify_key.verify(timestamp.encode() + body, bytes.fromhex(signature))
        return True
    except (BadSignatureError, ValueError):
        return False


def _notice(text: str):
    return jsonify({
        'type': UPDATE_MESSAGE,
        'data': {'content': text, 'embeds': [], 'components': []},
    })


def create_app(pager: DigestPager, public_key: str) -> Flask:
    app = Flask(__name__)
    verify_key = VerifyKey(bytes.fromhex(public_key))

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'})

    @app.route('/interactions', methods=['POST'])
    def interactions():
        signature = request.headers.get('X-Signature-Ed25519', '')
        timestamp = request.headers.get('X-Signature-Timestamp', '')
        body = request.get_data()
        if not signature or not timestamp or not verify_signature(verify_key, signature, timestamp, body):
            logger.warning("Rejected interaction with invalid signature")
            return jsonify({'error': 'invalid request signature'}), 401

        payload = request.get_json(silent=True) or {}
        kind = payload.get('type')
        if kind == PING:
            return jsonify({'type': PONG})

        if kind == MESSAGE_COMPONENT:
            custom_id = (payload.get('data') or {}).get('custom_id')
            page = parse_nav_token(custom_id)
            if page is None:
                logger.debug(f"Ignoring unknown component {custom_id!r}")
                return jsonify({'type': DEFERRED_UPDATE_MESSAGE})

            try:
                message = pager.render(page)
            except DatabaseError as e:
                logger.error(f"Digest page {page} could not be rendered: {e}")
                return _notice('Digest is temporarily unavailable, try again shortly.')
            if message is None:
                return _notice('No articles in the last hour.')
            data = message.to_payload()
            data.setdefault('components', [])
            return jsonify({'type': UPDATE_MESSAGE, 'data': data})

        logger.debug(f"Unhandled interaction type {kind!r}")
        return jsonify({'type': DEFERRED_UPDATE_MESSAGE})

    return app


class InteractionServer:
    """Serves the interactions app on a daemon thread."""

    def __init__(self, app: Flask, host: str = '0.0.0.0', port: int = 8080):
        self.host = host
        self.port = port
        self._server = make_server(host, port, app, threaded=True)
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._server.serve_forever, name='interactions', daemon=True)
        self._thread.start()
        logger.info(f"Interactions endpoint listening on {self.host}:{self.port}")

    def stop(self) -> None:
        self._server.shutdown()
        if self._thread:
            self._thread.join(timeout=5)
        logger.info("Interactions endpoint stopped")
