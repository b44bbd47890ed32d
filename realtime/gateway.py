"""
WebSocket entry point for telemetry observers.

A client connects to ``/ws/telemetry`` with a bearer token in the
``token`` query parameter or the ``Authorization`` header. Without a
valid token the socket is closed before the handshake completes and
nothing is sent.
"""

import logging
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from auth.credentials import CredentialVerifier, InvalidCredential, VerifiedIdentity
from config.settings import OverflowPolicy
from realtime.hub import BroadcastHub, ObserverConnection
from realtime.protocol import SubscriptionMessage

logger = logging.getLogger(__name__)

CLOSE_POLICY_VIOLATION = 1008


class ConnectionGateway:
    def __init__(
        self,
        verifier: CredentialVerifier,
        hub: BroadcastHub,
        queue_size: int = 64,
        policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST,
    ):
        self.verifier = verifier
        self.hub = hub
        self.queue_size = queue_size
        self.policy = policy

    @staticmethod
    def token_from(websocket: WebSocket) -> Optional[str]:
        return websocket.query_params.get("token") or websocket.headers.get("authorization")

    async def authenticate(self, websocket: WebSocket) -> Optional[VerifiedIdentity]:
        """Verify the connecting client, or close the socket and return None."""
        client_host = websocket.client.host if websocket.client else "unknown"
        try:
            return self.verifier.verify(self.token_from(websocket))
        except InvalidCredential as e:
            logger.warning(
                f"Observer connection rejected: {e}",
                extra={"extra_data": {"client_host": client_host}}
            )
            await websocket.close(code=CLOSE_POLICY_VIOLATION)
            return None

    async def handle(self, websocket: WebSocket) -> None:
        """Serve one observer for the lifetime of its socket."""
        identity = await self.authenticate(websocket)
        if identity is None:
            return

        await websocket.accept()
        connection = ObserverConnection(
            transport=websocket,
            identity=identity,
            queue_size=self.queue_size,
            policy=self.policy,
        )
        await self.hub.register(connection)
        logger.info(
            f"Observer connected: {identity.username or identity.user_id} ({connection.connection_id})",
            extra={"extra_data": {
                "connection_id": connection.connection_id,
                "user_id": identity.user_id,
            }}
        )

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                self.handle_message(connection, message.get("text"))
        except WebSocketDisconnect:
            pass
        finally:
            await self.hub.unregister(connection)

    def handle_message(self, connection: ObserverConnection, raw: Optional[str]) -> None:
        """
        Record a subscribe/unsubscribe request on the connection.

        Every observer receives every robot's frames regardless; the
        recorded set is informational. Binary frames are ignored.
        """
        if raw is None:
            logger.info(
                f"Ignoring binary message from observer {connection.connection_id}",
                extra={"extra_data": {"connection_id": connection.connection_id}}
            )
            return
        try:
            message = SubscriptionMessage.model_validate_json(raw)
        except ValidationError as e:
            logger.info(
                f"Ignoring malformed message from observer {connection.connection_id}",
                extra={"extra_data": {
                    "connection_id": connection.connection_id,
                    "errors": e.error_count(),
                }}
            )
            return

        if message.type == "subscribe":
            connection.subscriptions.update(message.entity_ids)
        else:
            connection.subscriptions.difference_update(message.entity_ids)

        logger.info(
            f"Observer {connection.connection_id} {message.type}d to robots: {message.entity_ids}",
            extra={"extra_data": {
                "connection_id": connection.connection_id,
                "type": message.type,
                "entity_ids": message.entity_ids,
            }}
        )
