"""Real-time relay over WebSocket.

Frames in both directions are JSON objects ``{"event": <name>, "data": {...}}``.
A connection starts unauthenticated; it must send ``authenticate`` with a
token before it can send messages, mark them read or signal typing. New
messages are pushed only to a recipient connected to this process. Offline
recipients see them on their next conversation fetch.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect

from . import auth, messaging
from .errors import AuthenticationError, FinSphereError
from .presence import PresenceRegistry
from .schemas import MessageResponse, UserSummary

logger = logging.getLogger(__name__)

AUTHENTICATED_EVENTS = ('send_message', 'mark_read', 'typing_start', 'typing_stop')


def serialize_message(message) -> dict:
    return MessageResponse.model_validate(message).model_dump(mode='json')


class PresenceRelay:
    def __init__(self, registry: PresenceRegistry, session_factory: Callable,
                 verifier_provider: Callable[[], Optional[auth.IdentityVerifier]] = lambda: None):
        self.registry = registry
        self.session_factory = session_factory
        self.verifier_provider = verifier_provider
        self._sockets: Dict[str, WebSocket] = {}
        self._users: Dict[str, int] = {}
        self._profiles: Dict[str, dict] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._handlers = {
            'authenticate': self._on_authenticate,
            'send_message': self._on_send_message,
            'mark_read': self._on_mark_read,
            'typing_start': self._on_typing_start,
            'typing_stop': self._on_typing_stop,
            'join_conversation': self._on_join_conversation,
            'leave_conversation': self._on_leave_conversation,
        }

    @property
    def connection_count(self) -> int:
        return len(self._sockets)

    # ==================== DELIVERY ====================

    async def _send(self, connection_id: str, event: str, data: dict) -> bool:
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json({"event": event, "data": data})
        except (RuntimeError, WebSocketDisconnect) as e:
            logger.warning(f"Dropping {event} for closed connection {connection_id}: {e}")
            return False
        return True

    def _local_connection(self, user_id: int) -> Optional[str]:
        connection_id = self.registry.lookup(user_id)
        if connection_id and connection_id in self._sockets:
            return connection_id
        return None

    async def send_to_user(self, user_id: int, event: str, data: dict) -> bool:
        connection_id = self._local_connection(user_id)
        if connection_id is None:
            return False
        return await self._send(connection_id, event, data)

    async def send_notification(self, user_id: int, payload: dict) -> bool:
        return await self.send_to_user(user_id, 'notification', payload)

    async def broadcast(self, event: str, data: dict):
        for connection_id in list(self._sockets):
            await self._send(connection_id, event, data)

    async def _broadcast_status(self, user_id: int, status: str):
        await self.broadcast('user_status_change', {
            "userId": user_id,
            "status": status,
            "timestamp": datetime.utcnow().isoformat(),
        })

    # ==================== CONNECTION LIFECYCLE ====================

    async def handle(self, websocket: WebSocket):
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self._sockets[connection_id] = websocket
        logger.info(f"Real-time connection opened: {connection_id}")
        try:
            while True:
                raw = await websocket.receive_text()
                await self.dispatch(connection_id, raw)
        except WebSocketDisconnect as e:
            logger.debug(f"Client closed {connection_id} with code {e.code}")
        finally:
            await self.disconnect(connection_id)

    async def dispatch(self, connection_id: str, raw: str):
        try:
            frame = json.loads(raw)
        except ValueError:
            await self._send(connection_id, 'error', {"message": "Malformed frame"})
            return
        if not isinstance(frame, dict) or not isinstance(frame.get('event'), str):
            await self._send(connection_id, 'error', {"message": "Malformed frame"})
            return

        event = frame['event']
        data = frame.get('data') or {}
        if not isinstance(data, dict):
            await self._send(connection_id, 'error', {"message": "Malformed frame"})
            return

        handler = self._handlers.get(event)
        if handler is None:
            await self._send(connection_id, 'error', {"message": f"Unknown event: {event}"})
            return
        if event in AUTHENTICATED_EVENTS and connection_id not in self._users:
            await self._send(connection_id, 'error', {"message": "Not authenticated"})
            return
        await handler(connection_id, data)

    async def disconnect(self, connection_id: str):
        self._sockets.pop(connection_id, None)
        self._profiles.pop(connection_id, None)
        for members in self._rooms.values():
            members.discard(connection_id)
        user_id = self._users.pop(connection_id, None)
        if user_id is not None and self.registry.remove(user_id, connection_id):
            await self._broadcast_status(user_id, 'offline')
        logger.info(f"Real-time connection closed: {connection_id} (user {user_id})",
                    extra={"event": "user_offline"})

    # ==================== EVENT HANDLERS ====================

    async def _on_authenticate(self, connection_id: str, data: dict):
        session = self.session_factory()
        try:
            user = auth.authenticate_token(session, data.get('token'), self.verifier_provider())
            profile = UserSummary.model_validate(user).model_dump(mode='json')
        except AuthenticationError as e:
            logger.info(f"Real-time authentication failed on {connection_id}: {e.message}")
            await self._send(connection_id, 'authentication_error', {
                "success": False,
                "message": "Invalid token or user not found",
            })
            return
        finally:
            session.close()

        previous = self._users.get(connection_id)
        if previous is not None and previous != user.user_id:
            self.registry.remove(previous, connection_id)

        self._users[connection_id] = user.user_id
        self._profiles[connection_id] = profile
        self.registry.add(user.user_id, connection_id)

        await self._send(connection_id, 'authenticated', {
            "success": True,
            "userId": user.user_id,
            "message": "Successfully authenticated",
        })
        await self._broadcast_status(user.user_id, 'online')
        logger.info(f"User {user.user_id} authenticated on {connection_id}", extra={"event": "user_online"})

    async def _on_send_message(self, connection_id: str, data: dict):
        sender_id = self._users[connection_id]
        session = self.session_factory()
        try:
            message = messaging.send_message(
                session,
                sender_id,
                data.get('recipientId'),
                data.get('content'),
                data.get('messageType') or 'text',
                data.get('attachmentUrl'),
            )
            payload = serialize_message(message)
        except FinSphereError as e:
            await self._send(connection_id, 'error', {"message": e.message})
            return
        finally:
            session.close()

        await self.send_to_user(payload['recipient_id'], 'new_message', {
            "success": True,
            "message": payload,
            "sender": self._profiles.get(connection_id),
        })
        await self._send(connection_id, 'message_sent', {"success": True, "message": payload})

    async def _on_mark_read(self, connection_id: str, data: dict):
        user_id = self._users[connection_id]
        message_id = data.get('messageId')
        conversation_user_id = data.get('conversationUserId')
        session = self.session_factory()
        try:
            if message_id:
                messaging.mark_read(session, int(message_id), user_id)
                count = 1
            elif conversation_user_id:
                count = messaging.mark_conversation_read(session, user_id, int(conversation_user_id))
            else:
                await self._send(connection_id, 'error', {"message": "messageId or conversationUserId is required"})
                return
        except FinSphereError as e:
            await self._send(connection_id, 'error', {"message": e.message})
            return
        except (TypeError, ValueError):
            await self._send(connection_id, 'error', {"message": "Invalid identifier"})
            return
        finally:
            session.close()

        await self._send(connection_id, 'messages_marked_read', {
            "success": True,
            "messageId": message_id,
            "conversationUserId": conversation_user_id,
            "count": count,
        })

    async def _relay_typing(self, connection_id: str, data: dict, event: str):
        try:
            recipient_id = int(data.get('recipientId'))
        except (TypeError, ValueError):
            await self._send(connection_id, 'error', {"message": "Recipient is required"})
            return
        payload = {"userId": self._users[connection_id]}
        if event == 'user_typing':
            payload["user"] = self._profiles.get(connection_id)
        await self.send_to_user(recipient_id, event, payload)

    async def _on_typing_start(self, connection_id: str, data: dict):
        await self._relay_typing(connection_id, data, 'user_typing')

    async def _on_typing_stop(self, connection_id: str, data: dict):
        await self._relay_typing(connection_id, data, 'user_stopped_typing')

    async def _on_join_conversation(self, connection_id: str, data: dict):
        conversation_id = data.get('conversationId')
        if conversation_id is None:
            await self._send(connection_id, 'error', {"message": "conversationId is required"})
            return
        self._rooms.setdefault(str(conversation_id), set()).add(connection_id)

    async def _on_leave_conversation(self, connection_id: str, data: dict):
        members = self._rooms.get(str(data.get('conversationId')))
        if members is not None:
            members.discard(connection_id)

    def room_members(self, conversation_id) -> Set[str]:
        return set(self._rooms.get(str(conversation_id), set()))
