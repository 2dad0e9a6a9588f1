"""
CHZZK chat session implementation.

This module owns one live chat connection for one owner: connect,
receive, dispatch to a single message handler, send, and report
unexpected connection loss.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Callable, Awaitable, Set

import socketio
from socketio import exceptions as socketio_exceptions

from .api import ChzzkOpenApiClient
from ..errors import ConnectFailure, SendFailure

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "unknown"


class ConnectionState(Enum):
    """Chat connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


def decode_payload(value: Any) -> Any:
    """Decode an event payload; the session server sends JSON-encoded strings."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


@dataclass
class ChatMessage:
    """Represents an incoming chat message."""
    owner_id: str
    content: str
    nickname: str = UNKNOWN_AUTHOR
    channel_id: Optional[str] = None
    sender_channel_id: Optional[str] = None
    message_time: Optional[int] = None

    @classmethod
    def from_event(cls, owner_id: str, data: Any) -> 'ChatMessage':
        """Create ChatMessage from a CHAT event payload."""
        if not isinstance(data, dict):
            data = {}
        profile = data.get('profile')
        if not isinstance(profile, dict):
            profile = {}
        content = data.get('content')

        return cls(
            owner_id=owner_id,
            content=content if isinstance(content, str) else '',
            nickname=profile.get('nickname') or UNKNOWN_AUTHOR,
            channel_id=data.get('channelId'),
            sender_channel_id=data.get('senderChannelId'),
            message_time=data.get('messageTime')
        )


MessageHandler = Callable[[ChatMessage], Awaitable[None]]
DisconnectHandler = Callable[[str], Any]


class ChatSession:
    """
    One live chat connection for one owner.

    The transport is a Socket.IO 2 client (``python-socketio`` 4.x, which
    also runs the Engine.IO keepalive). Inbound messages are queued by the
    event handler and handed to the registered handler one at a time by a
    separate dispatcher task, so a slow handler never stalls the socket.
    The disconnect handler fires at most once, and only for losses the
    session did not initiate.
    """

    def __init__(self, api: ChzzkOpenApiClient, owner_id: str, connect_timeout: float = 10.0):
        """
        Initialize ChatSession.

        Args:
            api: Open API client for session, subscribe and send calls
            owner_id: Owner this session belongs to
            connect_timeout: Seconds to wait for the transport handshake
        """
        self.api = api
        self.owner_id = owner_id
        self.connect_timeout = connect_timeout

        self.state = ConnectionState.DISCONNECTED
        self.session_key: Optional[str] = None
        self.connected_at: Optional[datetime] = None

        self._access_token: Optional[str] = None
        self._sio: Optional[socketio.AsyncClient] = None
        self._handshake: Optional[asyncio.Future] = None
        self._queue: asyncio.Queue = asyncio.Queue()

        self._dispatch_task: Optional[asyncio.Task] = None
        self._callback_tasks: Set[asyncio.Task] = set()

        self._message_handler: Optional[MessageHandler] = None
        self._disconnect_handler: Optional[DisconnectHandler] = None
        self._closing = False
        self._disconnect_notified = False
        self._lost_reason: Optional[str] = None

        self.messages_received = 0
        self.messages_sent = 0
        self.send_failures = 0

    def on_message(self, handler: MessageHandler) -> None:
        """Register the message handler, replacing any previous one."""
        self._message_handler = handler

    def on_disconnect(self, handler: DisconnectHandler) -> None:
        """Register the unexpected-disconnect handler, replacing any previous one."""
        self._disconnect_handler = handler

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _create_client(self) -> socketio.AsyncClient:
        sio = socketio.AsyncClient(reconnection=False)
        sio.on('connect', self._on_transport_connect)
        sio.on('connect_error', self._on_connect_error)
        sio.on('disconnect', self._on_transport_disconnect)
        sio.on('SYSTEM', self._on_system)
        sio.on('CHAT', self._on_chat)
        return sio

    async def connect(self, access_token: str) -> 'ChatSession':
        """
        Establish the chat connection and subscribe to chat events.

        Args:
            access_token: Owner access token

        Returns:
            ChatSession: self, connected

        Raises:
            ConnectFailure: If any step of the connection fails, including
                a transport loss before the subscription completed
        """
        if self.state != ConnectionState.DISCONNECTED:
            raise ConnectFailure(f"Session is {self.state.value}, cannot connect", owner_id=self.owner_id)

        self.state = ConnectionState.CONNECTING
        self._closing = False
        self._disconnect_notified = False
        self._lost_reason = None
        self._handshake = asyncio.get_running_loop().create_future()
        self._queue = asyncio.Queue()

        try:
            session_url = await self.api.get_session_url(access_token)

            self._sio = self._create_client()
            await asyncio.wait_for(
                self._sio.connect(session_url, transports=['websocket']),
                timeout=self.connect_timeout
            )

            self.session_key = await asyncio.wait_for(self._handshake, timeout=self.connect_timeout)
            await self.api.subscribe_chat(access_token, self.session_key)

            if self._lost_reason is not None or not self._sio.connected:
                raise ConnectFailure(
                    f"Chat transport lost before subscription completed: {self._lost_reason}"
                )

        except ConnectFailure as e:
            e.owner_id = self.owner_id
            await self._teardown()
            self.state = ConnectionState.DISCONNECTED
            raise
        except (socketio_exceptions.ConnectionError, asyncio.TimeoutError, ValueError, OSError) as e:
            await self._teardown()
            self.state = ConnectionState.DISCONNECTED
            raise ConnectFailure(f"Chat transport connection failed: {e!r}", owner_id=self.owner_id)

        self._access_token = access_token
        self._dispatch_task = asyncio.create_task(
            self._dispatch_loop(), name=f"chat-dispatch-{self.owner_id}"
        )
        self.state = ConnectionState.CONNECTED
        self.connected_at = datetime.now()

        logger.info("Chat session connected", extra={'owner_id': self.owner_id})
        return self

    async def send(self, text: str) -> bool:
        """
        Send a chat message. Failures are logged, never raised.

        Args:
            text: Message content

        Returns:
            True if the platform accepted the message, False otherwise
        """
        if not self.is_connected or not self._access_token:
            logger.warning("Cannot send on a session that is not connected", extra={'owner_id': self.owner_id})
            return False

        try:
            await self.api.send_chat(self._access_token, text)
        except SendFailure as e:
            self.send_failures += 1
            logger.error(f"Failed to send chat message: {e}", extra={'owner_id': self.owner_id})
            return False

        self.messages_sent += 1
        logger.info("Message sent successfully", extra={'owner_id': self.owner_id, 'content': text})
        return True

    async def disconnect(self) -> None:
        """Close the session intentionally. Safe to call repeatedly."""
        was_connected = self.is_connected
        self._closing = True

        if was_connected:
            self.state = ConnectionState.CLOSING

        await self._teardown()
        self.state = ConnectionState.DISCONNECTED
        self._access_token = None

        if was_connected:
            logger.info("Chat session disconnected", extra={'owner_id': self.owner_id})

    async def _teardown(self) -> None:
        """Stop the dispatcher and close the transport. Idempotent."""
        task, self._dispatch_task = self._dispatch_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        sio, self._sio = self._sio, None
        if sio is not None:
            try:
                await sio.disconnect()
            except (socketio_exceptions.SocketIOError, ConnectionError, RuntimeError) as e:
                logger.debug(f"Error closing chat transport: {e}", extra={'owner_id': self.owner_id})

        if self._handshake is not None and not self._handshake.done():
            self._handshake.cancel()

    async def _on_transport_connect(self) -> None:
        logger.debug("Socket namespace connected", extra={'owner_id': self.owner_id})

    async def _on_connect_error(self, *data: Any) -> None:
        data = data[0] if len(data) == 1 else list(data)
        logger.error(f"Session server error: {data}", extra={'owner_id': self.owner_id})
        self._fail_handshake(f"session server error: {data}")

    async def _on_transport_disconnect(self) -> None:
        self._connection_lost("connection closed by server")

    async def _on_system(self, data: Any = None) -> None:
        data = decode_payload(data)
        if not isinstance(data, dict):
            logger.warning("Malformed SYSTEM event", extra={'owner_id': self.owner_id})
            return

        event_type = data.get('type')
        payload = data.get('data') if isinstance(data.get('data'), dict) else {}

        if event_type == 'connected':
            session_key = payload.get('sessionKey')
            if not session_key:
                self._fail_handshake("connected event carried no session key")
            elif self._handshake is not None and not self._handshake.done():
                self._handshake.set_result(session_key)
        elif event_type == 'subscribed':
            logger.info(
                f"Subscribed to {payload.get('eventType')} events",
                extra={'owner_id': self.owner_id, 'channel_id': payload.get('channelId')}
            )
        elif event_type in ('unsubscribed', 'revoked'):
            logger.warning(
                f"Session {event_type} for {payload.get('eventType')} events",
                extra={'owner_id': self.owner_id}
            )

    async def _on_chat(self, data: Any = None) -> None:
        # Enqueue before any await so arrival order is kept
        message = ChatMessage.from_event(self.owner_id, decode_payload(data))
        self.messages_received += 1
        self._queue.put_nowait(message)

    def _fail_handshake(self, reason: str) -> None:
        if self._handshake is not None and not self._handshake.done():
            self._handshake.set_exception(ConnectFailure(reason, owner_id=self.owner_id))

    async def _dispatch_loop(self) -> None:
        while True:
            message = await self._queue.get()
            handler = self._message_handler
            if handler is None:
                continue
            try:
                await handler(message)
            except Exception as e:
                logger.exception(f"Error in message handler: {e}", extra={'owner_id': self.owner_id})

    def _connection_lost(self, reason: str) -> None:
        if self._closing:
            return

        if self.state == ConnectionState.CONNECTING:
            # connect() sees this and fails instead of reporting a dead session
            self._lost_reason = reason
            self._fail_handshake(reason)
            return

        if self.state != ConnectionState.CONNECTED:
            return

        self.state = ConnectionState.DISCONNECTED
        self._access_token = None
        logger.warning(f"Chat connection lost: {reason}", extra={'owner_id': self.owner_id})

        self._track(asyncio.create_task(self._teardown()))
        self._notify_disconnect(reason)

    def _notify_disconnect(self, reason: str) -> None:
        if self._disconnect_notified:
            return
        self._disconnect_notified = True

        handler = self._disconnect_handler
        if handler is None:
            return

        try:
            result = handler(reason)
            if asyncio.iscoroutine(result):
                self._track(asyncio.create_task(result))
        except Exception as e:
            logger.exception(f"Error in disconnect handler: {e}", extra={'owner_id': self.owner_id})

    def _track(self, task: asyncio.Task) -> None:
        self._callback_tasks.add(task)
        task.add_done_callback(self._callback_tasks.discard)

    def get_status(self) -> Dict[str, Any]:
        """
        Get connection status information.

        Returns:
            Dict containing connection status details
        """
        status = {
            'owner_id': self.owner_id,
            'state': self.state.value,
            'messages_received': self.messages_received,
            'messages_sent': self.messages_sent,
            'send_failures': self.send_failures,
            'pending_messages': self._queue.qsize(),
        }
        if self.connected_at:
            status['connected_at'] = self.connected_at.isoformat()
            if self.is_connected:
                status['uptime_seconds'] = (datetime.now() - self.connected_at).total_seconds()
        return status
