from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable
from typing import Any

from .codec import decode
from .config import HubRuntimeConfig
from .constants import (
    EVENT_NAMES,
    GLOBAL_ROOM,
    K_BODY,
    K_T,
    PRIVATE_ROOM_PREFIX,
    T_JOIN_ROOM,
    T_JOINED,
    T_LEAVE_ROOM,
    T_LOAD_MORE,
    T_LOGIN,
    T_MESSAGE,
    T_MESSAGE_READ,
    T_NOTIFICATION,
    T_OLDER_MESSAGES,
    T_PRIVATE_MESSAGE,
    T_REACT,
    T_REACTION,
    T_ROOM_JOINED,
    T_SEND_MESSAGE,
    T_TYPING,
)
from .envelope import validate_envelope
from .errors import (
    InvalidRoomName,
    InvalidUsername,
    MessageNotFound,
    RecipientOffline,
    RoomHubError,
    UnauthenticatedAction,
)
from .history import FileRef, Message, MessageLog
from .identity import IdentityRegistry
from .messages import MessageHelper, Outgoing
from .presence import PresenceBroadcaster
from .rooms import RoomDirectory
from .session import Session, SessionManager
from .stats import StatsManager
from .util import normalize_room, normalize_username, private_room_name

Handler = Callable[[Session, dict, Outgoing], None]


class SessionRouter:
    """
    Handles event routing and dispatching for the room hub.

    This class is responsible for:
    - Owning the shared state (sessions, identities, rooms, history)
    - Decoding and validating inbound envelopes
    - Dispatching events by type to one handler each
    - Computing the fan-out of every outbound event

    Every entry point takes the state lock, processes the event completely and
    returns the queued `(connection, payload)` pairs. The caller sends them
    after the lock is released.
    """

    def __init__(
        self,
        config: HubRuntimeConfig | None = None,
        *,
        stats: StatsManager | None = None,
    ) -> None:
        self.config = config or HubRuntimeConfig()
        self.log = logging.getLogger("roomhub.router")

        # Sessions, identities, rooms and history are touched from transport
        # callbacks on several threads. One re-entrant lock serializes them.
        self.lock = threading.RLock()

        self.stats = stats or StatsManager()
        self.sessions = SessionManager()
        self.identities = IdentityRegistry(
            max_username_chars=self.config.max_username_chars
        )
        self.rooms = RoomDirectory()
        self.history = MessageLog(max_messages=self.config.history_max_messages)
        self.message_helper = MessageHelper(self)
        self.presence = PresenceBroadcaster(self)

        self._handlers: dict[int, tuple[Handler, bool]] = {}
        self.register_handler(T_LOGIN, self._handle_login, requires_login=False)
        self.register_handler(T_JOIN_ROOM, self._handle_join_room)
        self.register_handler(T_LEAVE_ROOM, self._handle_leave_room)
        self.register_handler(T_SEND_MESSAGE, self._handle_send_message)
        self.register_handler(T_TYPING, self._handle_typing)
        self.register_handler(T_MESSAGE_READ, self._handle_message_read)
        self.register_handler(T_REACT, self._handle_react)
        self.register_handler(T_LOAD_MORE, self._handle_load_more)

    def register_handler(
        self, event: int, handler: Handler, *, requires_login: bool = True
    ) -> None:
        self._handlers[int(event)] = (handler, requires_login)

    # Connection lifecycle

    def on_connect(self, connection: Hashable, conn_id: str | None = None) -> Session:
        with self.lock:
            return self.sessions.on_connect(connection, conn_id)

    def on_disconnect(self, connection: Hashable) -> Outgoing:
        """Tear down a connection's state. Safe to call more than once."""
        outgoing: Outgoing = []
        with self.lock:
            sess = self.sessions.on_disconnect(connection)
            if sess is None:
                return outgoing

            # A taken-over session no longer owns its former username.
            name = self.identities.logout(connection)
            if name is None:
                self.log.info("Session closed conn_id=%s anonymous", sess.conn_id)
                return outgoing

            left = self.rooms.leave_all(name)
            self.presence.queue_online_users(outgoing)
            self.message_helper.queue_to_connections(
                outgoing,
                self.sessions.connections(),
                T_NOTIFICATION,
                {"message": f"{name} disconnected"},
            )
            self.log.info(
                "Session closed conn_id=%s username=%r rooms=%s",
                sess.conn_id,
                name,
                len(left),
            )
        return outgoing

    def clear_all(self) -> list[Hashable]:
        """Drop all state and return the connections for teardown."""
        with self.lock:
            connections = self.sessions.clear_all()
            self.identities.clear_all()
            self.rooms.clear_all()
        return connections

    # Inbound events

    def route_packet(self, connection: Hashable, data: bytes) -> Outgoing:
        """Main entry point for a raw inbound payload."""
        outgoing: Outgoing = []
        with self.lock:
            sess = self.sessions.get_session(connection)
            if sess is None:
                return outgoing

            self.stats.inc("events_in")
            self.stats.inc("bytes_in", len(data))

            try:
                env = decode(data)
                validate_envelope(env)
            except (TypeError, ValueError) as e:
                self.stats.inc("events_bad")
                self.log.debug(
                    "Bad packet conn_id=%s bytes=%s err=%s",
                    sess.conn_id,
                    len(data),
                    e,
                )
                self.message_helper.emit_error(outgoing, connection, f"bad message: {e}")
                return outgoing

            self._dispatch_locked(sess, env[K_T], env.get(K_BODY) or {}, outgoing)
        return outgoing

    def dispatch(
        self, connection: Hashable, event: int, body: dict[str, Any] | None = None
    ) -> Outgoing:
        """Handle an already-decoded event from `connection`."""
        outgoing: Outgoing = []
        with self.lock:
            sess = self.sessions.get_session(connection)
            if sess is None:
                return outgoing
            self.stats.inc("events_in")
            self._dispatch_locked(sess, int(event), body or {}, outgoing)
        return outgoing

    def _dispatch_locked(
        self, sess: Session, t: int, body: dict, outgoing: Outgoing
    ) -> None:
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX conn_id=%s username=%r t=%s(%s) keys=%s",
                sess.conn_id,
                sess.username,
                t,
                EVENT_NAMES.get(t, "?"),
                sorted(str(k) for k in body),
            )

        entry = self._handlers.get(t)
        if entry is None:
            self.stats.inc("events_dropped")
            self.log.debug("Unhandled event t=%s conn_id=%s", t, sess.conn_id)
            return

        handler, requires_login = entry
        try:
            if requires_login and not sess.authenticated:
                raise UnauthenticatedAction(f"{EVENT_NAMES.get(t, t)} before login")
            handler(sess, body, outgoing)
        except RoomHubError as e:
            self.stats.inc("events_dropped")
            self.log.debug(
                "Dropped t=%s conn_id=%s reason=%s: %s",
                t,
                sess.conn_id,
                type(e).__name__,
                e,
            )

    # Handlers

    def _handle_login(self, sess: Session, body: dict, outgoing: Outgoing) -> None:
        if sess.authenticated:
            self.log.debug(
                "Ignoring login on authenticated session conn_id=%s", sess.conn_id
            )
            return

        previous = self.identities.login(sess.connection, body.get("username"))
        name = self.identities.who_is(sess.connection)

        if previous is not None:
            self.sessions.revoke(previous)
            self.stats.inc("takeovers")
            self.message_helper.notify(
                outgoing, previous, f"{name} signed in from another connection"
            )
            # Memberships are keyed by username; the new session starts over in global.
            for room in self.rooms.leave_all(name):
                if room != GLOBAL_ROOM:
                    self.message_helper.notify_room(outgoing, room, f"{name} left {room}")

        sess.username = name
        sess.current_room = GLOBAL_ROOM
        self.rooms.join(GLOBAL_ROOM, name)
        self.stats.inc("logins")

        self.message_helper.queue_event(
            outgoing,
            sess.connection,
            T_JOINED,
            {
                "username": name,
                "rooms": self.rooms.room_names(),
                "lastMessages": self._recent_wire(GLOBAL_ROOM),
            },
        )
        self.presence.queue_online_users(outgoing)
        self.message_helper.notify_room(outgoing, GLOBAL_ROOM, f"{name} joined {GLOBAL_ROOM}")

        self.log.info(
            "LOGIN conn_id=%s username=%r takeover=%s",
            sess.conn_id,
            name,
            previous is not None,
        )

    def _handle_join_room(self, sess: Session, body: dict, outgoing: Outgoing) -> None:
        name = sess.username
        room = self._norm_room(body.get("room"))

        prev = sess.current_room
        if prev:
            self.rooms.leave(prev, name)
            self.message_helper.notify_room(outgoing, prev, f"{name} left {prev}")

        self.rooms.join(room, name)
        sess.current_room = room
        self.stats.inc("joins")

        self.message_helper.notify_room(outgoing, room, f"{name} joined {room}")
        self.message_helper.queue_event(
            outgoing,
            sess.connection,
            T_ROOM_JOINED,
            {"room": room, "lastMessages": self._recent_wire(room)},
        )
        self.presence.queue_online_users(outgoing)

        self.log.info(
            "JOIN conn_id=%s username=%r room=%s prev=%s", sess.conn_id, name, room, prev
        )

    def _handle_leave_room(self, sess: Session, body: dict, outgoing: Outgoing) -> None:
        name = sess.username
        room = self._norm_room(body.get("room"))

        self.rooms.leave(room, name)
        if sess.current_room == room:
            sess.current_room = None
        self.stats.inc("parts")

        self.message_helper.notify_room(outgoing, room, f"{name} left {room}")
        self.log.info("PART conn_id=%s username=%r room=%s", sess.conn_id, name, room)

    def _handle_send_message(
        self, sess: Session, body: dict, outgoing: Outgoing
    ) -> None:
        name = sess.username
        text = body.get("text")
        if not isinstance(text, str) or not text:
            text = None
        file = self._parse_file(body.get("file"))

        if text is None and file is None:
            self.log.debug("Empty message dropped conn_id=%s", sess.conn_id)
            return

        if text is not None and len(text) > int(self.config.max_message_chars):
            self.message_helper.notify(
                outgoing,
                sess.connection,
                f"message too long ({len(text)} > {self.config.max_message_chars} chars)",
            )
            return

        room, peer = self._target(sess, body)
        msg = self.history.append(room, name, text=text, file=file)
        self.stats.inc("messages_stored")

        if peer is None:
            recipients = self.message_helper.queue_to_room(
                outgoing, room, T_MESSAGE, {"room": room, "message": msg.to_wire()}
            )
            if self.log.isEnabledFor(logging.DEBUG):
                self.log.debug(
                    "Stored id=%s username=%r room=%s recipients=%s",
                    msg.id,
                    name,
                    room,
                    recipients,
                )
            return

        self.stats.inc("private_messages")
        try:
            self._deliver_private(sess, peer, msg, outgoing)
        except RecipientOffline as e:
            self.message_helper.notify(outgoing, sess.connection, str(e))
            self.log.debug("Private recipient offline id=%s to=%r", msg.id, peer)

    def _deliver_private(
        self, sess: Session, peer: str, msg: Message, outgoing: Outgoing
    ) -> None:
        peer_conn = self.identities.resolve(peer)
        if peer_conn is None:
            raise RecipientOffline(peer)
        self.message_helper.queue_to_connections(
            outgoing,
            [peer_conn, sess.connection],
            T_PRIVATE_MESSAGE,
            {"to": peer, "message": msg.to_wire()},
        )

    def _handle_typing(self, sess: Session, body: dict, outgoing: Outgoing) -> None:
        room, peer = self._target(sess, body)
        payload = {"username": sess.username, "isTyping": bool(body.get("isTyping"))}

        if peer is None:
            self.message_helper.queue_to_room(outgoing, room, T_TYPING, payload)
            return

        peer_conn = self.identities.resolve(peer)
        if peer_conn is not None:
            self.message_helper.queue_event(outgoing, peer_conn, T_TYPING, payload)

    def _handle_message_read(
        self, sess: Session, body: dict, outgoing: Outgoing
    ) -> None:
        message_id = self._message_id(body)
        room, peer = self._target(sess, body)

        msg = self.history.mark_read(room, message_id, sess.username)
        if msg is None:
            raise MessageNotFound(f"message {message_id} not in {room}")
        self.stats.inc("reads")

        self._fan_out_annotation(
            sess,
            room,
            peer,
            T_MESSAGE_READ,
            {"messageId": msg.id, "username": sess.username},
            outgoing,
        )

    def _handle_react(self, sess: Session, body: dict, outgoing: Outgoing) -> None:
        message_id = self._message_id(body)
        kind = body.get("reaction")
        if not isinstance(kind, str) or not kind.strip():
            self.log.debug("Reaction without kind dropped conn_id=%s", sess.conn_id)
            return
        kind = kind.strip()
        room, peer = self._target(sess, body)

        msg = self.history.add_reaction(room, message_id, sess.username, kind)
        if msg is None:
            raise MessageNotFound(f"message {message_id} not in {room}")
        self.stats.inc("reactions")

        self._fan_out_annotation(
            sess,
            room,
            peer,
            T_REACTION,
            {"messageId": msg.id, "username": sess.username, "reaction": kind},
            outgoing,
        )

    def _handle_load_more(self, sess: Session, body: dict, outgoing: Outgoing) -> None:
        room, _peer = self._target(sess, body)
        offset = self._int_field(body, "offset", 0)
        limit = min(
            self._int_field(body, "limit", int(self.config.page_size_default)),
            int(self.config.max_page_size),
        )

        messages = self.history.page(room, offset, limit)
        self.message_helper.queue_event(
            outgoing,
            sess.connection,
            T_OLDER_MESSAGES,
            {"room": room, "messages": [m.to_wire() for m in messages]},
        )

    # Helpers

    def _fan_out_annotation(
        self,
        sess: Session,
        room: str,
        peer: str | None,
        event: int,
        payload: dict[str, Any],
        outgoing: Outgoing,
    ) -> None:
        if peer is None:
            self.message_helper.queue_to_room(outgoing, room, event, payload)
        else:
            self.message_helper.queue_to_users(outgoing, [sess.username, peer], event, payload)

    def _recent_wire(self, room: str) -> list[dict[str, Any]]:
        return [m.to_wire() for m in self.history.recent(room, int(self.config.recent_messages))]

    def _norm_room(self, value: Any) -> str:
        room = normalize_room(value, max_chars=int(self.config.max_room_name_len))
        if room is None:
            raise InvalidRoomName(f"invalid room name {value!r}")
        if room.startswith(PRIVATE_ROOM_PREFIX):
            raise InvalidRoomName(f"room name {room!r} is reserved")
        return room

    def _target(self, sess: Session, body: dict) -> tuple[str, str | None]:
        """
        Resolve which room an event addresses.

        Returns (room, peer). `peer` is set for private conversations, whose
        room is derived from both usernames.
        """
        to_user = body.get("toUserId")
        if to_user is not None and body.get("isPrivate", True):
            peer = normalize_username(to_user, max_chars=int(self.config.max_username_chars))
            if peer is None:
                raise InvalidUsername(f"invalid recipient {to_user!r}")
            return private_room_name(sess.username, peer), peer

        room = body.get("room")
        if room is None or room == "":
            return sess.current_room or GLOBAL_ROOM, None
        return self._norm_room(room), None

    def _message_id(self, body: dict) -> int:
        message_id = body.get("messageId")
        if not isinstance(message_id, int) or isinstance(message_id, bool):
            raise MessageNotFound(f"invalid message id {message_id!r}")
        return message_id

    def _int_field(self, body: dict, key: str, default: int) -> int:
        value = body.get(key, default)
        if not isinstance(value, int) or isinstance(value, bool):
            return default
        return value

    def _parse_file(self, value: Any) -> FileRef | None:
        if not isinstance(value, dict):
            return None
        url = value.get("url")
        if not isinstance(url, str) or not url:
            return None
        name = value.get("name")
        if not isinstance(name, str) or not name:
            name = url.rsplit("/", 1)[-1]
        return FileRef(url=url, name=name)

    def online_usernames(self) -> list[str]:
        with self.lock:
            return self.presence.online_usernames()
