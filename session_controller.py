"""
Chat Session Controller — client side of one conversation.

Owns the session id and the transcript, sends turns to /api/chatbot and
keeps at most one turn in flight:

    IDLE ──submit──▶ SENDING ──reply / failure──▶ IDLE

The user turn is appended optimistically before the request goes out. Any
failure (network, timeout, non-200, rate limit) becomes a bot turn with a
fixed apology; nothing is retried automatically.
"""

import secrets
import threading
import uuid
from typing import Callable, List, Optional

import requests

from app_config import (
    CHAT_API_BASE_URL,
    CHAT_CLIENT_TIMEOUT,
    CLIENT_FALLBACK_MESSAGE,
    WELCOME_DELAY_SECONDS,
    WELCOME_MESSAGE,
)
from chat_logger import get_logger
from models import ChatState, Sender, Session, Turn

logger = get_logger()


class ChatTransportError(Exception):
    """A turn request did not produce a usable reply."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class HttpChatTransport:
    """Posts turns to the chatbot endpoint over HTTP."""

    def __init__(
        self,
        base_url: str = CHAT_API_BASE_URL,
        timeout: float = CHAT_CLIENT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.url = f"{base_url.rstrip('/')}/api/chatbot"
        self.timeout = timeout
        self.http = session or requests.Session()

    def send_turn(self, message: str, session_id: str) -> str:
        """
        Send one turn and return the bot's reply.

        Raises:
            ChatTransportError: network error, timeout, non-200 status, or
                a body without a `response` string
        """
        try:
            resp = self.http.post(
                self.url,
                json={"message": message, "sessionId": session_id},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise ChatTransportError(f"Request timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise ChatTransportError(f"Network error: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {}

        if resp.status_code != 200:
            raise ChatTransportError(
                data.get("message") or f"Failed to get a response (HTTP {resp.status_code})",
                status=resp.status_code,
            )

        reply = data.get("response")
        if not isinstance(reply, str) or not reply.strip():
            raise ChatTransportError("Response body has no reply text", status=resp.status_code)
        return reply


def new_session_id() -> str:
    return secrets.token_hex(8)


def new_turn_id() -> str:
    return uuid.uuid4().hex


class ChatSessionController:
    """
    Orchestrates one chat widget instance.

    `on_change` is called with the transcript after every append; the view
    uses it to scroll to the newest turn.
    """

    def __init__(
        self,
        transport,
        welcome_delay: float = WELCOME_DELAY_SECONDS,
        welcome_message: Optional[str] = WELCOME_MESSAGE,
        on_change: Optional[Callable[[List[Turn]], None]] = None,
    ):
        self.transport = transport
        self.welcome_delay = welcome_delay
        self.welcome_message = welcome_message
        self.on_change = on_change

        self.session: Optional[Session] = None
        self.state = ChatState.IDLE
        self.input_text = ""

        self._transcript: List[Turn] = []
        self._lock = threading.RLock()
        self._welcome_timer: Optional[threading.Timer] = None

    # ─── Lifecycle ───

    def mount(self) -> Session:
        """Start the session and schedule the welcome turn."""
        with self._lock:
            if self.session is None:
                self.session = Session(session_id=new_session_id())
            if self.welcome_message and self._welcome_timer is None:
                self._welcome_timer = threading.Timer(self.welcome_delay, self._add_welcome)
                self._welcome_timer.daemon = True
                self._welcome_timer.start()
            return self.session

    def unmount(self) -> None:
        with self._lock:
            if self._welcome_timer is not None:
                self._welcome_timer.cancel()
                self._welcome_timer = None

    def _add_welcome(self) -> None:
        with self._lock:
            # Skip once the conversation has started
            if not self._transcript:
                self._append(Sender.BOT, self.welcome_message, turn_id="welcome")

    # ─── View state ───

    @property
    def transcript(self) -> List[Turn]:
        with self._lock:
            return list(self._transcript)

    @property
    def is_typing(self) -> bool:
        return self.state is ChatState.SENDING

    @property
    def can_submit(self) -> bool:
        """Whether the input and send button are enabled."""
        return self.state is ChatState.IDLE and bool(self.input_text.strip())

    def set_input(self, text: str) -> None:
        self.input_text = text

    # ─── Turns ───

    def submit(self, text: Optional[str] = None) -> bool:
        """
        Send `text` (or the current input) and wait for the reply.

        Returns False without touching the transcript when a turn is
        already in flight or the message is blank.
        """
        content = self._begin_turn(text)
        if content is None:
            return False
        self._finish_turn(content)
        return True

    def submit_async(self, text: Optional[str] = None) -> Optional[threading.Thread]:
        """Like submit(), but the request runs on a worker thread."""
        content = self._begin_turn(text)
        if content is None:
            return None
        worker = threading.Thread(target=self._finish_turn, args=(content,), daemon=True)
        worker.start()
        return worker

    def _begin_turn(self, text: Optional[str]) -> Optional[str]:
        with self._lock:
            content = (self.input_text if text is None else text).strip()
            if self.state is ChatState.SENDING or not content:
                return None
            if self.session is None:
                self.session = Session(session_id=new_session_id())

            self.state = ChatState.SENDING
            self._append(Sender.USER, content)
            self.input_text = ""
            return content

    def _finish_turn(self, content: str) -> None:
        try:
            try:
                reply = self.transport.send_turn(content, self.session.session_id)
            except ChatTransportError as e:
                logger.warning(f"Chat error | session={self.session.session_id} | status={e.status} | error={e}")
                reply = CLIENT_FALLBACK_MESSAGE
            except Exception:
                logger.exception(f"Chat error | session={self.session.session_id} | unexpected transport failure")
                reply = CLIENT_FALLBACK_MESSAGE

            with self._lock:
                self._append(Sender.BOT, reply)
        finally:
            with self._lock:
                self.state = ChatState.IDLE

    def _append(self, sender: Sender, content: str, turn_id: Optional[str] = None) -> Turn:
        turn = Turn(id=turn_id or new_turn_id(), content=content, sender=sender)
        self._transcript.append(turn)
        if self.on_change is not None:
            # A broken view hook must not wedge the conversation in SENDING
            try:
                self.on_change(list(self._transcript))
            except Exception:
                logger.exception(f"View update failed | turn={turn.id}")
        return turn
