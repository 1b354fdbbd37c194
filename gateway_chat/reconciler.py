"""
Chat event reconciliation.

The gateway streams each assistant reply as a run: any number of `delta`
events, each carrying the full text so far, then exactly one `final` or
`error`. ChatReconciler folds those events into a transcript with one entry
per run, ignores anything that arrives for a run after it is finished, and
fires the terminal side effect (speech) at most once per run.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Set, Dict, Tuple

from .protocol import ChatEvent, ChatState
from .logger import Logger

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


def extract_text(content: Any) -> str:
    """
    Pull display text out of the message shapes the gateway emits:
    a plain string, a list of content blocks, an object wrapping `content`,
    or an object with a `text` field.
    """
    if not content:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and (block.get("type") == "text" or block.get("text")):
                text = block.get("text")
                parts.append(text if isinstance(text, str) else "")
        return "".join(parts)
    if isinstance(content, dict):
        if "content" in content:
            return extract_text(content["content"])
        if "text" in content:
            text = content["text"]
            return "" if text is None else str(text)
    return ""


@dataclass(frozen=True)
class ChatMessage:
    """One transcript entry as seen by readers"""
    role: str
    text: str
    is_error: bool = False


@dataclass
class _Entry:
    role: str
    text: str
    is_error: bool = False
    run_id: Optional[str] = None

    def freeze(self) -> ChatMessage:
        return ChatMessage(self.role, self.text, self.is_error)


class ChatReconciler:
    """
    Owns the transcript, the loading flag and per-run bookkeeping.

    Gateway events arrive on the transport's reader thread while user sends
    come from the caller's thread, so state changes happen under a lock and
    readers only ever get immutable snapshots.
    """

    def __init__(
        self,
        on_final: Optional[Callable[[str, str], None]] = None,
        on_run_error: Optional[Callable[[Optional[str], str], None]] = None,
        on_change: Optional[Callable[[Tuple[ChatMessage, ...]], None]] = None,
        flag_send_errors: bool = True,
    ) -> None:
        """
        Args:
            on_final: One-shot side effect per run, called with (run_id, text)
            on_run_error: Called with (run_id, description) for error events
            on_change: Called with a transcript snapshot after every change
            flag_send_errors: Mark send-failure entries with is_error
        """
        self.on_final = on_final
        self.on_run_error = on_run_error
        self.on_change = on_change
        self.flag_send_errors = flag_send_errors

        self._lock = threading.RLock()
        self._entries: List[_Entry] = []
        self._streaming: Dict[str, str] = {}
        self._finalized: Set[str] = set()
        self._spoken: Set[str] = set()
        self._loading = False

    # ========================================================================
    # Snapshots
    # ========================================================================

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(entry.freeze() for entry in self._entries)

    @property
    def is_loading(self) -> bool:
        return self._loading

    def is_finalized(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._finalized

    def streaming_text(self, run_id: str) -> Optional[str]:
        with self._lock:
            return self._streaming.get(run_id)

    # ========================================================================
    # Gateway events
    # ========================================================================

    def handle_event(self, event: ChatEvent) -> None:
        """Apply one chat event"""
        run_id = event.run_id

        with self._lock:
            if run_id and run_id in self._finalized:
                return

        if event.state == ChatState.DELTA.value and run_id:
            self._apply_delta(run_id, event.message)
        elif event.state == ChatState.FINAL.value:
            self._apply_final(run_id, event.message)
        elif event.state == ChatState.ERROR.value:
            self._apply_error(run_id, event.message)
        elif event.state == ChatState.USER.value or event.role == ROLE_USER:
            message = event.message if event.message is not None else event.content
            self._apply_user(message)
        else:
            Logger.debug("CHAT", f"Ignoring chat event state={event.state!r} runId={run_id!r}")

    def _apply_delta(self, run_id: str, message: Any) -> None:
        text = extract_text(message)
        if not text:
            return
        with self._lock:
            # Deltas are cumulative snapshots: replace, never concatenate
            self._streaming[run_id] = text
            entry = self._find_run(run_id)
            if entry is not None:
                entry.text = text
            else:
                self._entries.append(_Entry(ROLE_ASSISTANT, text, run_id=run_id))
        self._changed()

    def _apply_final(self, run_id: Optional[str], message: Any) -> None:
        final_text = extract_text(message)
        fire = False

        with self._lock:
            if run_id:
                self._finalized.add(run_id)
                self._streaming.pop(run_id, None)
                if final_text and run_id not in self._spoken:
                    self._spoken.add(run_id)
                    fire = True

            entry = self._find_run(run_id) if run_id else None
            if entry is not None:
                entry.text = final_text or entry.text
                entry.run_id = None
            elif final_text:
                self._entries.append(_Entry(ROLE_ASSISTANT, final_text))
            self._loading = False

        self._changed()
        if fire and self.on_final:
            self.on_final(run_id, final_text)

    def _apply_error(self, run_id: Optional[str], message: Any) -> None:
        description = f"Error: {extract_text(message) or 'Unknown error'}"
        with self._lock:
            if run_id:
                self._finalized.add(run_id)
                self._streaming.pop(run_id, None)
            self._loading = False
            self._entries.append(_Entry(ROLE_ASSISTANT, description, is_error=True))
        self._changed()
        if self.on_run_error:
            self.on_run_error(run_id, description)

    def _apply_user(self, message: Any) -> None:
        """A message sent to the same session from another channel"""
        text = extract_text(message)
        if not text:
            return
        with self._lock:
            self._entries.append(_Entry(ROLE_USER, text))
        self._changed()

    # ========================================================================
    # Local actions
    # ========================================================================

    def add_user_message(self, text: str) -> None:
        """Optimistically show an outgoing message and start loading"""
        with self._lock:
            self._entries.append(_Entry(ROLE_USER, text))
            self._loading = True
        self._changed()

    def record_send_failure(self, error: Exception) -> None:
        """A chat.send failed: stop loading and show why"""
        with self._lock:
            self._loading = False
            self._entries.append(_Entry(ROLE_ASSISTANT, f"Failed to send: {error}", is_error=self.flag_send_errors))
        self._changed()

    def load_history(self, messages: Sequence[Any]) -> None:
        """
        Replace the transcript with history fetched from the gateway.
        Entries with no displayable text are skipped.
        """
        entries = []
        for item in messages:
            if not isinstance(item, dict):
                continue
            role = ROLE_USER if item.get("role") == ROLE_USER else ROLE_ASSISTANT
            text = extract_text(item.get("content"))
            if text.strip():
                entries.append(_Entry(role, text))
        with self._lock:
            self._entries = entries
        self._changed()

    def reset_runs(self) -> None:
        """Forget in-flight streams and the loading flag (connection lost)"""
        with self._lock:
            self._streaming.clear()
            self._loading = False
            for entry in self._entries:
                entry.run_id = None

    # ========================================================================
    # Internals
    # ========================================================================

    def _find_run(self, run_id: str) -> Optional[_Entry]:
        for entry in self._entries:
            if entry.run_id == run_id:
                return entry
        return None

    def _changed(self) -> None:
        if self.on_change:
            self.on_change(self.messages)
