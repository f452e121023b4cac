"""
In-memory conversation log.

Holds exactly one current conversation (a session id plus its ordered
turns) for the lifetime of the process. The log is provider-agnostic:
turns from any backend land in the same conversation, and a reconnection
never starts a new one.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from screenrelay.core.notifications import SAVE_CONVERSATION_TURN, NotificationSink
from screenrelay.models.session import (
    ConversationSnapshot,
    ConversationTurn,
    Provider,
    new_session_id,
)

logger = logging.getLogger(__name__)

IMAGE_INPUT_SUMMARY = "[Image sent]"
AUDIO_INPUT_SUMMARY = "[Audio]"


class ConversationLog:
    """
    Append-only turn history keyed by a session id.

    A turn is only ever recorded for a non-empty response; callers never
    record failed calls.
    """

    def __init__(self, sink: NotificationSink | None = None):
        """
        Initialize the log.

        Args:
            sink: Receives a ``save-conversation-turn`` notification per turn
        """
        self._sink = sink
        self._session_id: str | None = None
        self._turns: list[ConversationTurn] = []

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def turns(self) -> list[ConversationTurn]:
        return list(self._turns)

    def start_new(self) -> str:
        """Discard the current history and mint a fresh session id."""
        previous = self._session_id
        session_id = new_session_id()
        while session_id == previous:
            session_id = new_session_id()
        self._session_id = session_id
        self._turns = []
        logger.info("New conversation session started: %s", session_id)
        return session_id

    def record(
        self,
        input_summary: str,
        response_text: str,
        provider: Provider | None = None,
    ) -> ConversationTurn | None:
        """
        Append a turn if the response is non-empty.

        Returns:
            The recorded turn, or None when nothing was recorded
        """
        response = (response_text or "").strip()
        if not response:
            return None
        if self._session_id is None:
            self.start_new()

        turn = ConversationTurn(
            input_summary=(input_summary or "").strip(),
            response_text=response,
            provider=provider,
        )
        self._turns.append(turn)
        logger.debug("Saved conversation turn %d in %s", len(self._turns), self._session_id)

        if self._sink is not None:
            self._sink.emit(
                SAVE_CONVERSATION_TURN,
                {
                    "sessionId": self._session_id,
                    "turn": turn.to_wire(),
                    "fullHistory": [t.to_wire() for t in self._turns],
                },
            )
        return turn

    def snapshot(self) -> ConversationSnapshot:
        """Current session id and a copy of its history."""
        return ConversationSnapshot(session_id=self._session_id, history=list(self._turns))

    def export(self, fmt: str = "markdown") -> str:
        """
        Export the current conversation as a string.

        Args:
            fmt: Export format ('markdown' or 'json')
        """
        if fmt == "json":
            data: dict[str, Any] = {
                "session_id": self._session_id,
                "turns": [
                    {
                        "ts": turn.timestamp.isoformat(),
                        "provider": turn.provider.value if turn.provider else None,
                        "input": turn.input_summary,
                        "response": turn.response_text,
                    }
                    for turn in self._turns
                ],
            }
            return json.dumps(data, indent=2)

        lines = [
            f"# Conversation {self._session_id or '(none)'}",
            "",
            "---",
            "",
        ]
        for turn in self._turns:
            speaker = turn.provider.display_name if turn.provider else "Assistant"
            lines.append(f"**You:** {turn.input_summary}\n")
            lines.append(f"**{speaker}:** {turn.response_text}\n")
        return "\n".join(lines)
