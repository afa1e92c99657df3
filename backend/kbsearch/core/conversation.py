from typing import Protocol

from loguru import logger

from kbsearch.core.errors import Result
from kbsearch.models.chat import ConversationState, Message, NormalizedAnswer, Role

NETWORK_ERROR_MESSAGE = "A network error occurred. Please check your connection and try again."
FALLBACK_ERROR_MESSAGE = "Failed to get response. Please try again."


class AgentQuery(Protocol):
    async def query(self, text: str, agent_id: str) -> Result[NormalizedAnswer]: ...


class ConversationController:
    """
    Owns the append-only message log for one conversation with one agent.

    At most one query is outstanding at a time: submit() while pending is a
    no-op, whatever the UI does.
    """

    def __init__(self, agent: AgentQuery, agent_id: str):
        self._agent = agent
        self.agent_id = agent_id
        self._messages: list[Message] = []
        self.input = ""
        self.pending = False
        self.last_error: str | None = None

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def state(self) -> ConversationState:
        return ConversationState(
            messages=self.messages,
            pending=self.pending,
            last_error=self.last_error,
            input=self.input,
        )

    def set_input(self, value: str) -> None:
        self.input = value

    async def on_key(self, key: str, shift: bool = False) -> Message | None:
        """Enter submits the input buffer; Shift+Enter is left for new lines."""
        if key != "Enter" or shift:
            return None
        return await self.submit()

    async def submit(self, text: str | None = None) -> Message | None:
        """
        Ask the agent one question and append both turns to the log.

        Uses the input buffer when ``text`` is None. Returns the agent turn, or
        None when nothing was sent (blank input or a query already pending).
        """
        query = self.input if text is None else text
        if not query.strip():
            return None
        if self.pending:
            logger.debug("[chat] query already pending; ignoring {!r}", query[:60])
            return None

        # Everything up to the await runs without yielding, so the guard above
        # and the flag below cannot be interleaved by another submit().
        self._messages.append(Message(role=Role.USER, content=query))
        self.input = ""
        self.pending = True
        self.last_error = None

        try:
            result = await self._agent.query(query, self.agent_id)
            if result.success and result.value is not None:
                reply = self._answer_message(result.value)
            else:
                reply = self._error_message(result.error_message or FALLBACK_ERROR_MESSAGE)
        except Exception:
            logger.exception("[chat] query to {} raised", self.agent_id)
            reply = self._error_message(NETWORK_ERROR_MESSAGE)
        finally:
            self.pending = False

        self._messages.append(reply)
        return reply

    def _answer_message(self, answer: NormalizedAnswer) -> Message:
        return Message(
            role=Role.AGENT,
            content=answer.answer,
            sources=tuple(answer.sources),
            confidence=answer.confidence,
            follow_ups=tuple(answer.follow_ups),
        )

    def _error_message(self, text: str) -> Message:
        self.last_error = text
        logger.warning("[chat] agent turn failed: {}", text)
        return Message(role=Role.AGENT, content=text, is_error=True)
