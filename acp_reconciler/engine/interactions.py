"""Pending agent questions, one slot per session."""
from __future__ import annotations

import asyncio
import logging

from acp_reconciler.adapters.events import InteractionPromptRequest
from acp_reconciler.adapters.host import HostClient
from acp_reconciler.engine.state import SessionStore
from acp_reconciler.shared.models.interaction import InteractionPrompt

logger = logging.getLogger(__name__)


class InteractionCorrelator:
    """Tracks the pending interaction prompt of each session.

    A new prompt overwrites an unanswered one (last request wins).
    Answering clears the slot before the response reaches the host, so a
    failed send never leaves the session blocked.
    """

    def __init__(self, store: SessionStore, host: HostClient) -> None:
        self._store = store
        self._host = host
        self._tasks: set[asyncio.Task[None]] = set()

    def set_prompt(self, session_id: str, prompt: InteractionPrompt | None) -> None:
        if prompt is None:
            self._store.prompts.pop(session_id, None)
            return
        replaced = self._store.prompts.get(session_id)
        if replaced is not None:
            logger.info(
                "Prompt %s for session %s replaced by %s before it was answered",
                replaced.request_id, session_id, prompt.request_id,
            )
        self._store.prompts[session_id] = prompt

    def handle_request(self, event: InteractionPromptRequest) -> InteractionPrompt:
        prompt = InteractionPrompt(
            session_id=event.session_id,
            type=event.prompt_type,
            message=event.message,
            request_id=event.request_id,
            tool_name=event.tool_name,
            options=list(event.options),
        )
        self.set_prompt(event.session_id, prompt)
        logger.info(
            "Interaction prompt (%s) for session %s: %s",
            prompt.type.value, event.session_id, prompt.request_id or "-",
        )
        return prompt

    def pending(self, session_id: str) -> InteractionPrompt | None:
        return self._store.prompts.get(session_id)

    def has_pending(self, session_id: str) -> bool:
        return session_id in self._store.prompts

    def resolve(self, session_id: str, response: str) -> asyncio.Task[None]:
        """Answer the session's prompt and clear it.

        Must be called from the event loop. The slot is cleared before the
        send is scheduled; the returned task can be awaited but need not be.
        """
        prompt = self._store.prompts.pop(session_id, None)
        request_id = prompt.request_id if prompt else None
        option = prompt.match_option(response) if prompt else None
        option_id = option.option_id if option else None
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._send(session_id, response, request_id, option_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _send(
        self,
        session_id: str,
        response: str,
        request_id: str | None,
        option_id: str | None,
    ) -> None:
        try:
            await self._host.send_interaction_response(
                session_id, response, request_id=request_id, option_id=option_id,
            )
        except Exception as exc:
            logger.warning("Failed to send interaction response for session %s: %s", session_id, exc)
            self._store.set_error(session_id, f"Failed to send response: {exc}")

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
