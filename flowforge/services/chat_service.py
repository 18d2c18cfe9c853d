from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.engine import Engine

from flowforge.data import models
from flowforge.data.db import session_scope
from flowforge.data.repositories import ChatHistoryRepository, ProjectRepository
from flowforge.llm.client import LLMClient, get_client
from flowforge.llm.protocol import parse_response
from flowforge.llm.schemas import SuggestionGroup


logger = logging.getLogger(__name__)

START_COMMAND = "start"


@dataclass
class ChatMessageView:
    id: int
    role: models.MessageRole
    content: str
    options: List[str]
    suggestions: Optional[SuggestionGroup]
    created_at: datetime


@dataclass
class ChatTurn:
    user_message: ChatMessageView
    assistant_message: ChatMessageView

    @property
    def options(self) -> List[str]:
        return self.assistant_message.options

    @property
    def suggestions(self) -> Optional[SuggestionGroup]:
        return self.assistant_message.suggestions


def greeting_for(title: str, description: Optional[str]) -> str:
    context = f" - {description}" if description else ""
    return f'I will help you define requirements for "{title}"{context}.\n\nLet\'s start.'


class ChatService:
    """Requirements conversation for one project, stored alongside its graph."""

    def __init__(self, engine: Optional[Engine] = None, llm_client: Optional[LLMClient] = None):
        self.engine = engine
        self.llm = llm_client or get_client()

    def history(self, project_id: int, limit: Optional[int] = None) -> List[ChatMessageView]:
        with session_scope(self.engine) as session:
            rows = ChatHistoryRepository(session).list_messages(project_id, limit=limit)
            return [self._to_view(row) for row in rows]

    def clear_history(self, project_id: int) -> int:
        with session_scope(self.engine) as session:
            return ChatHistoryRepository(session).clear(project_id)

    def start_conversation(self, project_id: int) -> Optional[ChatTurn]:
        """Open an empty conversation with a greeting and the assistant's first question.

        Returns ``None`` when the project already has messages.
        """
        with session_scope(self.engine) as session:
            project = ProjectRepository(session).get(project_id)
            if project is None:
                raise ValueError("Project not found")
            chat = ChatHistoryRepository(session)
            if chat.list_messages(project_id, limit=1):
                return None
            chat.add_message(
                project_id=project_id,
                role=models.MessageRole.assistant,
                content=greeting_for(project.title, project.description),
            )
        return self.send_message(project_id, START_COMMAND)

    def send_message(self, project_id: int, text: str) -> ChatTurn:
        """Store the user's message, ask the assistant and store its parsed reply.

        Suggestions in the reply are returned but not applied; callers hand them
        to ``SuggestionService.process_suggestions``.
        """
        content = (text or "").strip()
        if not content:
            raise ValueError("Message text is required")

        with session_scope(self.engine) as session:
            project = ProjectRepository(session).get(project_id)
            if project is None:
                raise ValueError("Project not found")
            title, description = project.title, project.description
            chat = ChatHistoryRepository(session)
            user_row = chat.add_message(project_id=project_id, role=models.MessageRole.user, content=content)
            user_view = self._to_view(user_row)
            transcript = [
                {"role": row.role.value, "content": row.content}
                for row in chat.list_messages(project_id)
            ]

        raw = self.llm.chat(messages=transcript, project_title=title, project_description=description)
        parsed = parse_response(raw)
        logger.info(
            "Assistant reply for project %s: %d option(s), suggestions=%s",
            project_id,
            len(parsed.options or []),
            parsed.suggestions.type if parsed.suggestions else None,
        )

        with session_scope(self.engine) as session:
            assistant_row = ChatHistoryRepository(session).add_message(
                project_id=project_id,
                role=models.MessageRole.assistant,
                content=parsed.display_message,
                options=parsed.options,
                suggestions=parsed.suggestions.model_dump(by_alias=True) if parsed.suggestions else None,
            )
            assistant_view = self._to_view(assistant_row)

        return ChatTurn(user_message=user_view, assistant_message=assistant_view)

    def _to_view(self, message: models.ChatMessage) -> ChatMessageView:
        suggestions: Optional[SuggestionGroup] = None
        if message.suggestions:
            try:
                suggestions = SuggestionGroup.model_validate(message.suggestions)
            except ValidationError:
                logger.warning("Stored suggestions on message %s no longer validate", message.id)
        return ChatMessageView(
            id=message.id,
            role=message.role,
            content=message.content,
            options=list(message.options or []),
            suggestions=suggestions,
            created_at=message.created_at,
        )
