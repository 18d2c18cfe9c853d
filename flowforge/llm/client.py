from __future__ import annotations

import datetime
import functools
import logging
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Optional

import orjson
import requests
from tenacity import RetryError, retry, stop_after_attempt, wait_random_exponential

from flowforge.core.config import settings


logger = logging.getLogger(__name__)

CHAT_PROMPT_PATH = Path(__file__).resolve().parents[2] / "resources" / "prompts" / "chat_system_prompt.txt"

DRY_RUN_REPLY = "LLM endpoint not configured; set LLM_ENDPOINT to start the requirements conversation."


def _log_chat_failure(request_payload: Dict[str, Any], response_data: Dict[str, Any], error: Exception) -> None:
    """Write the failed request and response to ``logs/`` for later inspection."""
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    messages = request_payload.get("messages") or []
    failure_data = {
        "timestamp": timestamp,
        "error_type": type(error).__name__,
        "error_message": str(error),
        "request_payload": request_payload,
        "response_data": response_data,
        "last_message_preview": str(messages[-1].get("content", ""))[:500] if messages else "",
    }

    logs_dir = Path("logs")
    failure_file = logs_dir / f"llm_chat_failure_{timestamp}.json"
    try:
        logs_dir.mkdir(exist_ok=True)
        failure_file.write_bytes(orjson.dumps(failure_data, option=orjson.OPT_INDENT_2))
        logger.error("LLM chat failure logged to %s", failure_file)
    except OSError as log_error:
        logger.error("Failed to log chat failure: %s", log_error)


@functools.lru_cache(maxsize=1)
def _load_chat_prompt() -> str:
    try:
        return CHAT_PROMPT_PATH.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        logger.warning("Chat prompt file %s missing; using fallback text", CHAT_PROMPT_PATH)
        return (
            'You are a PRD assistant for: "$project_title"$project_context.\n'
            "Ask one question at a time. When offering choices, write 'OPTIONS:' followed by a numbered list. "
            "After the user picks options, write 'SUGGESTIONS:' followed by a JSON object with a 'type' "
            "(features, tech_stack, database or user_flows) and an 'items' list of objects with "
            "title, description, actionLabel and metadata."
        )


def build_system_prompt(project_title: str, project_description: Optional[str] = None) -> str:
    """Fill the chat prompt template with the project's title and description."""
    context = f" - {project_description}" if project_description else ""
    return Template(_load_chat_prompt()).safe_substitute(
        project_title=project_title,
        project_context=context,
    )


def recent_messages(messages: List[Dict[str, str]], window: int) -> List[Dict[str, str]]:
    """Return the last ``window`` messages; the latest one is always kept."""
    if not messages:
        return []
    return list(messages[-max(window, 1):])


class LLMClient:
    """Lightweight client for a chat-completions style LLM endpoint."""

    def __init__(self, endpoint: Optional[str] = None, api_key: Optional[str] = None):
        self.endpoint = endpoint or settings.llm_endpoint
        self.api_key = api_key or settings.llm_api_key
        self._dry_run = self.endpoint is None

    @retry(wait=wait_random_exponential(multiplier=1, max=10), stop=stop_after_attempt(3))
    def _call_api(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self.endpoint is None:
            logger.error("LLM endpoint missing; skipping API call")
            return {}
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            if settings.model_source == "azure":
                headers["api-key"] = f"{self.api_key}"
            else:
                headers["Authorization"] = f"Bearer {self.api_key}"

        logger.info("Calling LLM endpoint %s", self.endpoint)
        logger.debug("Message count: %d", len(payload.get("messages", [])))

        try:
            response = requests.post(self.endpoint, headers=headers, data=orjson.dumps(payload))
            logger.info("Received response with status %s", response.status_code)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as exc:
            logger.error("HTTP request failed: %s", exc)
            if getattr(exc, "response", None) is not None:
                logger.error("Response status: %s", exc.response.status_code)
                logger.error("Response content: %s", exc.response.text[:500])
            raise

    def chat(
        self,
        *,
        messages: List[Dict[str, str]],
        project_title: str,
        project_description: Optional[str] = None,
    ) -> str:
        """Send the conversation and return the assistant's raw reply text."""
        if self._dry_run:
            return DRY_RUN_REPLY

        conversation: List[Dict[str, str]] = [
            {"role": "system", "content": build_system_prompt(project_title, project_description)},
        ]
        for item in recent_messages(messages, settings.chat_history_window):
            role = item.get("role", "user")
            content = str(item.get("content", ""))
            if not content or role not in {"user", "assistant"}:
                continue
            conversation.append({"role": role, "content": content})

        payload: Dict[str, Any] = {
            "messages": conversation,
            "temperature": settings.llm_temperature_chat,
            "max_tokens": settings.llm_max_tokens,
        }
        if settings.llm_model:
            payload["model"] = settings.llm_model

        try:
            raw = self._call_api(payload)
        except RetryError as exc:
            logger.exception("LLM chat failed after retries")
            _log_chat_failure(payload, {}, exc)
            raise RuntimeError("LLM chat request failed") from exc

        choices = raw.get("choices") or [{}]
        message_content = choices[0].get("message", {}).get("content", "")
        if isinstance(message_content, list):
            # Some providers return content as a list of typed parts
            message_content = "".join(
                str(part.get("text", "")) for part in message_content if isinstance(part, dict)
            )
        if not isinstance(message_content, str):
            _log_chat_failure(payload, raw, TypeError("Unexpected message content type"))
            return ""
        return message_content


def get_client() -> LLMClient:
    """Return an LLM client using application settings."""
    return LLMClient()
