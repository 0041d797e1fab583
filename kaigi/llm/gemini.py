"""
Google Gemini Generation Backend

Generation backend on Vertex AI using langchain-google-genai.
"""
import importlib
import json
import logging
import re
from typing import Any, Dict, List, Optional

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import ValidationError

from kaigi.personas.models import Relationship

from .base import (
    GenerateInput,
    GenerationBackend,
    GenerationError,
    RelationshipUpdateError,
    UpdateRelationshipInput,
)
from .prompts import (
    build_relationship_system_prompt,
    build_system_prompt,
    messages_to_chat,
    one_line,
    stop_sequences,
)

logger = logging.getLogger(__name__)

GENERATE_TEMPERATURE = 0.3
RELATIONSHIP_TEMPERATURE = 0.1
MAX_OUTPUT_TOKENS = 200


def _parse_content_blocks(content) -> str:
    """
    Extract the visible text from Gemini response content, which is either a
    plain string or a list of typed blocks when thinking mode is active.
    """
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        text_parts: list[str] = []
        for block in content:
            if isinstance(block, dict):
                if block.get("type", "text") == "thinking":
                    continue
                text_parts.append(block.get("text", ""))
            elif isinstance(block, str):
                text_parts.append(block)
        return "".join(text_parts)

    return str(content) if content else ""


def _extract_json_payload(raw_output: str) -> Optional[Dict]:
    text = (raw_output or "").strip()
    if not text:
        return None

    fenced = re.search(r"```(?:json)?\s*(\{[\s\S]*\})\s*```", text, re.IGNORECASE)
    candidates = [fenced.group(1)] if fenced else []
    candidates.append(text)

    start_idx = text.find("{")
    end_idx = text.rfind("}")
    if start_idx != -1 and end_idx != -1 and end_idx > start_idx:
        candidates.append(text[start_idx:end_idx + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


class GeminiBackend(GenerationBackend):
    """
    Generation backend for Gemini models served through Vertex AI.

    One chat model is created per temperature and reused across calls.
    """

    def __init__(
        self,
        project: str,
        location: str,
        model: str = "gemini-2.5-flash-lite",
        language: str = "English",
        llm_logger=None,
    ):
        self.project = project
        self.location = location
        self.model = model
        self.language = language
        self.llm_logger = llm_logger
        self._llms: Dict[float, Any] = {}

    def create_llm(self, temperature: float):
        """Create a ChatGoogleGenerativeAI instance bound to Vertex AI."""
        module = importlib.import_module("langchain_google_genai")
        ChatGoogleGenerativeAI = getattr(module, "ChatGoogleGenerativeAI")

        return ChatGoogleGenerativeAI(
            model=self.model,
            project=self.project,
            location=self.location,
            vertexai=True,
            temperature=temperature,
            max_output_tokens=MAX_OUTPUT_TOKENS,
        )

    def _llm(self, temperature: float):
        llm = self._llms.get(temperature)
        if llm is None:
            llm = self.create_llm(temperature)
            self._llms[temperature] = llm
        return llm

    async def _invoke(
        self,
        agent_id: str,
        purpose: str,
        messages: List[BaseMessage],
        temperature: float,
        stop: Optional[List[str]] = None,
    ) -> str:
        llm = self._llm(temperature)
        kwargs: Dict[str, Any] = {}
        if stop:
            kwargs["stop"] = stop
        response = await llm.ainvoke(messages, **kwargs)
        raw_content = response.content if hasattr(response, "content") else ""
        text = _parse_content_blocks(raw_content)

        if self.llm_logger:
            self.llm_logger.log_interaction(
                agent_id=agent_id,
                purpose=purpose,
                messages_sent=messages,
                response_text=text,
                model=self.model,
                extra_params={"temperature": temperature, "stop": stop},
            )
        return text

    async def generate(self, request: GenerateInput) -> str:
        messages: List[BaseMessage] = [SystemMessage(content=build_system_prompt(request, self.language))]
        messages.extend(messages_to_chat(request.persona.persona_id, request.recent_messages))
        if len(messages) == 1:
            # Gemini rejects a request with only a system instruction.
            messages.append(HumanMessage(content="(The conversation is about to begin.)"))

        try:
            text = await self._invoke(
                request.agent_id,
                "generate",
                messages,
                GENERATE_TEMPERATURE,
                stop=stop_sequences(request),
            )
        except Exception as e:
            if self.llm_logger:
                self.llm_logger.log_error(request.agent_id, e, context="generate")
            raise GenerationError(f"generation failed: {e}") from e

        text = one_line(text)
        if not text:
            raise GenerationError("empty response from model")
        return text

    async def update_relationship(self, request: UpdateRelationshipInput) -> Relationship:
        agent_id = request.persona.persona_id
        messages: List[BaseMessage] = [
            SystemMessage(content=build_relationship_system_prompt(request, self.language))
        ]
        messages.extend(messages_to_chat(request.persona.persona_id, request.recent_messages))

        try:
            raw_output = await self._invoke(agent_id, "relationship", messages, RELATIONSHIP_TEMPERATURE)
        except Exception as e:
            if self.llm_logger:
                self.llm_logger.log_error(agent_id, e, context="relationship")
            raise RelationshipUpdateError(f"relationship update failed: {e}") from e

        payload = _extract_json_payload(raw_output)
        if payload is None:
            raise RelationshipUpdateError(f"failed to parse relationship JSON: {raw_output!r}")

        try:
            return Relationship(
                target_persona_id=request.target_persona.persona_id,
                affinity=payload.get("affinity", request.current_relationship.affinity),
                impression=str(payload.get("impression", "")).strip(),
            )
        except ValidationError as e:
            raise RelationshipUpdateError(f"invalid relationship payload: {e}") from e
