"""AI gateway: every generative call the studio makes goes through here."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from pydantic import ValidationError as SchemaError

from personastudio.config import Config
from personastudio.errors import EmptyInputError, GatewayError
from personastudio.prompts import (
    PARAMETERS_SCHEMA,
    PERSONALITY_SCHEMA,
    build_change_summary_prompt,
    build_chat_system_prompt,
    build_condense_prompt,
    build_extraction_prompt,
    build_filename_prompt,
    build_personality_prompt,
    build_refine_system_prompt,
    build_research_prompt,
    build_summary_prompt,
    build_welcome_prompt,
    history_to_messages,
)
from personastudio.providers.base import LLMProvider, extract_json_object
from personastudio.providers.factory import get_provider
from personastudio.schemas import (
    PARAMETER_FIELDS,
    ChatMessage,
    ExtractedParameters,
    MbtiProfile,
    PersonaState,
    RefinementReply,
    WebSource,
    dedupe_sources,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REFINE_REPLY = "Understood. I've updated the settings."
FAILED_REFINE_REPLY = "Sorry, I couldn't update the settings."


class AIGateway:
    """
    Async facade over an LLM provider.

    Provider SDKs are blocking, so each call runs in a worker thread via
    asyncio.to_thread; the event loop only ever suspends at these calls.
    Any provider failure, timeout or unparseable structured output is
    raised as GatewayError.
    """

    def __init__(
        self,
        provider: LLMProvider,
        language: str = "English",
        models: Optional[Dict[str, str]] = None,
    ):
        self.provider = provider
        self.language = language
        self.models = models or {}

    @classmethod
    def from_config(cls, config: Config) -> "AIGateway":
        """Build a gateway with per-role models from configuration."""
        models: Dict[str, str] = {}
        if config.llm_provider == "openai":
            models = {
                "text": config.llm_model_text,
                "json": config.llm_model_json,
                "chat": config.llm_model_chat,
            }
        return cls(
            provider=get_provider(config, role="text"),
            language=config.language,
            models=models,
        )

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except GatewayError:
            raise
        except Exception as e:
            raise GatewayError(f"{self.provider.name} request failed: {e}") from e

    async def _text(self, prompt: str, temperature: float = 0.7) -> str:
        text = await self._call(
            self.provider.generate_text,
            prompt,
            model=self.models.get("text"),
            temperature=temperature,
        )
        return (text or "").strip()

    async def _json(self, prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(
            self.provider.generate_json,
            prompt,
            schema,
            model=self.models.get("json"),
        )

    # --- Summary / extraction ---

    async def generate_summary(self, state: PersonaState) -> str:
        """Write a narrative summary from the structured fields (existing summary ignored)."""
        prompt = build_summary_prompt(state.without_summary(), self.language)
        summary = await self._text(prompt)
        if not summary:
            raise GatewayError("AI returned an empty summary")
        return summary

    async def extract_parameters(self, text: str, source: str = "document") -> ExtractedParameters:
        """Extract structured fields from free text (a summary, document or research notes)."""
        prompt = build_extraction_prompt(text, source=source, language=self.language)
        result = await self._json(prompt, PARAMETERS_SCHEMA)
        try:
            return ExtractedParameters.model_validate(result)
        except SchemaError as e:
            raise GatewayError(f"AI returned malformed parameters: {e}") from e

    async def research_topic(self, topic: str) -> Tuple[ExtractedParameters, List[WebSource]]:
        """Search the web for a topic, then extract parameters from the findings."""
        text, citations = await self._call(
            self.provider.search_text,
            build_research_prompt(topic, self.language),
            model=self.models.get("text"),
        )
        if not (text or "").strip():
            raise GatewayError("AI could not find enough information on the topic")

        sources = dedupe_sources(
            WebSource(title=c.get("title") or "Unknown Source", uri=c.get("uri") or "#")
            for c in citations
        )
        params = await self.extract_parameters(text, source="document")
        return params, sources

    # --- Save-time derivations ---

    async def condense(self, text: str, kind: str = "summary") -> str:
        """Compress a summary or tone description. Blank input returns "" without a call."""
        if not text.strip():
            return ""
        return await self._text(build_condense_prompt(text, kind, self.language), temperature=0.3)

    async def describe_change(self, old: PersonaState, new: PersonaState) -> str:
        """One-line description of what changed between two versions."""
        prompt = build_change_summary_prompt(old, new, self.language)
        return await self._text(prompt, temperature=0.3)

    # --- Personality ---

    async def analyze_personality(self, state: PersonaState) -> MbtiProfile:
        """Classify the persona on the four MBTI axes."""
        result = await self._json(build_personality_prompt(state, self.language), PERSONALITY_SCHEMA)
        try:
            return MbtiProfile.model_validate(result)
        except SchemaError as e:
            raise GatewayError(f"AI returned a malformed personality profile: {e}") from e

    # --- Conversation ---

    async def welcome_message(self, state: PersonaState) -> str:
        """Greeting shown when conversational refinement starts."""
        return await self._text(build_welcome_prompt(state, self.language))

    async def conversational_refine(
        self,
        history: Sequence[ChatMessage],
        current: Dict[str, str],
    ) -> RefinementReply:
        """
        Turn the latest user instruction into partial parameter updates.

        Malformed output degrades to a reply with no updates rather than an error.
        """
        raw = await self._call(
            self.provider.generate_chat,
            history_to_messages([m.model_dump() for m in history]),
            system=build_refine_system_prompt(current, self.language),
            json_mode=True,
            model=self.models.get("chat"),
        )
        try:
            parsed = extract_json_object(raw or "")
        except ValueError:
            logger.warning("Refinement reply was not JSON; applying no updates")
            return RefinementReply(response_text=(raw or "").strip() or FAILED_REFINE_REPLY)

        updates = parsed.get("updatedParameters") or parsed.get("updated_parameters") or {}
        if not isinstance(updates, dict):
            updates = {}
        clean = {
            key: value
            for key, value in updates.items()
            if key in PARAMETER_FIELDS and isinstance(value, str)
        }
        text = parsed.get("responseText") or parsed.get("response_text")
        return RefinementReply(
            response_text=text if isinstance(text, str) and text.strip() else DEFAULT_REFINE_REPLY,
            updated_parameters=clean,
        )

    async def chat_reply(self, state: PersonaState, history: Sequence[ChatMessage]) -> str:
        """Answer the last user message in character."""
        if not history or history[-1].role != "user" or not history[-1].text.strip():
            raise EmptyInputError("No message provided to send")

        reply = await self._call(
            self.provider.generate_chat,
            history_to_messages([m.model_dump() for m in history]),
            system=build_chat_system_prompt(state, self.language),
            model=self.models.get("chat"),
        )
        return (reply or "").strip() or "..."

    # --- Export helpers ---

    async def filename_slug(self, name: str) -> str:
        """Filename-safe romanization of a persona name; "persona" when nothing usable comes back."""
        if name.isascii():
            slug = re.sub(r"[^a-z0-9_]", "", name.strip().lower().replace(" ", "_"))
            if slug:
                return slug
        try:
            raw = await self._text(build_filename_prompt(name), temperature=0.0)
        except GatewayError:
            logger.warning("Could not romanize name %r for export", name, exc_info=True)
            raw = ""
        slug = re.sub(r"[^a-z0-9_]", "", raw.lower())
        return slug or "persona"
