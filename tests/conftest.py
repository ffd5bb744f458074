"""Shared fakes for Persona Studio tests.

FakeGateway stands in for AIGateway wherever the SyncEngine, VersionHistory
or PersonaStore are under test; it records calls and can be told to fail or
to hold a summary request until released. ScriptedProvider stands in for a
real LLM provider underneath a real AIGateway.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from personastudio.errors import GatewayError
from personastudio.providers.base import LLMProvider
from personastudio.schemas import ExtractedParameters, MbtiProfile, PersonaState, WebSource
from personastudio.services import AIGateway, SyncEngine
from personastudio.storage import MemoryKeyValueStore, PersonaStore


class FakeGateway:
    """Async in-memory gateway with the same surface as AIGateway."""

    def __init__(self):
        self.summary_calls: List[PersonaState] = []
        self.summary_error: Optional[Exception] = None
        self.summary_gate: Optional[asyncio.Event] = None

        self.extract_calls: List[Tuple[str, str]] = []
        self.extract_error: Optional[Exception] = None
        self.extracted = ExtractedParameters(
            name="Ada",
            role="Detective",
            tone="Dry",
            personality="Observant",
            worldview="Foggy London",
            experience="Solved the Thames case",
            other="",
        )

        self.research_error: Optional[Exception] = None
        self.research_sources = [
            WebSource(title="Archive", uri="https://example.com/ada"),
        ]

        self.profile = MbtiProfile.model_validate({
            "type": "intj",
            "typeName": "Architect",
            "description": "Plans three moves ahead.",
            "scores": {"mind": 20, "energy": 80, "nature": 15, "tactics": 30},
        })
        self.profile_error: Optional[Exception] = None

        self.change_summary = "Changed the role."
        self.change_error: Optional[Exception] = None
        self.change_calls = 0

        self.condense_calls: List[Tuple[str, str]] = []
        self.condense_error: Optional[Exception] = None

    async def generate_summary(self, state: PersonaState) -> str:
        self.summary_calls.append(state)
        if self.summary_gate is not None:
            await self.summary_gate.wait()
        if self.summary_error is not None:
            raise self.summary_error
        return f"Summary of {state.name} the {state.role}".strip()

    async def extract_parameters(self, text: str, source: str = "document") -> ExtractedParameters:
        self.extract_calls.append((text, source))
        if self.extract_error is not None:
            raise self.extract_error
        return self.extracted

    async def research_topic(self, topic: str):
        if self.research_error is not None:
            raise self.research_error
        return self.extracted, list(self.research_sources)

    async def analyze_personality(self, state: PersonaState) -> MbtiProfile:
        if self.profile_error is not None:
            raise self.profile_error
        return self.profile

    async def describe_change(self, old: PersonaState, new: PersonaState) -> str:
        self.change_calls += 1
        if self.change_error is not None:
            raise self.change_error
        return self.change_summary

    async def condense(self, text: str, kind: str = "summary") -> str:
        self.condense_calls.append((text, kind))
        if self.condense_error is not None:
            raise self.condense_error
        if not text.strip():
            return ""
        return f"short {kind}"


Response = Any  # str, dict, Exception, or callable returning one of those


class ScriptedProvider(LLMProvider):
    """
    LLM provider returning canned responses keyed by the kind of prompt.

    Kinds: summary, condense, change, filename, welcome, text (other text
    prompts), extract, personality, chat, refine, search.
    """

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        self.responses: Dict[str, Response] = dict(responses or {})
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    @property
    def name(self) -> str:
        return "scripted"

    def _answer(self, kind: str, **details: Any) -> Any:
        self.calls.append((kind, details))
        if kind not in self.responses:
            raise RuntimeError(f"no scripted response for {kind}")
        value = self.responses[kind]
        if callable(value):
            value = value(**details)
        if isinstance(value, Exception):
            raise value
        return value

    def generate_text(self, prompt, model=None, temperature=0.7, max_tokens=1024):
        if prompt.startswith("Write an engaging"):
            kind = "summary"
        elif prompt.startswith("Condense"):
            kind = "condense"
        elif prompt.startswith("Compare the two"):
            kind = "change"
        elif prompt.startswith("Transliterate"):
            kind = "filename"
        elif prompt.startswith("You are the character below"):
            kind = "welcome"
        else:
            kind = "text"
        return self._answer(kind, prompt=prompt)

    def generate_json(self, prompt, schema, model=None, temperature=0.2, max_tokens=4096):
        kind = "personality" if "scores" in schema.get("properties", {}) else "extract"
        return self._answer(kind, prompt=prompt)

    def generate_chat(self, messages, system=None, json_mode=False, model=None,
                      temperature=0.8, max_tokens=1024):
        kind = "refine" if json_mode else "chat"
        return self._answer(kind, messages=messages, system=system)

    def search_text(self, prompt, model=None):
        if "search" not in self.responses:
            return super().search_text(prompt, model)
        return self._answer("search", prompt=prompt)


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def wait_until(predicate: Callable[[], bool], timeout: float = 1.0):
    """Coroutine polling `predicate` until it holds or `timeout` passes."""

    async def _wait():
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(0.005)

    return _wait()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def engine(fake_gateway):
    return SyncEngine(fake_gateway, debounce_seconds=0.05)


@pytest.fixture
def backend():
    return MemoryKeyValueStore()


@pytest.fixture
def store(fake_gateway, backend):
    return PersonaStore(fake_gateway, backend)


@pytest.fixture
def gateway_error():
    return GatewayError("model unavailable")


def scripted_gateway(responses: Dict[str, Response]) -> Tuple[AIGateway, ScriptedProvider]:
    provider = ScriptedProvider(responses)
    return AIGateway(provider, language="English"), provider
