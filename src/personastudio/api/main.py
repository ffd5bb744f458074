"""FastAPI application for the Persona Studio local API."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from personastudio.config import get_config
from personastudio.errors import (
    EmptyInputError,
    GatewayError,
    PersonaStudioError,
    ValidationError,
)
from personastudio.log import setup_logging
from personastudio.schemas import (
    PARAMETER_FIELDS,
    ChatMessage,
    MbtiProfile,
    Persona,
    PersonaHistoryEntry,
    PersonaState,
    RefinementReply,
)
from personastudio.services import (
    AIGateway,
    EditorMode,
    RefinementChat,
    SyncEngine,
    SyncTrigger,
    TestChat,
)
from personastudio.storage import Database, PersonaStore, SQLiteKeyValueStore

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(PARAMETER_FIELDS) | {"summary"}


# Request/Response models
class OpenSessionRequest(BaseModel):
    persona_id: Optional[str] = None


class EditFieldsRequest(BaseModel):
    fields: Dict[str, str]


class ModeRequest(BaseModel):
    mode: EditorMode


class DocumentRequest(BaseModel):
    text: str


class ResearchRequest(BaseModel):
    topic: str


class RevertRequest(BaseModel):
    index: int


class MessageRequest(BaseModel):
    text: str


class SessionResponse(BaseModel):
    session_id: str
    persona_id: Optional[str]
    mode: EditorMode
    state: PersonaState
    history: List[PersonaHistoryEntry]
    can_undo: bool
    regeneration_pending: bool
    error: Optional[str]


class PersonaListItem(BaseModel):
    id: str
    name: str
    role: str
    versions: int


class UndoResponse(BaseModel):
    undone: bool
    session: SessionResponse


class EditorSession:
    """One open editor plus its chat transcripts."""

    def __init__(self, engine: SyncEngine, gateway: AIGateway):
        self.engine = engine
        self.test_chat = TestChat(gateway, engine)
        self.refine_chat = RefinementChat(gateway, engine)
        self.last_used = time.monotonic()


# Application state
class AppState:
    def __init__(self):
        self.config = get_config()
        setup_logging(self.config.log_level)
        self.db = Database(self.config.db_path)
        self.db.connect()
        self.db.initialize()
        self.gateway = AIGateway.from_config(self.config)
        self.store = PersonaStore(
            gateway=self.gateway,
            backend=SQLiteKeyValueStore(self.db),
            key=self.config.storage_key,
            history_limit=self.config.history_limit,
            seed=True,
        )
        self.store.load()
        self.sessions: Dict[str, EditorSession] = {}

    def open_session(self, persona: Optional[Persona]) -> str:
        engine = SyncEngine(
            gateway=self.gateway,
            debounce_seconds=self.config.debounce_seconds,
            history_limit=self.config.history_limit,
        )
        engine.open(persona)
        self.evict_sessions(reserve=1)
        session_id = uuid4().hex
        self.sessions[session_id] = EditorSession(engine, self.gateway)
        return session_id

    def evict_sessions(self, reserve: int = 0) -> None:
        """Close idle sessions, then the least recently used ones beyond the cap."""
        now = time.monotonic()
        idle = [
            sid for sid, session in self.sessions.items()
            if now - session.last_used > self.config.session_idle_seconds
        ]
        by_age = sorted(self.sessions, key=lambda sid: self.sessions[sid].last_used)
        overflow = len(self.sessions) - len(idle) + reserve - self.config.max_sessions
        if overflow > 0:
            idle += [sid for sid in by_age if sid not in idle][:overflow]
        for sid in idle:
            logger.info("Closing inactive editor session %s", sid)
            self.sessions.pop(sid).engine.close()

    def close(self):
        for session in self.sessions.values():
            session.engine.close()
        self.sessions.clear()
        self.db.close()


state: Optional[AppState] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    global state
    state = AppState()
    yield
    if state:
        state.close()
    state = None


app = FastAPI(
    title="Persona Studio API",
    description="Local API for AI-assisted character authoring with versioned persona edits.",
    version="0.1.0",
    lifespan=lifespan,
)


def get_state() -> AppState:
    """Get application state."""
    if state is None:
        raise HTTPException(status_code=500, detail="Application not initialized")
    return state


def get_persona(s: AppState, persona_id: str) -> Persona:
    persona = s.store.get(persona_id)
    if persona is None:
        raise HTTPException(status_code=404, detail=f"Persona not found: {persona_id}")
    return persona


def get_session(s: AppState, session_id: str) -> EditorSession:
    session = s.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    session.last_used = time.monotonic()
    return session


def http_error(e: PersonaStudioError) -> HTTPException:
    """Map a studio error onto an HTTP status."""
    if isinstance(e, (ValidationError, EmptyInputError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, GatewayError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def session_view(session_id: str, session: EditorSession) -> SessionResponse:
    engine = session.engine
    return SessionResponse(
        session_id=session_id,
        persona_id=engine.persona_id,
        mode=engine.mode,
        state=engine.state,
        history=engine.history.entries,
        can_undo=engine.undo.armed,
        regeneration_pending=engine.regeneration_pending,
        error=engine.error,
    )


# --- Personas ---


@app.get("/personas", response_model=List[PersonaListItem])
async def list_personas() -> List[PersonaListItem]:
    """List saved personas."""
    s = get_state()
    return [
        PersonaListItem(id=p.id, name=p.name, role=p.role, versions=len(p.history))
        for p in s.store.list()
    ]


@app.get("/personas/{persona_id}", response_model=Persona)
async def read_persona(persona_id: str) -> Persona:
    """Get one persona with its history."""
    return get_persona(get_state(), persona_id)


@app.delete("/personas/{persona_id}")
async def delete_persona(persona_id: str) -> Dict[str, str]:
    """Delete a persona."""
    s = get_state()
    get_persona(s, persona_id)
    s.store.delete(persona_id)
    return {"deleted": persona_id}


@app.get("/personas/{persona_id}/export")
async def export_persona(persona_id: str) -> Dict[str, Any]:
    """Export a self-contained persona record."""
    s = get_state()
    get_persona(s, persona_id)
    return s.store.export_record(persona_id)


@app.post("/personas/import", response_model=Persona)
async def import_persona(record: Dict[str, Any]) -> Persona:
    """Import a previously exported persona record."""
    s = get_state()
    try:
        return s.store.import_record(record)
    except ValidationError as e:
        raise http_error(e)


# --- Editor sessions ---


@app.post("/sessions", response_model=SessionResponse)
async def open_session(request: OpenSessionRequest) -> SessionResponse:
    """Open an editor on a saved persona, or on a blank draft."""
    s = get_state()
    persona = get_persona(s, request.persona_id) if request.persona_id else None
    session_id = s.open_session(persona)
    return session_view(session_id, s.sessions[session_id])


@app.get("/sessions/{session_id}", response_model=SessionResponse)
async def read_session(session_id: str) -> SessionResponse:
    s = get_state()
    return session_view(session_id, get_session(s, session_id))


@app.patch("/sessions/{session_id}/fields", response_model=SessionResponse)
async def edit_fields(session_id: str, request: EditFieldsRequest) -> SessionResponse:
    """Apply form edits. Parameter edits schedule a debounced summary refresh."""
    s = get_state()
    session = get_session(s, session_id)
    unknown = sorted(set(request.fields) - EDITABLE_FIELDS)
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown persona field: {', '.join(unknown)}")
    for name, value in request.fields.items():
        session.engine.edit_field(name, value)
    return session_view(session_id, session)


@app.put("/sessions/{session_id}/mode", response_model=SessionResponse)
async def set_mode(session_id: str, request: ModeRequest) -> SessionResponse:
    s = get_state()
    session = get_session(s, session_id)
    session.engine.set_mode(request.mode)
    return session_view(session_id, session)


@app.post("/sessions/{session_id}/summary/refresh", response_model=SessionResponse)
async def refresh_summary(session_id: str) -> SessionResponse:
    """Regenerate the summary from the structured fields now."""
    s = get_state()
    session = get_session(s, session_id)
    try:
        await session.engine.request_summary_regeneration(SyncTrigger.EXPLICIT)
    except PersonaStudioError as e:
        raise http_error(e)
    return session_view(session_id, session)


@app.post("/sessions/{session_id}/summary/sync", response_model=SessionResponse)
async def sync_from_summary(session_id: str) -> SessionResponse:
    """Update the structured fields from the summary text."""
    s = get_state()
    session = get_session(s, session_id)
    try:
        await session.engine.request_extraction_from_summary()
    except PersonaStudioError as e:
        raise http_error(e)
    return session_view(session_id, session)


@app.post("/sessions/{session_id}/extract", response_model=SessionResponse)
async def extract_document(session_id: str, request: DocumentRequest) -> SessionResponse:
    """Fill the structured fields from a reference document's text."""
    s = get_state()
    session = get_session(s, session_id)
    try:
        await session.engine.request_extraction_from_document(request.text)
    except PersonaStudioError as e:
        raise http_error(e)
    return session_view(session_id, session)


@app.post("/sessions/{session_id}/research", response_model=SessionResponse)
async def research(session_id: str, request: ResearchRequest) -> SessionResponse:
    """Research a topic on the web and fill the fields and sources."""
    s = get_state()
    session = get_session(s, session_id)
    try:
        await session.engine.request_web_generation(request.topic)
    except PersonaStudioError as e:
        raise http_error(e)
    return session_view(session_id, session)


@app.post("/sessions/{session_id}/personality", response_model=MbtiProfile)
async def analyze_personality(session_id: str) -> MbtiProfile:
    s = get_state()
    session = get_session(s, session_id)
    try:
        return await session.engine.request_personality_analysis()
    except PersonaStudioError as e:
        raise http_error(e)


@app.post("/sessions/{session_id}/undo", response_model=UndoResponse)
async def undo(session_id: str) -> UndoResponse:
    """Undo the last AI bulk edit."""
    s = get_state()
    session = get_session(s, session_id)
    undone = session.engine.undo_last()
    return UndoResponse(undone=undone, session=session_view(session_id, session))


@app.post("/sessions/{session_id}/revert", response_model=SessionResponse)
async def revert(session_id: str, request: RevertRequest) -> SessionResponse:
    """Load a saved version into the editor. Takes effect on the next save."""
    s = get_state()
    session = get_session(s, session_id)
    entries = session.engine.history.entries
    if not 0 <= request.index < len(entries):
        raise HTTPException(status_code=404, detail=f"No history entry {request.index}")
    session.engine.revert(entries[request.index])
    return session_view(session_id, session)


@app.post("/sessions/{session_id}/save", response_model=SessionResponse)
async def save(session_id: str) -> SessionResponse:
    """Save the draft; the session continues on the saved persona."""
    s = get_state()
    session = get_session(s, session_id)
    try:
        await session.engine.save(s.store)
    except PersonaStudioError as e:
        raise http_error(e)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Persona not found: {e.args[0]}")
    return session_view(session_id, session)


@app.post("/sessions/{session_id}/error/dismiss", response_model=SessionResponse)
async def dismiss_error(session_id: str) -> SessionResponse:
    s = get_state()
    session = get_session(s, session_id)
    session.engine.dismiss_error()
    return session_view(session_id, session)


@app.delete("/sessions/{session_id}")
async def close_session(session_id: str) -> Dict[str, str]:
    """Close the editor, discarding unsaved changes."""
    s = get_state()
    session = get_session(s, session_id)
    session.engine.close()
    del s.sessions[session_id]
    return {"closed": session_id}


# --- Chat ---


@app.post("/sessions/{session_id}/chat", response_model=ChatMessage)
async def test_chat(session_id: str, request: MessageRequest) -> ChatMessage:
    """Talk to the persona as currently edited."""
    s = get_state()
    session = get_session(s, session_id)
    try:
        return await session.test_chat.send(request.text)
    except PersonaStudioError as e:
        raise http_error(e)


@app.get("/sessions/{session_id}/chat", response_model=List[ChatMessage])
async def read_test_chat(session_id: str) -> List[ChatMessage]:
    s = get_state()
    return get_session(s, session_id).test_chat.messages


@app.delete("/sessions/{session_id}/chat")
async def reset_test_chat(session_id: str) -> Dict[str, str]:
    s = get_state()
    get_session(s, session_id).test_chat.reset()
    return {"reset": session_id}


@app.post("/sessions/{session_id}/refine/start", response_model=ChatMessage)
async def start_refinement(session_id: str) -> ChatMessage:
    """Start a refinement conversation with the persona's greeting."""
    s = get_state()
    session = get_session(s, session_id)
    try:
        return await session.refine_chat.start()
    except PersonaStudioError as e:
        raise http_error(e)


@app.post("/sessions/{session_id}/refine", response_model=RefinementReply)
async def refine(session_id: str, request: MessageRequest) -> RefinementReply:
    """Send a refinement message; returned updates are already applied to the session."""
    s = get_state()
    session = get_session(s, session_id)
    try:
        return await session.refine_chat.send(request.text)
    except PersonaStudioError as e:
        raise http_error(e)


@app.get("/health")
async def health_check() -> Dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
