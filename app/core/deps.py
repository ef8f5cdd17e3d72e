"""FastAPI dependencies providing the voice pipeline collaborators."""

from functools import lru_cache

from app.services.knowledge_store import SqlKnowledgeStore
from app.services.voice.completion import CompletionService, get_completion_service
from app.services.voice.transcript_sink import TranscriptSink, get_transcript_sink


@lru_cache
def _knowledge_store() -> SqlKnowledgeStore:
    return SqlKnowledgeStore()


def get_knowledge_store() -> SqlKnowledgeStore:
    """Knowledge store shared by all connections (also used for caller lookup)."""
    return _knowledge_store()


def get_voice_completion_service() -> CompletionService:
    """Completion service used for every turn."""
    return get_completion_service()


def get_voice_transcript_sink() -> TranscriptSink:
    return get_transcript_sink()
