from dataclasses import dataclass
from typing import Dict

from ..config import settings


@dataclass(frozen=True)
class PipelineProfile:
    """Knobs that distinguish the chat endpoints; the pipeline itself is shared"""
    name: str
    model: str
    max_tokens: int
    history_limit: int
    uses_file_analysis: bool
    background_jobs: bool


BASELINE = PipelineProfile(
    name="baseline",
    model=settings.BASELINE_CHAT_MODEL,
    max_tokens=2000,
    history_limit=settings.CHAT_HISTORY_LIMIT,
    uses_file_analysis=False,
    background_jobs=False,
)

FAST = PipelineProfile(
    name="fast",
    model=settings.FAST_CHAT_MODEL,
    max_tokens=1000,
    history_limit=settings.CHAT_HISTORY_LIMIT,
    uses_file_analysis=False,
    background_jobs=True,
)

OPTIMIZED = PipelineProfile(
    name="optimized",
    model=settings.OPTIMIZED_CHAT_MODEL,
    max_tokens=1500,
    history_limit=settings.CHAT_HISTORY_LIMIT,
    uses_file_analysis=True,
    background_jobs=True,
)

PROFILES: Dict[str, PipelineProfile] = {p.name: p for p in (BASELINE, FAST, OPTIMIZED)}
