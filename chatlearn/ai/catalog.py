# chatlearn/ai/catalog.py
"""
Models a chat may be routed to. `tier` gates access: pro models need an
active subscription.
"""

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from .base import AIProvider


@dataclass(frozen=True)
class CatalogModel:
    id: str
    name: str
    description: str
    provider: AIProvider
    upstream_model: str
    tier: str  # 'free' | 'pro'
    is_new: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["provider"] = self.provider.value
        return data


MODEL_CATALOG: List[CatalogModel] = [
    CatalogModel(
        id="openai-gpt-4o-mini",
        name="OpenAI GPT-4o mini",
        description="Fast and efficient OpenAI model for everyday tasks",
        provider=AIProvider.OPENAI,
        upstream_model="gpt-4o-mini",
        tier="free",
    ),
    CatalogModel(
        id="openai-gpt-4o",
        name="OpenAI GPT-4o",
        description="Access to OpenAI's powerful GPT-4o model for complex tasks",
        provider=AIProvider.OPENAI,
        upstream_model="gpt-4o",
        tier="pro",
    ),
    CatalogModel(
        id="openai-gpt-4-1",
        name="OpenAI GPT-4.1",
        description="The flagship GPT-4 model for reliable and accurate responses",
        provider=AIProvider.OPENAI,
        upstream_model="gpt-4.1",
        tier="pro",
    ),
    CatalogModel(
        id="deepseek-v31-terminus",
        name="DeepSeek-V3.1 Terminus",
        description="Advanced AI model great for most questions and tasks",
        provider=AIProvider.DEEPSEEK,
        upstream_model="deepseek-chat",
        tier="pro",
        is_new=True,
    ),
    CatalogModel(
        id="deepseek-r1",
        name="DeepSeek R1",
        description="Latest DeepSeek model with enhanced reasoning capabilities",
        provider=AIProvider.DEEPSEEK,
        upstream_model="deepseek-reasoner",
        tier="pro",
        is_new=True,
    ),
    CatalogModel(
        id="gemini-2-5-flash",
        name="Gemini 2.5 Flash",
        description="Google's latest and most capable AI for a wide range of tasks",
        provider=AIProvider.GEMINI,
        upstream_model="gemini-2.5-flash",
        tier="pro",
        is_new=True,
    ),
]

# Short ids older clients still send
LEGACY_MODEL_IDS: Dict[str, str] = {
    "gpt-4o-mini": "openai-gpt-4o-mini",
    "gpt-4o": "openai-gpt-4o",
    "deepseek": "deepseek-v31-terminus",
    "gemini": "gemini-2-5-flash",
}

_BY_ID = {m.id: m for m in MODEL_CATALOG}


def get_model(model_id: str) -> Optional[CatalogModel]:
    return _BY_ID.get(LEGACY_MODEL_IDS.get(model_id, model_id))


def list_models() -> List[CatalogModel]:
    return list(MODEL_CATALOG)
