from decimal import Decimal
from typing import Dict, Tuple

# USD per 1M tokens: (prompt, completion)
MODEL_PRICING: Dict[str, Tuple[Decimal, Decimal]] = {
    "gpt-4o": (Decimal("2.50"), Decimal("10.00")),
    "gpt-4o-mini": (Decimal("0.15"), Decimal("0.60")),
    "gpt-4.1": (Decimal("2.00"), Decimal("8.00")),
    "deepseek-chat": (Decimal("0.27"), Decimal("1.10")),
    "deepseek-reasoner": (Decimal("0.55"), Decimal("2.19")),
    "gemini-2.5-flash": (Decimal("0.30"), Decimal("2.50")),
    "text-embedding-3-small": (Decimal("0.02"), Decimal("0")),
}

ONE_MILLION = Decimal(1_000_000)


def _lookup(model: str):
    if model in MODEL_PRICING:
        return MODEL_PRICING[model]
    # Dated snapshots, e.g. gpt-4o-mini-2024-07-18; longest prefix wins
    for name in sorted(MODEL_PRICING, key=len, reverse=True):
        if model.startswith(name):
            return MODEL_PRICING[name]
    return None


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int, total_tokens: int) -> Decimal:
    """
    Cost in USD. When the split is unknown the whole total is billed at the
    prompt rate. Unknown models cost 0.
    """
    prices = _lookup(model)
    if not prices:
        return Decimal("0")

    prompt_price, completion_price = prices
    if not prompt_tokens and not completion_tokens:
        prompt_tokens = total_tokens

    cost = (Decimal(prompt_tokens) * prompt_price + Decimal(completion_tokens) * completion_price) / ONE_MILLION
    return cost.quantize(Decimal("0.000001"))
