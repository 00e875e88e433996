from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from app.config.logger import get_logger

LOGGER = get_logger("pricing")


@dataclass(frozen=True)
class PricingConfig:
    """Pricing configuration for a single model in USD per 1M tokens."""

    model: str
    input_per_1m: float
    output_per_1m: float
    currency: str = "USD"


DEFAULT_PRICING_MODEL = "claude-opus-4-5"

DEFAULT_PRICING: Dict[str, PricingConfig] = {
    # Anthropic Claude, token pricing per 1M (USD)
    # Reference: https://docs.anthropic.com/en/docs/about-claude/pricing
    "claude-opus-4-5": PricingConfig(
        model="claude-opus-4-5",
        input_per_1m=5.00,
        output_per_1m=25.00,
    ),
    "claude-opus-4-1": PricingConfig(
        model="claude-opus-4-1",
        input_per_1m=15.00,
        output_per_1m=75.00,
    ),
    "claude-sonnet-4-5": PricingConfig(
        model="claude-sonnet-4-5",
        input_per_1m=3.00,
        output_per_1m=15.00,
    ),
    "claude-haiku-4-5": PricingConfig(
        model="claude-haiku-4-5",
        input_per_1m=1.00,
        output_per_1m=5.00,
    ),
}


def resolve_pricing(
    model: str,
    pricing: Optional[Dict[str, PricingConfig]] = None,
    default_model: str = DEFAULT_PRICING_MODEL,
) -> PricingConfig:
    """Return the price entry for ``model``, or the default entry if unknown."""

    pricing = pricing or DEFAULT_PRICING
    if default_model not in pricing:
        raise ValueError(f"default pricing model {default_model!r} is not in the pricing table")
    normalized = (model or "").replace("models/", "", 1)
    config = pricing.get(normalized)
    if config is not None:
        return config
    LOGGER.warning(
        "Pricing model missing; using default entry",
        extra={"model": model, "normalized": normalized, "default": default_model},
    )
    return pricing[default_model]


def calculate_cost_usd(
    model: str,
    input_tokens: int,
    output_tokens: int,
    pricing: Optional[Dict[str, PricingConfig]] = None,
    default_model: str = DEFAULT_PRICING_MODEL,
) -> Tuple[float, float, float]:
    """Return (input_cost_usd, output_cost_usd, total_cost_usd).

    Unknown models are priced with the ``default_model`` entry.
    """

    config = resolve_pricing(model, pricing, default_model)
    input_cost = (input_tokens / 1_000_000) * config.input_per_1m
    output_cost = (output_tokens / 1_000_000) * config.output_per_1m
    total_cost = input_cost + output_cost
    LOGGER.info(
        "Pricing calculated",
        extra={
            "model": model,
            "pricedAs": config.model,
            "inputTokens": input_tokens,
            "outputTokens": output_tokens,
            "inputCost": input_cost,
            "outputCost": output_cost,
            "totalCost": total_cost,
        },
    )
    return input_cost, output_cost, total_cost
