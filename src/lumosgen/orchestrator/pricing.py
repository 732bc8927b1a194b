"""Token cost estimation helpers for generation calls."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(slots=True, frozen=True)
class ModelPricing:
    """Per-model input/output pricing in USD per 1M tokens."""

    input_per_1m: float
    output_per_1m: float


# DeepSeek bills a discounted rate between 16:30 and 00:30 UTC.
_OFF_PEAK_PRICING: dict[tuple[str, str], ModelPricing] = {
    ("deepseek", "deepseek-chat"): ModelPricing(input_per_1m=0.135, output_per_1m=0.55),
    ("deepseek", "deepseek-reasoner"): ModelPricing(input_per_1m=0.135, output_per_1m=0.55),
}

_BUILTIN_PRICING: dict[tuple[str, str], ModelPricing] = {
    ("deepseek", "deepseek-chat"): ModelPricing(input_per_1m=0.27, output_per_1m=1.10),
    ("deepseek", "deepseek-reasoner"): ModelPricing(input_per_1m=0.55, output_per_1m=2.19),
    ("openai", "gpt-4o-mini"): ModelPricing(input_per_1m=0.15, output_per_1m=0.60),
    ("openai", "gpt-3.5-turbo"): ModelPricing(input_per_1m=0.50, output_per_1m=1.50),
    ("openai", "gpt-4"): ModelPricing(input_per_1m=30.0, output_per_1m=60.0),
    ("mock", "*"): ModelPricing(input_per_1m=0.0, output_per_1m=0.0),
}


def estimate_cost_usd(
    *,
    provider: str,
    model: str,
    prompt_tokens: int | None,
    completion_tokens: int | None,
    total_tokens: int | None = None,
    at: datetime | None = None,
) -> float | None:
    """Estimate call cost in USD from token usage and configured pricing."""

    pricing = lookup_pricing(provider=provider, model=model, at=at)
    if pricing is None:
        return None

    if prompt_tokens is not None and completion_tokens is not None:
        return (
            (prompt_tokens / 1_000_000) * pricing.input_per_1m
            + (completion_tokens / 1_000_000) * pricing.output_per_1m
        )

    if total_tokens is not None:
        average = (pricing.input_per_1m + pricing.output_per_1m) / 2
        return (total_tokens / 1_000_000) * average
    return None


def lookup_pricing(
    *,
    provider: str,
    model: str,
    at: datetime | None = None,
) -> ModelPricing | None:
    """Resolve pricing: env overrides first, then the built-in table."""

    key = (provider.strip().lower(), model.strip())
    mapping = _parse_pricing_mapping(os.getenv("LUMOSGEN_LLM_PRICING", ""))
    for candidate in (key, (key[0], "*"), ("*", "*")):
        override = mapping.get(candidate)
        if override is not None:
            return override

    if is_off_peak(at or datetime.now(tz=UTC)):
        off_peak = _OFF_PEAK_PRICING.get(key)
        if off_peak is not None:
            return off_peak
    return _BUILTIN_PRICING.get(key) or _BUILTIN_PRICING.get((key[0], "*"))


def is_off_peak(moment: datetime) -> bool:
    """Return True inside the 16:30-00:30 UTC discount window."""

    utc = moment.astimezone(UTC)
    minutes = utc.hour * 60 + utc.minute
    return minutes >= 16 * 60 + 30 or minutes < 30


def _parse_pricing_mapping(raw: str) -> dict[tuple[str, str], ModelPricing]:
    """Parse `LUMOSGEN_LLM_PRICING` mapping.

    Format:
    - `provider:model:input_per_1m:output_per_1m`
    - multiple entries separated by `,`
    - supports wildcards in provider/model (`*`)
    """

    parsed: dict[tuple[str, str], ModelPricing] = {}
    if not raw.strip():
        return parsed

    for entry in raw.split(","):
        value = entry.strip()
        if not value:
            continue
        parts = [part.strip() for part in value.split(":")]
        if len(parts) != 4:
            continue
        provider, model, input_price, output_price = parts
        try:
            input_per_1m = float(input_price)
            output_per_1m = float(output_price)
        except ValueError:
            continue
        if input_per_1m < 0 or output_per_1m < 0:
            continue
        parsed[(provider.lower(), model)] = ModelPricing(
            input_per_1m=input_per_1m,
            output_per_1m=output_per_1m,
        )
    return parsed
