"""
Rate table: cost of model usage per provider and model.

Rates are quoted in cents per 1,000,000 units and may carry fractional cents
(``7.5`` cents per million). They are scaled once to integer millicents so
cost calculation is integer arithmetic rounded up to whole cents.

Lookup is an exact match on ``(provider, model)`` or one of the model's
registered aliases. There is no provider-level or default fallback: an
unlisted pair raises ``UnknownRate``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Iterator, Mapping, Tuple, Union

from mentor_ledger.core.logging_config import get_logger

from .errors import InvalidAmount, UnknownRate

logger = get_logger(__name__)

UNITS_PER_QUOTE = 1_000_000
MILLICENTS_PER_CENT = 1000

RateValue = Union[int, str, Decimal]


def _to_millicents(cents_per_million: RateValue) -> int:
    scaled = Decimal(str(cents_per_million)) * MILLICENTS_PER_CENT
    if scaled < 0 or scaled != scaled.to_integral_value():
        raise ValueError(f"Rate {cents_per_million!r} must be non-negative with at most 3 decimal places")
    return int(scaled)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


@dataclass(frozen=True)
class ModelRate:
    """Input and output price of one model, in millicents per million units."""

    provider: str
    model: str
    input_millicents: int
    output_millicents: int
    aliases: Tuple[str, ...] = ()

    @classmethod
    def quote(
        cls,
        provider: str,
        model: str,
        input_cents_per_million: RateValue,
        output_cents_per_million: RateValue,
        aliases: Iterable[str] = (),
    ) -> "ModelRate":
        return cls(
            provider=provider,
            model=model,
            input_millicents=_to_millicents(input_cents_per_million),
            output_millicents=_to_millicents(output_cents_per_million),
            aliases=tuple(aliases),
        )

    @property
    def is_free(self) -> bool:
        return self.input_millicents == 0 and self.output_millicents == 0

    def cost_cents(self, input_units: int, output_units: int) -> int:
        total = input_units * self.input_millicents + output_units * self.output_millicents
        return _ceil_div(total, UNITS_PER_QUOTE * MILLICENTS_PER_CENT)


@dataclass(frozen=True)
class RateTable:
    """Immutable lookup from ``(provider, model)`` to a :class:`ModelRate`."""

    _rates: Mapping[Tuple[str, str], ModelRate] = field(default_factory=dict)

    @classmethod
    def of(cls, rates: Iterable[ModelRate]) -> "RateTable":
        index: Dict[Tuple[str, str], ModelRate] = {}
        for rate in rates:
            for name in (rate.model, *rate.aliases):
                key = (rate.provider, name)
                if key in index:
                    raise ValueError(f"Duplicate rate for provider={rate.provider!r} model={name!r}")
                index[key] = rate
        return cls(index)

    def lookup(self, provider: str, model: str) -> ModelRate:
        try:
            return self._rates[(provider, model)]
        except KeyError:
            logger.error(f"Unknown rate requested: provider={provider} model={model}")
            raise UnknownRate(provider, model) from None

    def cost(self, provider: str, model: str, input_units: int, output_units: int) -> int:
        """Cost in cents of one call, rounded up to the next whole cent.

        Raises:
            InvalidAmount: a unit count is negative
            UnknownRate: the pair is not listed
        """
        if input_units < 0:
            raise InvalidAmount("input_units", input_units, ">= 0")
        if output_units < 0:
            raise InvalidAmount("output_units", output_units, ">= 0")
        return self.lookup(provider, model).cost_cents(input_units, output_units)

    def __contains__(self, key: object) -> bool:
        return key in self._rates

    def __iter__(self) -> Iterator[ModelRate]:
        seen = set()
        for rate in self._rates.values():
            if id(rate) not in seen:
                seen.add(id(rate))
                yield rate

    def __len__(self) -> int:
        return len(self._rates)


# Cents per 1M units (USD list price x 100).
DEFAULT_RATES: Tuple[ModelRate, ...] = (
    ModelRate.quote("groq", "llama-3.3-70b-versatile", 0, 0, aliases=("llama-3.3-70b",)),
    ModelRate.quote("groq", "llama-3.1-8b-instant", 0, 0, aliases=("llama-3.1-8b",)),
    ModelRate.quote("deepseek", "deepseek-chat", 14, 28),
    ModelRate.quote("google", "gemini-2.0-flash-exp", "7.5", 30, aliases=("gemini-2.0-flash",)),
    ModelRate.quote("google", "gemini-1.5-flash", "7.5", 30),
    ModelRate.quote("openrouter", "moonshotai/kimi-k2.5", 50, 50, aliases=("kimi-k2.5",)),
    ModelRate.quote("anthropic", "claude-3-5-sonnet-20241022", 300, 1500, aliases=("claude-3.5-sonnet",)),
    ModelRate.quote("anthropic", "claude-3-haiku-20240307", 25, 125, aliases=("claude-3-haiku",)),
    ModelRate.quote("openai", "gpt-4o-mini", 15, 60),
    ModelRate.quote("openai", "gpt-4o", 250, 1000),
)


def default_rate_table() -> RateTable:
    """Rate table with the list prices of every supported provider."""
    return RateTable.of(DEFAULT_RATES)
