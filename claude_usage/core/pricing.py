"""
Pricing calculations and rate management.

Fetches per-token model prices from LiteLLM, falls back to a built-in table
when the network is unavailable, and computes message costs.
"""

import logging
import math
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from .token_counter import TokenUsage

logger = logging.getLogger(__name__)

LITELLM_PRICING_URL = (
    "https://raw.githubusercontent.com/BerriAI/litellm/main/"
    "model_prices_and_context_window.json"
)
CACHE_DURATION_SECONDS = 60 * 60
DEFAULT_TIMEOUT_SECONDS = 10.0

ZERO = Decimal("0")


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model (currency units per token)."""
    input_cost_per_token: Decimal = ZERO
    output_cost_per_token: Decimal = ZERO
    cache_creation_cost_per_token: Decimal = ZERO
    cache_read_cost_per_token: Decimal = ZERO

    @classmethod
    def from_litellm(cls, data: Mapping[str, Any]) -> "ModelPricing":
        """Build pricing from a LiteLLM model entry; missing fields count as 0."""
        return cls(
            input_cost_per_token=_to_rate(data.get("input_cost_per_token")),
            output_cost_per_token=_to_rate(data.get("output_cost_per_token")),
            cache_creation_cost_per_token=_to_rate(
                data.get("cache_creation_input_token_cost")
            ),
            cache_read_cost_per_token=_to_rate(data.get("cache_read_input_token_cost")),
        )


@dataclass(frozen=True)
class PricingTable:
    """Model name to pricing mapping, in source order."""
    prices: Dict[str, ModelPricing]
    source: str = "litellm"

    def __len__(self) -> int:
        return len(self.prices)

    def get_pricing(self, model: str) -> Optional[ModelPricing]:
        """Exact lookup, no fuzzy matching."""
        return self.prices.get(model)

    def resolve(self, model: Optional[str]) -> Optional[ModelPricing]:
        """Get pricing for a model, tolerating naming differences.

        Lookup order, first hit wins:
        1. Exact key
        2. Prefixed variants (``anthropic/``, ``claude-3-5-``, ``claude-3-``, ``claude-``)
        3. Case-insensitive substring match in either direction, in table order

        Args:
            model: Model identifier as written in the usage log

        Returns:
            ModelPricing for the model, or None if nothing matches
        """
        if not model:
            return None

        exact = self.prices.get(model)
        if exact is not None:
            return exact

        for variant in model_name_variants(model):
            match = self.prices.get(variant)
            if match is not None:
                return match

        lowered = model.lower()
        for key, pricing in self.prices.items():
            lowered_key = key.lower()
            if lowered in lowered_key or lowered_key in lowered:
                return pricing

        return None

    def models(self) -> List[str]:
        """All model names in the table, sorted."""
        return sorted(self.prices)


def model_name_variants(model: str) -> List[str]:
    """Name rewrites tried after the exact lookup fails, in priority order."""
    return [
        model,
        f"anthropic/{model}",
        f"claude-3-5-{model}",
        f"claude-3-{model}",
        f"claude-{model}",
    ]


def _to_rate(value: Any) -> Decimal:
    """Convert a JSON number to a Decimal rate; anything unusable becomes 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return ZERO
    if isinstance(value, float) and not math.isfinite(value):
        return ZERO
    if value < 0:
        return ZERO
    return Decimal(str(value))


def _fixed(input_cost: str, output_cost: str, cache_write: str, cache_read: str) -> ModelPricing:
    return ModelPricing(
        input_cost_per_token=Decimal(input_cost),
        output_cost_per_token=Decimal(output_cost),
        cache_creation_cost_per_token=Decimal(cache_write),
        cache_read_cost_per_token=Decimal(cache_read),
    )


_HAIKU_3 = _fixed("0.00000025", "0.00000125", "0.0000003", "0.00000003")
_HAIKU_3_5 = _fixed("0.0000008", "0.000004", "0.000001", "0.00000008")
_HAIKU_3_5_LATEST = _fixed("0.000001", "0.000005", "0.00000125", "0.0000001")
_SONNET = _fixed("0.000003", "0.000015", "0.00000375", "0.0000003")
_OPUS = _fixed("0.000015", "0.000075", "0.00001875", "0.0000015")

# Hand-maintained rates used when LiteLLM cannot be reached
FALLBACK_PRICING = PricingTable(
    prices={
        "claude-3-haiku-20240307": _HAIKU_3,
        "claude-3-5-haiku-20241022": _HAIKU_3_5,
        "claude-3-5-haiku-latest": _HAIKU_3_5_LATEST,
        "claude-3-opus-20240229": _OPUS,
        "claude-3-opus-latest": _OPUS,
        "claude-3-5-sonnet-20240620": _SONNET,
        "claude-3-5-sonnet-20241022": _SONNET,
        "claude-3-5-sonnet-latest": _SONNET,
        "claude-sonnet-4-20250514": _SONNET,
        "claude-opus-4-20250514": _OPUS,
        "claude-4-sonnet-20250514": _SONNET,
        "claude-4-opus-20250514": _OPUS,
    },
    source="fallback",
)


def parse_pricing_document(data: Any) -> PricingTable:
    """Convert the LiteLLM price document into a PricingTable.

    Entries that are not objects, or that carry neither an input nor an
    output cost, are skipped.

    Raises:
        ValueError: If the document is not an object or prices no model at all
    """
    if not isinstance(data, dict):
        raise ValueError("pricing document must be a JSON object")

    prices: Dict[str, ModelPricing] = {}
    for model_name, model_data in data.items():
        if not isinstance(model_data, dict):
            continue
        if "input_cost_per_token" not in model_data and "output_cost_per_token" not in model_data:
            continue
        prices[model_name] = ModelPricing.from_litellm(model_data)

    if not prices:
        raise ValueError("pricing document contains no priced models")

    return PricingTable(prices=prices, source="litellm")


class PricingResolver:
    """Owns the pricing table and its one-hour cache.

    Construct one per process and pass it to whatever needs prices. Both a
    fetched table and the fallback table are cached, so a failing network is
    not retried until the cache expires.
    """

    def __init__(
        self,
        url: str = LITELLM_PRICING_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        ttl: float = CACHE_DURATION_SECONDS,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.timeout = timeout
        self.ttl = ttl
        self._client = client
        self._clock = clock
        self._cached: Optional[PricingTable] = None
        self._cached_at: Optional[float] = None

    def is_cache_valid(self) -> bool:
        """True while a cached table exists and is younger than the TTL."""
        if self._cached is None or self._cached_at is None:
            return False
        return self._clock() - self._cached_at < self.ttl

    def clear_cache(self) -> None:
        self._cached = None
        self._cached_at = None

    def fetch(self, use_cache: bool = True) -> PricingTable:
        """Return the pricing table, downloading it when the cache is stale.

        Args:
            use_cache: Return the cached table when it is still valid

        Returns:
            The LiteLLM table, or FALLBACK_PRICING if the download failed
        """
        if use_cache and self.is_cache_valid():
            return self._cached

        try:
            logger.info("Fetching latest model pricing from %s", self.url)
            table = parse_pricing_document(self._download())
            logger.info("Loaded pricing for %d models", len(table))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to fetch pricing from LiteLLM: %s", e)
            logger.warning("Falling back to built-in pricing for %d models", len(FALLBACK_PRICING))
            table = FALLBACK_PRICING

        self._cached = table
        self._cached_at = self._clock()
        return table

    def _download(self) -> Any:
        if self._client is not None:
            response = self._client.get(self.url, timeout=self.timeout)
        else:
            response = httpx.get(self.url, timeout=self.timeout, follow_redirects=True)
        response.raise_for_status()
        return response.json()


def calculate_cost(usage: TokenUsage, pricing: Optional[ModelPricing]) -> Decimal:
    """Calculate the cost of one message.

    cost = input * input_rate + output * output_rate
           + cache_write * cache_creation_rate + cache_read * cache_read_rate

    Args:
        usage: Token counts for the message
        pricing: Resolved pricing, or None when the model is unknown

    Returns:
        Exact Decimal cost; 0 when pricing is None
    """
    if pricing is None:
        return ZERO

    cost = ZERO
    if usage.input_tokens and pricing.input_cost_per_token:
        cost += usage.input_tokens * pricing.input_cost_per_token
    if usage.output_tokens and pricing.output_cost_per_token:
        cost += usage.output_tokens * pricing.output_cost_per_token
    if usage.cache_write_tokens and pricing.cache_creation_cost_per_token:
        cost += usage.cache_write_tokens * pricing.cache_creation_cost_per_token
    if usage.cache_read_tokens and pricing.cache_read_cost_per_token:
        cost += usage.cache_read_tokens * pricing.cache_read_cost_per_token
    return cost


def get_available_models(table: Optional[PricingTable]) -> List[str]:
    """Sorted model names for the models report."""
    if table is None:
        return []
    return table.models()
