"""Token-based cost calculation.

Prices live on the Model; thresholds that change prices are resolved
beforehand through models.effective_model.
"""

from .models import Model
from .types import TokenCounts

M = 1_000_000


def get_cost(model: Model, tokens: TokenCounts, extra_usage_count: int = 0) -> float:
    """Compute the USD cost of one request.

    When the model has a cache price and some input tokens were cache hits,
    those tokens are billed at the cache price and the rest at the input price.
    Otherwise every input token is billed at the input price.

    Args:
        model: Model (already price-adjusted when a tier applies)
        tokens: Token counts reported by the provider
        extra_usage_count: Billable per-call extras such as web searches

    Returns:
        Cost in USD, never negative
    """
    input_price = model.input_price
    output_price = model.output_price
    cached_price = model.cached_input_price

    if cached_price is not None and tokens.input_cache_hit > 0:
        cost = (
            (cached_price * tokens.input_cache_hit)
            + (input_price * (tokens.input - tokens.input_cache_hit))
            + (output_price * tokens.output)
        )
    else:
        cost = (input_price * tokens.input) + (output_price * tokens.output)

    cost = cost / M

    if model.search_cost_per_call is not None and extra_usage_count > 0:
        cost += model.search_cost_per_call * extra_usage_count

    return cost
