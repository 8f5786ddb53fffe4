"""Model catalog and model resolution.

Provides:
- Provider: Enum of supported provider ids
- Model: Immutable catalog entry with per-million-token prices
- MODELS: The catalog, in preference order
- resolve_model: Map a user-supplied string to one catalog entry
- PriceTier / effective_model: Threshold-based price override seam
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict

from .errors import ModelNotFound


class Provider(str, Enum):
    """Provider ids. Each maps to exactly one adapter family."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    DEEPSEEK = "deepseek"
    GROQ = "groq"
    CEREBRAS = "cerebras"
    XAI = "xai"
    OPENROUTER = "openrouter"


class Model(BaseModel):
    """Catalog entry. Prices are USD per million tokens.

    Attributes:
        provider: Provider serving this model
        key: Model identifier sent to the provider API
        id: Short human-facing name, also usable for lookup
        is_default: True for exactly one entry in the catalog
        input_price: Price of uncached input tokens
        output_price: Price of output tokens (reasoning included)
        cached_input_price: Price of input tokens served from the prompt cache
        search_cost_per_call: Flat price per billable web search call
    """

    model_config = ConfigDict(frozen=True)

    provider: Provider
    key: str
    id: str
    is_default: bool = False
    input_price: float
    output_price: float
    cached_input_price: float | None = None
    search_cost_per_call: float | None = None


# The order matters: preferred models go first.
#
# A query resolves to the first model whose key or id contains it, so the same
# string can hit several entries. "mini" is inside gpt-5-mini and every gemini
# id, which is why gpt-5-mini sits above the Google block. gpt-5.1 sits above
# gpt-5 so "gpt" picks the newer one while "gpt-5" still reaches gpt-5 through
# the exact match rule.
MODELS: tuple[Model, ...] = (
    Model(
        provider=Provider.ANTHROPIC,
        key="claude-sonnet-4-5",
        id="sonnet-4.5",
        is_default=True,
        input_price=3.00,
        cached_input_price=0.30,
        output_price=15.00,
        search_cost_per_call=0.01,
    ),
    Model(
        provider=Provider.ANTHROPIC,
        key="claude-opus-4-5",
        id="opus-4.5",
        input_price=5.00,
        cached_input_price=0.50,
        output_price=25.00,
        search_cost_per_call=0.01,
    ),
    Model(
        provider=Provider.ANTHROPIC,
        key="claude-haiku-4-5",
        id="haiku-4.5",
        input_price=1.00,
        cached_input_price=0.10,
        output_price=5.00,
        search_cost_per_call=0.01,
    ),
    Model(
        provider=Provider.OPENAI,
        key="gpt-5.1",
        id="gpt-5.1",
        input_price=1.25,
        cached_input_price=0.125,
        output_price=10.00,
        search_cost_per_call=0.01,
    ),
    Model(
        provider=Provider.OPENAI,
        key="gpt-5",
        id="gpt-5",
        input_price=1.25,
        cached_input_price=0.125,
        output_price=10.00,
        search_cost_per_call=0.01,
    ),
    Model(
        provider=Provider.OPENAI,
        key="gpt-5-mini",
        id="gpt-5-mini",
        input_price=0.25,
        cached_input_price=0.025,
        output_price=2.00,
        search_cost_per_call=0.01,
    ),
    Model(
        provider=Provider.OPENAI,
        key="gpt-5-pro",
        id="gpt-5-pro",
        input_price=15.00,
        output_price=120.00,
        search_cost_per_call=0.01,
    ),
    Model(
        provider=Provider.GOOGLE,
        key="gemini-2.5-pro",
        id="gemini-2.5-pro",
        input_price=1.25,
        cached_input_price=0.125,
        output_price=10.00,
        search_cost_per_call=0.035,
    ),
    Model(
        provider=Provider.GOOGLE,
        key="gemini-2.5-flash",
        id="gemini-2.5-flash",
        input_price=0.30,
        cached_input_price=0.03,
        output_price=2.50,
        search_cost_per_call=0.035,
    ),
    Model(
        provider=Provider.DEEPSEEK,
        key="deepseek-chat",
        id="deepseek-v3",
        input_price=0.28,
        cached_input_price=0.028,
        output_price=0.42,
    ),
    Model(
        provider=Provider.DEEPSEEK,
        key="deepseek-reasoner",
        id="deepseek-r1",
        input_price=0.28,
        cached_input_price=0.028,
        output_price=0.42,
    ),
    Model(
        provider=Provider.GROQ,
        key="moonshotai/kimi-k2-instruct-0905",
        id="kimi-k2",
        input_price=1.00,
        cached_input_price=0.50,
        output_price=3.00,
    ),
    Model(
        provider=Provider.GROQ,
        key="meta-llama/llama-4-maverick-17b-128e-instruct",
        id="llama-4-maverick",
        input_price=0.20,
        output_price=0.60,
    ),
    Model(
        provider=Provider.GROQ,
        key="llama-3.3-70b-versatile",
        id="groq-llama",
        input_price=0.59,
        output_price=0.79,
    ),
    Model(
        provider=Provider.CEREBRAS,
        key="llama-3.3-70b",
        id="cerebras-llama",
        input_price=0.85,
        output_price=1.20,
    ),
    Model(
        provider=Provider.CEREBRAS,
        key="qwen-3-235b-a22b-thinking-2507",
        id="cerebras-qwen",
        input_price=0.60,
        output_price=1.20,
    ),
    Model(
        provider=Provider.XAI,
        key="grok-4",
        id="grok-4",
        input_price=3.00,
        cached_input_price=0.75,
        output_price=15.00,
    ),
    Model(
        provider=Provider.XAI,
        key="grok-4-fast-reasoning",
        id="grok-4-fast",
        input_price=0.20,
        cached_input_price=0.05,
        output_price=0.50,
    ),
    Model(
        provider=Provider.OPENROUTER,
        key="z-ai/glm-4.6",
        id="glm-4.6",
        input_price=0.60,
        output_price=2.20,
    ),
)


def check_catalog(models: tuple[Model, ...] = MODELS) -> None:
    """Validate catalog integrity.

    Raises:
        RuntimeError: If the catalog does not have exactly one default entry
            or two entries share an id
    """
    defaults = [m.id for m in models if m.is_default]
    if len(defaults) != 1:
        raise RuntimeError(f"Catalog must have exactly one default model, found {defaults}")

    ids = [m.id for m in models]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise RuntimeError(f"Duplicate model ids in catalog: {duplicates}")


check_catalog()


def default_model() -> Model:
    """Return the single default-flagged catalog entry."""
    return next(m for m in MODELS if m.is_default)


def resolve_model(query: str | None) -> Model:
    """Resolve a user-supplied model string to a catalog entry.

    Matching is case-insensitive. An exact match on key or id wins over any
    substring match; otherwise the first entry in catalog order whose key or
    id contains the query is returned. Without the exact pass, "gpt-5" could
    never select gpt-5 because gpt-5.1 comes first.

    Args:
        query: Model key, id, or fragment of one. None selects the default.

    Returns:
        Matching Model

    Raises:
        ModelNotFound: If nothing matches
    """
    if query is None:
        return default_model()

    lower = query.lower()
    match = next(
        (m for m in MODELS if lower in (m.key.lower(), m.id.lower())),
        None,
    ) or next(
        (m for m in MODELS if lower in m.key.lower() or lower in m.id.lower()),
        None,
    )

    if match is None:
        raise ModelNotFound(query)

    return match


@dataclass(frozen=True)
class PriceTier:
    """Replacement prices once a prompt exceeds a provider's documented threshold."""

    model_id: str
    above_input_tokens: int
    input_price: float
    output_price: float
    cached_input_price: float | None = None


def effective_model(model: Model, input_tokens: int, tiers: tuple[PriceTier, ...] = ()) -> Model:
    """Return the model with prices adjusted for the prompt size.

    The first tier matching the model id whose threshold is exceeded wins.
    The returned copy feeds straight into get_cost, which stays unaware of
    thresholds.

    Args:
        model: Catalog model used for the request
        input_tokens: Total input tokens reported for the request
        tiers: Tier rules declared by the adapter that knows the provider

    Returns:
        The original model, or a price-adjusted copy
    """
    for tier in tiers:
        if tier.model_id == model.id and input_tokens > tier.above_input_tokens:
            return model.model_copy(
                update={
                    "input_price": tier.input_price,
                    "output_price": tier.output_price,
                    "cached_input_price": tier.cached_input_price,
                }
            )
    return model
