"""DJ broadcast relay and usage accounting."""

from .errors import (
    ConfigurationError,
    InvalidRequest,
    ServiceError,
    SinkWriteError,
    StoreError,
    TransportError,
    UpstreamError,
)
from .pricing import DEFAULT_PRICING, PricingConfig, calculate_cost_usd, resolve_pricing
from .usage_parser import UsageFrameParser, parse_data_payload

__all__ = [
    "ConfigurationError",
    "InvalidRequest",
    "ServiceError",
    "SinkWriteError",
    "StoreError",
    "TransportError",
    "UpstreamError",
    "DEFAULT_PRICING",
    "PricingConfig",
    "calculate_cost_usd",
    "resolve_pricing",
    "UsageFrameParser",
    "parse_data_payload",
]
