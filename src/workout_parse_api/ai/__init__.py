"""AI client management for the workout parse API."""
from .client_factory import AIClientFactory, AIClients, AIRequestContext, provider_for_model
from .retry import (
    create_async_retrying,
    is_retryable_error,
    retry_async_call,
)

__all__ = [
    "AIClientFactory",
    "AIClients",
    "AIRequestContext",
    "provider_for_model",
    "create_async_retrying",
    "is_retryable_error",
    "retry_async_call",
]
