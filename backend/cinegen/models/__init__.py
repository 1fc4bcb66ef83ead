"""ORM model package — registers all models with Base.metadata."""

from cinegen.models.provider_config import ProviderConfigRow

__all__ = [
    "ProviderConfigRow",
]
