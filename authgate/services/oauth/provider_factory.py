"""OAuth Provider Factory - registry of social login providers"""

from typing import Dict, Type
from authgate.config import settings
from .provider_interface import OAuthProviderInterface


class OAuthProviderFactory:
    """
    Registry of social login provider classes.

    Usage:
        OAuthProviderFactory.register("google", GoogleOAuthProvider)
        provider = OAuthProviderFactory.create("google", client_id="...", ...)
    """

    _providers: Dict[str, Type[OAuthProviderInterface]] = {}

    @classmethod
    def register(cls, provider_name: str, provider_class: Type[OAuthProviderInterface]):
        """
        Register a provider class.

        Raises:
            ValueError: If the name is taken or the class is not a provider
        """
        if not issubclass(provider_class, OAuthProviderInterface):
            raise ValueError(
                f"Provider class {provider_class.__name__} must implement OAuthProviderInterface"
            )
        if provider_name in cls._providers:
            raise ValueError(f"Provider '{provider_name}' is already registered")
        cls._providers[provider_name] = provider_class

    @classmethod
    def unregister(cls, provider_name: str):
        cls._providers.pop(provider_name, None)

    @classmethod
    def create(cls, provider_name: str, **kwargs) -> OAuthProviderInterface:
        """
        Instantiate a registered provider.

        Raises:
            ValueError: If the provider is not registered
        """
        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Provider '{provider_name}' not found. "
                f"Available providers: {available or 'none'}"
            )
        return cls._providers[provider_name](**kwargs)

    @classmethod
    def create_from_settings(cls, provider_name: str) -> OAuthProviderInterface:
        """Instantiate a provider with its credentials and callback from settings"""
        prefix = provider_name.upper()
        return cls.create(
            provider_name,
            client_id=getattr(settings, f"{prefix}_CLIENT_ID", ""),
            client_secret=getattr(settings, f"{prefix}_CLIENT_SECRET", ""),
            redirect_uri=f"{settings.OAUTH_REDIRECT_BASE_URL}/{provider_name}/callback",
        )

    @classmethod
    def is_registered(cls, provider_name: str) -> bool:
        return provider_name in cls._providers

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers.keys())


def register_default_providers():
    """Register the built-in social providers; called at startup"""
    from .apple_provider import AppleOAuthProvider
    from .facebook_provider import FacebookOAuthProvider
    from .google_provider import GoogleOAuthProvider
    from .twitter_provider import TwitterOAuthProvider

    for name, provider_class in (
        ("google", GoogleOAuthProvider),
        ("facebook", FacebookOAuthProvider),
        ("apple", AppleOAuthProvider),
        ("twitter", TwitterOAuthProvider),
    ):
        if not OAuthProviderFactory.is_registered(name):
            OAuthProviderFactory.register(name, provider_class)
