"""Social login providers package"""

from .provider_interface import OAuthProviderInterface, SocialProfile, SocialProvider
from .provider_factory import OAuthProviderFactory

__all__ = [
    "OAuthProviderInterface",
    "OAuthProviderFactory",
    "SocialProfile",
    "SocialProvider",
]
