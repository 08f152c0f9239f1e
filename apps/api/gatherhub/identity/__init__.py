from gatherhub.identity.base import IdentityProvider
from gatherhub.identity.clerk import ClerkIdentityProvider, LocalIdentityProvider

__all__ = [
    "IdentityProvider",
    "ClerkIdentityProvider",
    "LocalIdentityProvider",
]
