"""
Capability factory for the threshold cryptography core.

Resolves the AEAD named by the feature flags, pairs it with HKDF-SHA256 and
a randomness source, and returns the bundle the engines are built with.
"""

from __future__ import annotations

import importlib
import logging
from typing import Final, Optional

from .feature_flags import get_aead_type
from .interfaces import AeadProvider, CryptoProviders, KdfProvider, RandomSource

logger = logging.getLogger(__name__)

_PACKAGE: Final[str] = __package__ or "threshold_escrow.threshold_crypto"

AEAD_REGISTRY: Final[dict[str, str]] = {
    "aes-256-gcm": f"{_PACKAGE}.providers.AesGcmProvider",
    "chacha20-poly1305": f"{_PACKAGE}.providers.ChaCha20Poly1305Provider",
}

KDF_IMPORT_PATH: Final[str] = f"{_PACKAGE}.providers.HkdfSha256Provider"
RNG_IMPORT_PATH: Final[str] = f"{_PACKAGE}.security.SystemRandomSource"


def _format_valid_options() -> str:
    return ", ".join(sorted(AEAD_REGISTRY.keys()))


def _load_class(import_path: str, base: type) -> type:
    module_path, _, class_name = import_path.rpartition(".")
    if not module_path or not class_name:
        raise ValueError(f"Invalid provider import path: {import_path!r}")

    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as exc:
        raise ImportError(
            f"Unable to import provider module {module_path!r}"
        ) from exc

    try:
        provider_cls = getattr(module, class_name)
    except AttributeError as exc:
        raise ImportError(
            f"Provider class {class_name!r} not found in module {module_path!r}"
        ) from exc

    if not isinstance(provider_cls, type) or not issubclass(provider_cls, base):
        raise TypeError(
            f"Provider reference {import_path!r} does not implement {base.__name__}"
        )

    return provider_cls


def get_aead_provider(prefer: str | None = None) -> AeadProvider:
    """
    Return an AEAD provider instance based on feature flags.

    Raises:
        ValueError: If the AEAD name is invalid.
        ImportError: If the provider class cannot be imported.
        TypeError: If the class does not implement AeadProvider.
    """
    aead_name = get_aead_type(prefer)
    if aead_name not in AEAD_REGISTRY:
        raise ValueError(
            f"Invalid AEAD name: {aead_name!r}. Valid options: {_format_valid_options()}"
        )
    provider = _load_class(AEAD_REGISTRY[aead_name], AeadProvider)()
    logger.debug("Selected AEAD provider %s", provider.name)
    return provider


def get_crypto_providers(
    *, prefer: str | None = None, rng: Optional[RandomSource] = None
) -> CryptoProviders:
    """
    Build the capability bundle (AEAD, KDF, RNG) for the engines.

    Args:
        prefer: Optional AEAD name hint.
        rng: Optional randomness source; defaults to the system CSPRNG.

    Returns:
        CryptoProviders: New provider bundle.
    """
    aead = get_aead_provider(prefer)
    kdf = _load_class(KDF_IMPORT_PATH, KdfProvider)()
    if rng is None:
        rng = _load_class(RNG_IMPORT_PATH, RandomSource)()
    elif not isinstance(rng, RandomSource):
        raise TypeError(f"rng {rng!r} does not implement RandomSource")
    return CryptoProviders(aead=aead, kdf=kdf, rng=rng)
