"""Configuration for pqchat clients."""

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Mapping, Optional

from .formats import CURRENT_FORMAT, FormatVersion
from .types import HybridChatError


class ConfigError(HybridChatError):
    """Invalid configuration value."""
    pass


@dataclass(frozen=True)
class HybridChatConfig:
    """Configuration for encryption and caching behaviour."""

    format_version: FormatVersion = CURRENT_FORMAT
    """Format written for new envelopes."""

    max_workers: Optional[int] = None
    """Thread pool size for ML-KEM work (None: executor default)."""

    public_key_ttl: timedelta = timedelta(hours=24)
    """How long fetched public keys are trusted before re-fetching."""

    sent_cache_size: int = 256
    """Sent plaintexts remembered per conversation (0 disables the cache)."""

    @classmethod
    def default(cls) -> "HybridChatConfig":
        """Wire-compatible defaults (XOR combiner, secretbox)."""
        return cls()

    @classmethod
    def hardened(cls) -> "HybridChatConfig":
        """Writes envelopes with the HKDF combiner."""
        return cls(format_version=FormatVersion.SECRETBOX_HKDF)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HybridChatConfig":
        """
        Build a configuration from environment variables.

        Reads PQCHAT_FORMAT_VERSION, PQCHAT_MAX_WORKERS,
        PQCHAT_PUBLIC_KEY_TTL_SECONDS and PQCHAT_SENT_CACHE_SIZE; unset
        variables keep their defaults.

        Raises:
            ConfigError: If a variable is not a valid value
        """
        env = os.environ if environ is None else environ
        config = cls()

        if "PQCHAT_FORMAT_VERSION" in env:
            version = _parse_int(env, "PQCHAT_FORMAT_VERSION")
            try:
                fmt = FormatVersion(version)
            except ValueError as e:
                raise ConfigError(f"Unknown format version: {version}") from e
            if fmt.is_legacy:
                raise ConfigError("The legacy stream format cannot be written")
            config = replace(config, format_version=fmt)

        if "PQCHAT_MAX_WORKERS" in env:
            workers = _parse_int(env, "PQCHAT_MAX_WORKERS")
            if workers < 1:
                raise ConfigError("PQCHAT_MAX_WORKERS must be at least 1")
            config = replace(config, max_workers=workers)

        if "PQCHAT_PUBLIC_KEY_TTL_SECONDS" in env:
            ttl = _parse_int(env, "PQCHAT_PUBLIC_KEY_TTL_SECONDS")
            config = replace(config, public_key_ttl=timedelta(seconds=max(ttl, 0)))

        if "PQCHAT_SENT_CACHE_SIZE" in env:
            size = _parse_int(env, "PQCHAT_SENT_CACHE_SIZE")
            config = replace(config, sent_cache_size=max(size, 0))

        return config


def _parse_int(env: Mapping[str, str], name: str) -> int:
    try:
        return int(env[name])
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {env[name]!r}") from e
