"""Synchronization defaults for staging-to-canonical mapping runs."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_int

DEFAULT_MAPPING_BATCH_SIZE = 100


@dataclass(frozen=True, slots=True)
class SyncConfig:
    batch_size: int = DEFAULT_MAPPING_BATCH_SIZE


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        batch_size=env_int(
            "COMMONPLACE_SYNC_BATCH_SIZE",
            DEFAULT_MAPPING_BATCH_SIZE,
            minimum=1,
        )
    )
