"""Ledgerline configuration.

SyncConfig is the central configuration object, frozen after creation.
"""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """Configuration for a ledgerline sync runtime.

    Attributes:
        root: Directory holding ``ledgerline.yaml`` / ``ledgerline.toml``.
              Always resolved to an absolute path on construction.
        supabase_url: Project URL of the hosted database.
        supabase_key: API key used to create the client.
        schema: Database schema every subscription filter targets.
        channel_prefix: Prefix of generated channel names.
        subscribe_timeout: Seconds to wait for the subscribe acknowledgment
            before leaving the channel ``disconnected``.
        coalesce_refetch: Collapse refetch requests that arrive while one is
            in flight into a single follow-up run.
        min_refetch_interval: Skip refetches requested less than this many
            seconds after the previous one (0 disables the throttle).
        reconcile_on_reconnect: Refetch once when a dropped channel is
            acknowledged again.
        max_events: Capacity of the observability event log.
        host: Bind address for the status server.
        port: Bind port for the status server.

    """

    root: Path = field(default_factory=Path.cwd)
    supabase_url: str = ""
    supabase_key: str = ""
    schema: str = "public"
    channel_prefix: str = "ledgerline"
    subscribe_timeout: float = 10.0
    coalesce_refetch: bool = False
    min_refetch_interval: float = 0.0
    reconcile_on_reconnect: bool = False
    max_events: int = 10_000
    host: str = "127.0.0.1"
    port: int = 3000

    def __post_init__(self) -> None:
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())

    @property
    def has_credentials(self) -> bool:
        """Whether both the project URL and the API key are set."""
        return bool(self.supabase_url and self.supabase_key)
