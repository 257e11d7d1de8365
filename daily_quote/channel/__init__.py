"""Channel layer: base + OneBot + PushPlus; factory by type."""
from __future__ import annotations

from typing import Any

from daily_quote.channel.base import Channel
from daily_quote.channel.dryrun import DryRunChannel
from daily_quote.channel.onebot import OneBotChannel
from daily_quote.channel.pushplus import PushPlusChannel

_CHANNELS: dict[str, type[Channel]] = {
    "onebot": OneBotChannel,
    "pushplus": PushPlusChannel,
}


def get_channel(channel_type: str) -> type[Channel]:
    """Return channel class for given type."""
    if channel_type not in _CHANNELS:
        raise ValueError(f"Unknown channel type: {channel_type}")
    return _CHANNELS[channel_type]


def build_channel(channel_cfg: dict[str, Any], dry_run: bool = False) -> Channel:
    channel = get_channel(channel_cfg.get("type", "onebot"))(channel_cfg)
    return DryRunChannel(channel) if dry_run else channel


__all__ = ["Channel", "DryRunChannel", "OneBotChannel", "PushPlusChannel", "build_channel", "get_channel"]
