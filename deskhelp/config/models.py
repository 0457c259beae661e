from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, repr=False)
class Config:
    """
    Runtime configuration, loaded once at startup and never mutated.

    The four secrets/endpoints come from the environment; everything else
    comes from config.yaml (or its defaults) with env list overrides.
    """

    discord_token: str
    openai_api_key: str
    openai_base_url: str
    ai_model: str
    system_prompt: str = ""
    autorespond_channels: frozenset[int] = frozenset()
    admin_ids: tuple[int, ...] = ()
    max_tokens: int | None = 1800
    response_timeout: float = 60.0
    stream_responses: bool = True
    show_footer: bool = True
    allow_dms: bool = True
    status_message: str = ""

    def __repr__(self) -> str:
        # Keep secrets out of logs.
        return (
            f"Config(ai_model={self.ai_model!r}, openai_base_url={self.openai_base_url!r}, "
            f"autorespond_channels={sorted(self.autorespond_channels)}, admin_ids={list(self.admin_ids)}, "
            f"max_tokens={self.max_tokens}, response_timeout={self.response_timeout}, "
            f"stream_responses={self.stream_responses})"
        )
