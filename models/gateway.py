"""Agent session and token usage models reported by the gateway."""

from datetime import date, datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_token_count(count: int) -> str:
    """Render a token count compactly, e.g. ``1.5M`` or ``12k``."""
    if count >= 1_000_000_000:
        return f"{count / 1_000_000_000:.1f}B"
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.0f}k"
    return str(count)


class AgentSession(BaseModel):
    """Context usage of one direct agent session."""

    session_name: str = Field(..., description="Display name derived from the session key")
    total_tokens: int = Field(..., ge=0, description="Tokens currently in context")
    context_window: int = Field(..., ge=0, description="Model context window size")
    compaction_count: int = Field(default=0, ge=0, description="Compactions performed so far")
    is_compacting: bool = Field(default=False, description="Compaction in progress")
    fetched_at: datetime = Field(default_factory=_utcnow, description="When the poll returned")

    model_config = ConfigDict(frozen=True)

    @property
    def percent_used(self) -> float:
        if self.context_window <= 0:
            return 0.0
        return min(100.0, self.total_tokens / self.context_window * 100)

    @property
    def percent_remaining(self) -> float:
        return 100.0 - self.percent_used

    @property
    def formatted_tokens(self) -> str:
        # Context sizes keep one decimal only in the millions
        def _fmt(count: int) -> str:
            if count >= 1_000_000:
                return f"{count / 1_000_000:.1f}M"
            if count >= 1_000:
                return f"{count // 1_000}k"
            return str(count)

        return f"{_fmt(self.total_tokens)} / {_fmt(self.context_window)}"


class DailyTokenUsage(BaseModel):
    """Token usage aggregated over one calendar day."""

    date: str = Field(..., description="ISO calendar date")
    input: int = Field(default=0, ge=0)
    output: int = Field(default=0, ge=0)
    cache_read: int = Field(default=0, ge=0)
    cache_write: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def combined_input(self) -> int:
        """Input plus cache read and write: every token sent to the model."""
        return self.input + self.cache_read + self.cache_write


class TokenUsageData(BaseModel):
    """Daily token usage across all agents, replaced on every usage poll."""

    daily: Tuple[DailyTokenUsage, ...] = Field(default_factory=tuple)
    fetched_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    def for_date(self, day: date) -> Optional[DailyTokenUsage]:
        key = day.isoformat()
        for entry in self.daily:
            if entry.date == key:
                return entry
        return None

    @property
    def today(self) -> Optional[DailyTokenUsage]:
        return self.for_date(datetime.now().date())

    @property
    def total_input(self) -> int:
        return sum(entry.combined_input for entry in self.daily)

    @property
    def total_output(self) -> int:
        return sum(entry.output for entry in self.daily)

    @property
    def total_tokens(self) -> int:
        return sum(entry.total_tokens for entry in self.daily)
