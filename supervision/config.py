"""
Supervision session settings
"""

from typing import List

from pydantic import BaseModel, Field

from .models import SupervisionMode


class SupervisionConfig(BaseModel):
    """Settings for a supervision session."""
    mode: SupervisionMode = Field(default=SupervisionMode.BALANCED, description="How eagerly responses are auto-delivered")
    min_response_interval: float = Field(default=3.0, ge=0, description="Minimum seconds between delivered responses")
    duplicate_window: float = Field(default=5.0, ge=0, description="Seconds during which a repeated question is ignored")
    buffer_size: int = Field(default=1000, gt=0, description="Lines kept per output stream")
    history_limit: int = Field(default=100, gt=0, description="Decision history entries kept")
    liveness_interval: float = Field(default=2.0, gt=0, description="Seconds between process liveness checks")
    recurrence_window: float = Field(default=300.0, gt=0, description="Seconds of history used for recurrence escalation")
    recurrence_threshold: int = Field(default=2, ge=1, description="Prior occurrences that escalate a category")
    instruction_filename: str = Field(default="CLAUDE.md", description="Project instruction file name")
    claude_command: List[str] = Field(default=["claude"], description="Command used to launch the assistant")
    delivery: str = Field(default="direct", pattern="^(direct|emit)$", description="direct stdin writes or emitted events")
    use_pty: bool = Field(default=False, description="Run an owned assistant under a pseudo-terminal")
    log_level: str = Field(default="INFO", description="Logging level")
