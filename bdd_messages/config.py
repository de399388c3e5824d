"""Reporter configuration."""

from pathlib import Path

from pydantic import BaseModel, Field


class ReporterConfig(BaseModel):
    """Configuration shared by all reporters attached to a run."""

    cwd: Path = Field(
        default_factory=Path.cwd,
        description="Directory feature file locations are relative to",
    )
    run_id: str = Field(
        default="default", description="Key of the shared builder for this run"
    )
