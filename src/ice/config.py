from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    DATABASE_URL: str = Field("sqlite:///data/ice.db", description="SQLAlchemy database URL")

    # Name matching tiers
    EXACT_MATCH: float = Field(1.0, description="Score of an exact normalized match")
    AUTO_MATCH_THRESHOLD: float = Field(
        0.85,
        description="Full-name similarity at or above which a name is bound without asking"
    )
    MANUAL_RESOLUTION_THRESHOLD: float = Field(
        0.75,
        description="Full-name similarity at or above which an alias is offered as a candidate"
    )
    FIRST_NAME_THRESHOLD: float = Field(
        0.85,
        description="First-name similarity required before full names are compared at all"
    )
    MAX_CANDIDATES_PER_CONFLICT: int = Field(5, description="Candidates shown per ambiguous name")

    # Articles
    LOW_VIEWS_THRESHOLD: int = Field(
        50,
        description="Articles below this many views are flagged and excluded from KPIs"
    )

    # Hours
    # Storage rejects anything outside 0-24, so the configured range must sit inside it
    MIN_DAILY_HOURS: float = Field(0.0, ge=0, le=24, description="Lowest valid hours value for one day")
    MAX_DAILY_HOURS: float = Field(24.0, ge=0, le=24, description="Highest valid hours value for one day")

    # Writes
    UPSERT_BATCH_SIZE: int = Field(500, description="Rows per upsert chunk")
    FETCH_CHUNK_SIZE: int = Field(1000, description="Keys per existence pre-fetch query")
    MAX_REPORTED_ERRORS: int = Field(50, description="Error strings kept in an upload receipt")

# Singleton instance (CLI entry point only; core code takes settings explicitly)
settings = Settings()
