from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "ClassDraw"
    debug: bool = False

    # Roster generated when no roster is imported
    default_roster_size: int = 49

    default_policy: str = "uniform"

    # Scheduling gap awaited between selection and commit so a
    # presentation layer can animate the card flip
    draw_delay_seconds: float = 1.0

    avatar_base_url: str = "https://api.dicebear.com/7.x/avataaars/svg"

    log_level: str = "INFO"


settings = Settings()


# =============================================================================
# RARITY DISTRIBUTION (synthetic roster generation)
# =============================================================================

# U < 0.01 -> super-rare (1%), U < 0.10 -> rare (9%), else ordinary (90%)
SUPER_RARE_THRESHOLD = 0.01
RARE_THRESHOLD = 0.10

# Number of candidates returned by a weighted preview
DEFAULT_PREVIEW_LIMIT = 5
