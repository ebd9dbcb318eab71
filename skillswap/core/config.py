from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional

class Settings(BaseSettings):
    app_name: str = "SkillSwap API"
    debug: bool = False
    environment: str = "production"
    log_level: str = "INFO"

    # CORS
    frontend_url: str = "http://localhost:3000"
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    # Sessions
    jwt_secret: str = "your-secret-key"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    bcrypt_rounds: int = 12

    # Persistence: "supabase" in production, "memory" for local runs and tests
    store_backend: str = "supabase"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Bounded retries for the version-guarded rating aggregate write
    rating_aggregation_retries: int = 5

    class Config:
        env_file = ".env"

    @property
    def allowed_origins(self) -> List[str]:
        origins = list(self.cors_origins)
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins

@lru_cache()
def get_settings() -> Settings:
    return Settings()
