from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "", "case_sensitive": False}

    # App
    environment: str = "development"
    debug: bool = True
    app_name: str = "PowerTree"
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Logging
    log_json: bool = False
    log_level: str = "INFO"
    engine_log_level: str = "WARNING"

    # Engine
    max_subsystem_depth: int = 16

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
