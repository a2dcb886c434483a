"""Server configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str | None = None
    log_level: str = "INFO"

    # scrypt cost parameters used to hash secret keys
    scrypt_n: int = 16384
    scrypt_r: int = 8
    scrypt_p: int = 1

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()


def get_settings() -> Settings:
    """Get the Settings instance"""
    return settings
