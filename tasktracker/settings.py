# tasktracker/settings.py
from __future__ import annotations

import json
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # --- DB ---
    DATABASE_URL: str = Field(default='sqlite+pysqlite:///./tasktracker.db')

    # --- App/JWT ---
    SECRET_KEY: str = Field(default='change_me')
    ALGORITHM: str = Field(default='HS256')
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24)
    COOKIE_SECURE: bool = Field(default=False)

    # --- CORS ---
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    # --- Pages ---
    SIGNIN_PATH: str = Field(default='/auth/signin')

    # --- Providers ---
    GOOGLE_CLIENT_ID: Optional[str] = Field(default=None)
    GOOGLE_CLIENT_SECRET: Optional[str] = Field(default=None)
    GOOGLE_REDIRECT_URI: str = Field(default='http://localhost:8000/api/auth/callback/google')
    DEMO_USER_EMAIL: Optional[str] = Field(default=None)
    DEMO_USER_PASSWORD: Optional[str] = Field(default=None)

    # --- Other options ---
    APP_ENV: Optional[str] = Field(default='prod')
    LOG_LEVEL: str = Field(default='INFO')

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors(cls, v):
        """
        Accepts:
        - JSON: '["http://a","http://b"]'
        - Comma separated: 'http://a,http://b'
        - Empty: no explicit origins (the app then allows any)
        """
        if v is None:
            return []
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    return json.loads(s)
                except json.JSONDecodeError:
                    raise ValueError("CORS_ORIGINS must be valid JSON or a comma separated list.")
            return [part.strip() for part in s.split(",") if part.strip()]
        return v

    @property
    def google_enabled(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)

settings = Settings()
