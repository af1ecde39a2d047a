"""
Binding configuration
"""
from enum import Enum
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class FlagCoercion(str, Enum):
    """Rule for turning a host value into a C int flag."""
    PYTHON = "python"   # bool(value)
    LUA = "lua"         # only None and False are false


class Settings(BaseSettings):
    """Binding settings, read from CXBIND_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CXBIND_",
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Native library
    LIBCLANG_PATH: str | None = None

    # Marshaling
    FLAG_COERCION: FlagCoercion = FlagCoercion.PYTHON
    NIL_ON_CONSTRUCTION_FAILURE: bool = True
    DEFAULT_PARSE_ARGS: List[str] = []

    # Lifecycle
    FINALIZER_BACKSTOP: bool = True


settings = Settings()
