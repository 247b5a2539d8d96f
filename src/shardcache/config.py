from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .storage.cache import check_mode


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    root: str
    default_ttl: int | None = Field(default=None, ge=0)
    dir_mode: int = 0o775
    file_mode: int = 0o664

    @field_validator("root")
    @classmethod
    def validate_root(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("root must not be empty")
        return normalized

    @field_validator("dir_mode", "file_mode", mode="before")
    @classmethod
    def parse_mode(cls, value: Any, info: ValidationInfo) -> int:
        if isinstance(value, str):
            raw = value.strip().lower().removeprefix("0o")
            try:
                value = int(raw, 8)
            except ValueError as exc:
                raise ValueError(f"invalid octal permission mode: {value}") from exc
        return check_mode(info.field_name, value)


def load_config(path: str | Path) -> CacheConfig:
    raw = Path(path).read_text(encoding="utf-8")
    payload = _parse_yaml_or_json(raw)
    section = payload.get("cache", payload)
    if not isinstance(section, dict):
        raise ValidationError("Configuration 'cache' section must be an object.")
    try:
        return CacheConfig.model_validate(section)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid configuration: {exc}") from exc


def _parse_yaml_or_json(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        try:
            parsed = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ValidationError(f"Invalid configuration: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValidationError("Configuration root must be an object.")
    return parsed
