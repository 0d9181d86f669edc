from __future__ import annotations

import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel

ENV_PREFIX = "LL1SIM_"


class Settings(BaseModel):
	# no ceiling by default: error functions that never consume input loop until the caller stops them
	max_steps: Optional[int] = None
	on_collision: Literal["raise", "rename"] = "raise"
	log_level: str = "INFO"
	# ceiling applied to runs started over HTTP, and how many sessions are kept
	http_max_steps: int = 1_000
	max_sessions: int = 100

	@classmethod
	def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
		env = os.environ if environ is None else environ
		values = {}
		for field_name in cls.model_fields:
			raw = env.get(ENV_PREFIX + field_name.upper())
			if raw is not None and raw.strip():
				values[field_name] = raw.strip()
		return cls(**values)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
	global _settings
	if _settings is None:
		_settings = Settings.from_env()
	return _settings


def reset_settings() -> None:
	global _settings
	_settings = None
