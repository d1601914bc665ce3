import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

PROFILE_ENV = "THUMBWATCH_PROFILE"

# Named concurrency profiles. "gentle" mirrors the single-lane, 200 ms spaced
# queue used while a page is being scrolled.
PROFILES: Dict[str, Dict[str, Any]] = {
    "default": {"concurrency": 5, "min_task_spacing": 0.0},
    "gentle": {"concurrency": 1, "min_task_spacing": 0.2},
    "batch": {"concurrency": 3, "min_task_spacing": 0.0},
}

_ENV_FIELDS = {
    "THUMBWATCH_THRESHOLD": ("hamming_threshold", int),
    "THUMBWATCH_CONCURRENCY": ("concurrency", int),
    "THUMBWATCH_MAX_RECORDS": ("max_records", int),
    "THUMBWATCH_MAX_FAILED": ("max_failed", int),
    "THUMBWATCH_GRID_SIZE": ("grid_size", int),
}


@dataclass(frozen=True)
class Settings:
    grid_size: int = 32
    hamming_threshold: int = 5
    max_records: int = 5000
    max_failed: int = 1000
    concurrency: int = 5
    min_task_spacing: float = 0.0
    fetch_timeout: Optional[float] = 10.0
    degenerate_tolerance: int = 0
    max_image_bytes: int = 10 * 1024 * 1024

    def __post_init__(self) -> None:
        if self.grid_size < 2:
            raise ValueError(f"grid_size must be at least 2, got {self.grid_size}")
        if self.hamming_threshold < 0:
            raise ValueError(f"hamming_threshold must be non-negative, got {self.hamming_threshold}")
        if self.max_records < 1:
            raise ValueError(f"max_records must be positive, got {self.max_records}")
        if self.max_failed < 1:
            raise ValueError(f"max_failed must be positive, got {self.max_failed}")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be positive, got {self.concurrency}")
        if self.min_task_spacing < 0:
            raise ValueError(f"min_task_spacing must be non-negative, got {self.min_task_spacing}")
        if self.fetch_timeout is not None and self.fetch_timeout <= 0:
            raise ValueError(f"fetch_timeout must be positive, got {self.fetch_timeout}")
        if self.degenerate_tolerance < 0:
            raise ValueError(f"degenerate_tolerance must be non-negative, got {self.degenerate_tolerance}")
        if self.max_image_bytes < 1:
            raise ValueError(f"max_image_bytes must be positive, got {self.max_image_bytes}")

    @property
    def fingerprint_bits(self) -> int:
        """Number of significant bits in a fingerprint for this grid size."""
        return self.grid_size * (self.grid_size - 1)

    @classmethod
    def for_profile(cls, name: str, **overrides: Any) -> "Settings":
        """Build settings from a named profile, with keyword overrides on top."""
        try:
            values = dict(PROFILES[name])
        except KeyError:
            raise ValueError(f"Unknown profile {name!r}, expected one of {sorted(PROFILES)}") from None
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Dict[str, str]] = None,
        profile: Optional[str] = None,
        **explicit: Any,
    ) -> "Settings":
        """
        Build settings from THUMBWATCH_* environment variables.

        THUMBWATCH_PROFILE selects the base profile unless profile is given;
        the remaining variables override individual fields, and explicit
        keyword values override those.
        """
        environ = os.environ if environ is None else environ
        settings = cls.for_profile(profile or environ.get(PROFILE_ENV) or "default")

        overrides: Dict[str, Any] = {}
        for env_name, (field_name, convert) in _ENV_FIELDS.items():
            raw = environ.get(env_name)
            if raw is None or raw == "" or field_name in explicit:
                continue
            try:
                overrides[field_name] = convert(raw)
            except ValueError:
                raise ValueError(f"{env_name} must be an integer, got {raw!r}") from None
        overrides.update(explicit)

        return replace(settings, **overrides) if overrides else settings
