"""Typed rate limit policy and coercion of raw configuration.

Raw limits arrive from environment variables, JSON bodies or hand-written
mappings. They are converted once, at load time, into immutable
``LimiterConfig`` / ``RateLimitPolicy`` values. Anything malformed is
replaced by ``FALLBACK_LIMITER_CONFIG`` for that limiter only, and a warning
string describing the substitution is returned to the caller.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from admission_api.core.config import AppSettings


@dataclass(frozen=True)
class LimiterConfig:
    """One token bucket: refill rate and capacity."""

    requests_per_second: float
    burst_size: int

    @property
    def is_valid(self) -> bool:
        rate = self.requests_per_second
        burst = self.burst_size
        return (
            isinstance(rate, (int, float))
            and not isinstance(rate, bool)
            and math.isfinite(rate)
            and rate > 0
            and isinstance(burst, int)
            and not isinstance(burst, bool)
            and burst >= 1
        )

    def as_dict(self) -> dict[str, float | int]:
        return {"requests_per_second": self.requests_per_second, "burst_size": self.burst_size}


FALLBACK_LIMITER_CONFIG = LimiterConfig(requests_per_second=1.0, burst_size=1)

DEFAULT_KEY = "*"

_RATE_ALIASES = ("requests_per_second", "requests-per-second", "requestsPerSecond")
_BURST_ALIASES = ("burst_size", "burst-size", "burstSize")


def _lookup(raw: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for name in aliases:
        if name in raw:
            return raw[name]
    return None


def _parse_rate(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(rate) or rate <= 0:
        return None
    return rate


def _parse_burst(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.lstrip("-").isdigit():
            return None
        value = int(value)
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if not isinstance(value, int) or value < 1:
        return None
    return value


def coerce_limiter_config(
    requests_per_second: Any, burst_size: Any, *, label: str
) -> tuple[LimiterConfig, str | None]:
    """Build a valid LimiterConfig from untrusted values.

    Args:
        requests_per_second: Candidate rate (number or numeric string).
        burst_size: Candidate capacity (integer, integral float or digit string).
        label: Name of the limiter, used in the warning text.

    Returns:
        ``(config, warning)``. ``warning`` is None when the values were usable
        as given; otherwise the config is ``FALLBACK_LIMITER_CONFIG``.
    """
    rate = _parse_rate(requests_per_second)
    burst = _parse_burst(burst_size)
    if rate is not None and burst is not None:
        return LimiterConfig(requests_per_second=rate, burst_size=burst), None

    problems = []
    if rate is None:
        problems.append(f"requests_per_second={requests_per_second!r}")
    if burst is None:
        problems.append(f"burst_size={burst_size!r}")
    warning = (
        f"limiter {label!r}: invalid {', '.join(problems)}; "
        f"using fallback {FALLBACK_LIMITER_CONFIG.requests_per_second} req/s, "
        f"burst {FALLBACK_LIMITER_CONFIG.burst_size}"
    )
    return FALLBACK_LIMITER_CONFIG, warning


def sanitize_limiter_config(config: LimiterConfig, *, label: str) -> tuple[LimiterConfig, str | None]:
    """Return ``config`` when valid, otherwise the fallback plus a warning."""
    if config.is_valid:
        return LimiterConfig(float(config.requests_per_second), config.burst_size), None
    return coerce_limiter_config(config.requests_per_second, config.burst_size, label=label)


def reserved_key_warning(key: str) -> str:
    return f"limiter {key!r}: key is reserved for the default limiter; override ignored"


def decode_custom_limits(raw: Any) -> tuple[Mapping[str, Any], str | None]:
    """Turn a mapping or its JSON text into the overrides mapping.

    Returns:
        ``(mapping, warning)``. Anything that is not an object gives an empty
        mapping and a warning.
    """
    if raw is None:
        return {}, None
    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            return {}, None
        try:
            raw = json.loads(raw)
        except ValueError:
            return {}, "custom limits: not valid JSON; ignoring all overrides"
    if not isinstance(raw, Mapping):
        return {}, (
            f"custom limits: expected a JSON object, got {type(raw).__name__}; "
            "ignoring all overrides"
        )
    return raw, None


@dataclass(frozen=True)
class RateLimitPolicy:
    """Default limit plus exact-path overrides. Never mutated after creation."""

    default: LimiterConfig
    custom_limits: Mapping[str, LimiterConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "custom_limits", MappingProxyType(dict(self.custom_limits)))

    def limit_for(self, key: str) -> LimiterConfig:
        return self.custom_limits.get(key, self.default)

    def as_dict(self) -> dict[str, Any]:
        return {
            "default": self.default.as_dict(),
            "custom_limits": {key: cfg.as_dict() for key, cfg in self.custom_limits.items()},
        }

    @classmethod
    def from_raw(
        cls,
        requests_per_second: Any,
        burst_size: Any,
        custom_limits: Any = None,
    ) -> tuple["RateLimitPolicy", list[str]]:
        """Decode untyped configuration into a policy.

        Override entries may use ``requests_per_second``/``burst_size``,
        their hyphenated forms or camelCase. An entry that is not a mapping,
        or whose values are unusable, maps to the fallback config.

        ``custom_limits`` may also be the raw JSON text of the overrides.
        Text that does not decode to a JSON object yields no overrides and a
        warning. The reserved key ``"*"`` is dropped with a warning.

        Returns:
            ``(policy, warnings)``.
        """
        warnings: list[str] = []

        default, warning = coerce_limiter_config(requests_per_second, burst_size, label=DEFAULT_KEY)
        if warning:
            warnings.append(warning)

        overrides: dict[str, LimiterConfig] = {}
        raw_limits, warning = decode_custom_limits(custom_limits)
        if warning:
            warnings.append(warning)

        for key, raw in raw_limits.items():
            if key == DEFAULT_KEY:
                warnings.append(reserved_key_warning(key))
                continue
            if isinstance(raw, LimiterConfig):
                cfg, warning = sanitize_limiter_config(raw, label=key)
            elif isinstance(raw, Mapping):
                cfg, warning = coerce_limiter_config(
                    _lookup(raw, _RATE_ALIASES), _lookup(raw, _BURST_ALIASES), label=key
                )
            else:
                cfg = FALLBACK_LIMITER_CONFIG
                warning = (
                    f"limiter {key!r}: expected a mapping, got {type(raw).__name__}; "
                    f"using fallback {FALLBACK_LIMITER_CONFIG.requests_per_second} req/s, "
                    f"burst {FALLBACK_LIMITER_CONFIG.burst_size}"
                )
            overrides[str(key)] = cfg
            if warning:
                warnings.append(warning)

        return cls(default=default, custom_limits=overrides), warnings

    @classmethod
    def from_settings(cls, app_settings: "AppSettings") -> tuple["RateLimitPolicy", list[str]]:
        return cls.from_raw(
            app_settings.rate_limit_requests_per_second,
            app_settings.rate_limit_burst_size,
            app_settings.rate_limit_custom_limits,
        )
