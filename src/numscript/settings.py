"""
Display settings for numscript.

Settings only affect how values are rendered; arithmetic is always carried
out at full double precision. A settings file is a YAML mapping:

    mode: long
    short_precision: 8
    long_precision: 15
"""

from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Union

EPSILON = 1e-12   # components smaller than this print as zero

MODES = ("short", "long")


@dataclass
class FormatSettings:
    """Numeric formatting configuration carried by a Context."""
    mode: str = "short"
    short_precision: int = 10
    long_precision: int = 15

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"format mode must be one of {', '.join(MODES)}, got {self.mode!r}")
        for name in ("short_precision", "long_precision"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 17:
                raise ValueError(f"{name} must be an integer between 1 and 17, got {value!r}")

    @property
    def precision(self) -> int:
        """Significant digits for the active mode."""
        return self.long_precision if self.mode == "long" else self.short_precision

    @property
    def epsilon(self) -> float:
        return EPSILON

    def with_mode(self, mode: str) -> "FormatSettings":
        return FormatSettings(mode, self.short_precision, self.long_precision)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormatSettings":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown format setting(s): {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "FormatSettings":
        """Load settings from a YAML file."""
        import yaml

        with Path(path).open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping of format settings")
        return cls.from_dict(data)

    def save(self, path: Union[str, Path]) -> None:
        """Write settings to a YAML file."""
        import yaml

        with Path(path).open("w", encoding="utf-8") as fp:
            yaml.safe_dump(asdict(self), fp, sort_keys=False)
