from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class ExternalCommand:
    executable: str
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    inherit_env: bool = True
    cwd: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "executable", str(self.executable))
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @classmethod
    def of(
        cls,
        executable: str | Path,
        *args: str | Path,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> "ExternalCommand":
        return cls(
            executable=str(executable),
            args=tuple(str(a) for a in args),
            env=env or {},
            cwd=cwd,
        )

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    @property
    def name(self) -> str:
        return Path(self.executable).name or self.executable

    def merged_env(self, base: Mapping[str, str]) -> dict[str, str]:
        merged = dict(base) if self.inherit_env else {}
        merged.update(self.env)
        return merged
