"""
Target registry.

Enumerates the execution targets of a run in declaration order, so worker
assignment and report output stay reproducible between runs.
"""

from typing import Iterable, List, Optional, Sequence

from ..core.config import Target
from ..core.exceptions import ConfigError


class TargetRegistry:
    """Ordered, immutable collection of targets keyed by name."""

    def __init__(self, targets: Iterable[Target]):
        self._targets: List[Target] = []
        self._by_name = {}
        for target in targets:
            if target.name in self._by_name:
                raise ConfigError(
                    f"Duplicate target name: {target.name}",
                    violations=[f"targets: duplicate name '{target.name}'"],
                )
            self._by_name[target.name] = target
            self._targets.append(target)

    def __len__(self) -> int:
        return len(self._targets)

    def __iter__(self):
        return iter(self._targets)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def list_targets(self) -> List[Target]:
        """Get targets in declaration order."""
        return list(self._targets)

    def get(self, name: str) -> Optional[Target]:
        return self._by_name.get(name)

    def select(self, names: Optional[Sequence[str]]) -> List[Target]:
        """
        Restrict to the named targets, keeping declaration order.

        Args:
            names: Target names to keep; all targets when empty or None

        Raises:
            ConfigError: If a name does not match any target
        """
        if not names:
            return self.list_targets()

        unknown = [name for name in names if name not in self._by_name]
        if unknown:
            raise ConfigError(
                f"Unknown target(s): {', '.join(unknown)}. "
                f"Available: {', '.join(t.name for t in self._targets)}",
                violations=[f"target '{name}' is not configured" for name in unknown],
            )
        wanted = set(names)
        return [t for t in self._targets if t.name in wanted]
