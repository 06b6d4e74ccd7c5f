"""Attribute analyzer contracts."""

from abc import ABC, abstractmethod
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Protocol

import numpy as np

from facepath.attributes import AttributeKind, AttributeSet


class AttributeAnalyzer(Protocol):
    """Maps a face crop to an ``AttributeSet``.

    ``infer`` must be a pure function of the crop pixels. A kind that
    cannot be produced is left out of the result and listed in
    ``AttributeSet.errors`` with a reason.
    """

    supported_kinds: FrozenSet[AttributeKind]

    def load(self) -> None:
        """Load every model. Failure is fatal at startup."""
        ...

    def infer(
        self,
        crop: np.ndarray,
        kinds: Optional[Iterable[AttributeKind]] = None,
    ) -> AttributeSet:
        """Infer the requested kinds (all supported kinds when None).

        Raises:
            InferenceError: The crop itself cannot be analyzed.
        """
        ...


class AttributeModel(ABC):
    """One independent sub-model producing one or more attribute kinds.

    Example:
        >>> class ConstantAge(AttributeModel):
        ...     name = "constant_age"
        ...     kinds = frozenset({AttributeKind.AGE})
        ...     def predict(self, crop):
        ...         return {AttributeKind.AGE: 30}
    """

    name: str = "model"
    kinds: FrozenSet[AttributeKind] = frozenset()

    def load(self) -> None:
        """Load weights. Called once before the first ``predict``."""

    @abstractmethod
    def predict(self, crop: np.ndarray) -> Mapping[Any, Any]:
        """Return a mapping of attribute kind (or name) to value."""

    def __repr__(self) -> str:
        kinds = ",".join(sorted(k.value for k in self.kinds))
        return f"{type(self).__name__}({kinds})"


__all__ = ["AttributeAnalyzer", "AttributeModel"]
