"""Analyzer composed of independent sub-models."""

import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence

import numpy as np

from facepath.analyzers.base import AttributeModel
from facepath.attributes import AttributeKind, AttributeSet, coerce_value
from facepath.errors import ConfigurationError, InferenceError

logger = logging.getLogger(__name__)


class CompositeAnalyzer:
    """Runs each sub-model on the crop and merges their outputs.

    Sub-models fail independently: an exception in one becomes an error
    entry for each kind it was to produce, while the others still
    contribute. When two models produce the same kind, the first one
    listed wins.

    Args:
        models: Sub-models in priority order.

    Example:
        >>> analyzer = CompositeAnalyzer([AgeGenderModel(), EmotionModel()])
        >>> analyzer.load()
        >>> attrs = analyzer.infer(crop, kinds={AttributeKind.AGE})
    """

    def __init__(self, models: Sequence[AttributeModel]):
        if not models:
            raise ValueError("At least one attribute model is required")
        self._models: List[AttributeModel] = list(models)
        self._loaded = False

    @property
    def models(self) -> List[AttributeModel]:
        return list(self._models)

    @property
    def supported_kinds(self) -> FrozenSet[AttributeKind]:
        kinds: FrozenSet[AttributeKind] = frozenset()
        for model in self._models:
            kinds = kinds | model.kinds
        return kinds

    def load(self) -> None:
        """Load all sub-models.

        Raises:
            ConfigurationError: If any sub-model fails to load.
        """
        if self._loaded:
            return
        for model in self._models:
            try:
                model.load()
                logger.debug(f"Loaded attribute model: {model.name}")
            except Exception as exc:
                logger.error(f"Failed to load attribute model {model.name}: {exc}")
                raise ConfigurationError(f"Attribute model {model.name!r} failed to load: {exc}") from exc
        self._loaded = True
        logger.info(
            f"Attribute analyzer ready: {len(self._models)} models, "
            f"kinds={sorted(k.value for k in self.supported_kinds)}"
        )

    def infer(
        self,
        crop: np.ndarray,
        kinds: Optional[Iterable[Any]] = None,
    ) -> AttributeSet:
        if crop is None or crop.size == 0:
            raise InferenceError("Cannot analyze an empty crop")

        supported = self.supported_kinds
        if kinds is None:
            wanted = set(supported)
        else:
            wanted = {AttributeKind.parse(k) for k in kinds}

        values: Dict[AttributeKind, Any] = {}
        errors: Dict[AttributeKind, str] = {}
        for kind in wanted - supported:
            errors[kind] = "no model produces this attribute"

        for model in self._models:
            targets = (model.kinds & wanted) - set(values)
            if not targets:
                continue
            try:
                output = model.predict(crop)
            except Exception as exc:
                logger.warning(f"Attribute model {model.name} failed: {exc}")
                for kind in targets:
                    errors[kind] = f"{model.name}: {exc}"
                continue

            produced = {}
            for key, value in (output or {}).items():
                try:
                    produced[AttributeKind.parse(key)] = value
                except ValueError:
                    logger.debug(f"Attribute model {model.name} returned unknown key {key!r}")
            for kind in targets:
                value = produced.get(kind)
                if value is None:
                    errors[kind] = f"{model.name}: no {kind.value} output"
                    continue
                try:
                    values[kind] = coerce_value(kind, value)
                except (TypeError, ValueError, KeyError) as exc:
                    errors[kind] = f"{model.name}: invalid {kind.value} output: {exc}"
                    continue
                errors.pop(kind, None)

        return AttributeSet(values, errors)


__all__ = ["CompositeAnalyzer"]
