from __future__ import annotations

import logging

from .config import ComplianceConfig, validate_threshold


class ThresholdEvaluator:
    """Decide whether an amount triggers a rain-event inspection.

    The comparison is ``amount >= threshold`` on the value exactly as the
    source reported it: 0.25 triggers, 0.24 does not, and 0.251234567 is
    compared with every digit intact.
    """

    def __init__(self, config: ComplianceConfig) -> None:
        self.threshold = validate_threshold(config.rain_threshold_inches)
        self._log = logging.getLogger(self.__class__.__name__)
        self._log.info("EPA CGP compliance enabled: %s\" precipitation threshold", self.threshold)

    def evaluate(self, amount_inches: float) -> bool:
        return amount_inches >= self.threshold


__all__ = ["ThresholdEvaluator"]
