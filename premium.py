"""
StudyGenius - Monetization Gate
Premium flag and upgrade prompt. Client-side only: nothing here checks
a real entitlement.
"""

from __future__ import annotations
import threading
from typing import Dict, Optional

FREE_QUIZ_CAP = 5
QUIZ_COUNTS = (3, 5, 10, 15)

# Gated features
LONG_SUMMARY = "long_summary"
LARGE_QUIZ = "large_quiz"
EXPORT = "export"


class UpgradeRequired(Exception):
    """Raised when a premium-only control is used on the free tier."""

    def __init__(self, feature: str) -> None:
        super().__init__(f"'{feature}' requires a premium account")
        self.feature = feature


class PremiumGate:
    def __init__(self, is_premium: bool = False) -> None:
        self._lock = threading.Lock()
        self.is_premium = is_premium
        self.prompt_open = False
        self.requested_feature: Optional[str] = None

    def request_upgrade(self, feature: Optional[str] = None) -> None:
        """Open the upgrade modal."""
        with self._lock:
            self.prompt_open = True
            self.requested_feature = feature

    def accept_upgrade(self) -> None:
        """Accepting the offer unlocks premium for the rest of the process."""
        with self._lock:
            self.is_premium = True
            self.prompt_open = False

    def close(self) -> None:
        with self._lock:
            self.prompt_open = False

    def require(self, feature: str) -> None:
        """
        Guard a premium-only control.

        :raises UpgradeRequired: when not premium; the modal is opened first.
        """
        if self.is_premium:
            return
        self.request_upgrade(feature)
        raise UpgradeRequired(feature)

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_premium": self.is_premium,
            "upgrade_prompt_open": self.prompt_open,
            "requested_feature": self.requested_feature,
        }
