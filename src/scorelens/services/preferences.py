"""Session-scoped preference weights driven by accept/modify/reject feedback."""

from __future__ import annotations

from typing import Dict, List

from ..app.models import PreferenceStatistics, UserAction, UserActionType
from .recommender import scheme_tokens

REWARDS: Dict[UserActionType, float] = {
    UserActionType.ACCEPT: 1.0,
    UserActionType.MODIFY: 0.5,
    UserActionType.REJECT: -1.0,
}


def action_tokens(action: UserAction) -> List[str]:
    """Distinct tokens an action refers to, falling back to its scheme's tokens."""
    if action.tokens:
        return list(dict.fromkeys(action.tokens))
    if action.scheme is not None:
        return scheme_tokens(action.scheme)
    return []


class PreferenceLearner:
    """Additive, unbounded token weights; one instance per interactive session."""

    def __init__(self) -> None:
        self._weights: Dict[str, float] = {}
        self._counts: Dict[UserActionType, int] = {kind: 0 for kind in UserActionType}

    def record_action(self, action: UserAction) -> List[str]:
        """Applies the action's reward and returns the tokens it touched."""
        reward = REWARDS[action.action]
        tokens = action_tokens(action)
        for token in tokens:
            self._weights[token] = self._weights.get(token, 0.0) + reward
        self._counts[action.action] += 1
        return tokens

    def weight(self, token: str) -> float:
        return self._weights.get(token, 0.0)

    def get_preferences(self) -> Dict[str, float]:
        return dict(self._weights)

    def clear_preferences(self) -> None:
        self._weights.clear()
        self._counts = {kind: 0 for kind in UserActionType}

    def get_statistics(self) -> PreferenceStatistics:
        return PreferenceStatistics(
            total_actions=sum(self._counts.values()),
            accepted=self._counts[UserActionType.ACCEPT],
            modified=self._counts[UserActionType.MODIFY],
            rejected=self._counts[UserActionType.REJECT],
            tracked_tokens=len(self._weights),
            positive_tokens=sum(1 for value in self._weights.values() if value > 0),
            negative_tokens=sum(1 for value in self._weights.values() if value < 0),
        )
