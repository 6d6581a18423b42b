"""
Weekly check-in adjustment rules.

One recommendation per check-in, first matching rule wins:
1. slow loss despite good diet adherence -> cut 150 kcal
2. fast loss, very hard sessions or low energy -> add 100 kcal
3. pain or very hard sessions -> drop one set
4. comfortable sessions with enough volume -> add one set
5. no change
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

SLOW_LOSS_PCT = 0.25
FAST_LOSS_PCT = 1.0
GOOD_ADHERENCE = 80
HIGH_RPE = 9
COMFORTABLE_RPE = 7
MIN_SESSIONS_FOR_VOLUME = 2


@dataclass
class Recommendation:
    type: str  # nutrition | training | none
    action: str
    message: str
    reason: str
    priority: str  # high | medium | low

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def weight_loss_percent(current_weight: Optional[float], previous_weight: Optional[float]) -> float:
    if not previous_weight or current_weight is None:
        return 0.0
    return (previous_weight - current_weight) / previous_weight * 100


def _fmt_pct(value: float) -> str:
    return f"{value:.2f}"


def _fmt_rpe(rpe: float) -> str:
    return f"{rpe:g}"


def calculate_recommendation(
    *,
    current_weight: Optional[float],
    previous_weight: Optional[float],
    adherence: float,
    rpe: float,
    has_pain: bool,
    energy: Optional[str],
    sessions_completed: int,
) -> Recommendation:
    loss_pct = weight_loss_percent(current_weight, previous_weight)

    if loss_pct < SLOW_LOSS_PCT and adherence >= GOOD_ADHERENCE:
        return Recommendation(
            type="nutrition",
            action="-150kcal",
            message="Réduis de 150 kcal/jour pour relancer la perte de poids",
            reason=f"Perte hebdo {_fmt_pct(loss_pct)}% (objectif ≥0.25%) malgré {adherence:g}% d'adhérence",
            priority="high",
        )

    if loss_pct > FAST_LOSS_PCT or rpe >= HIGH_RPE or energy == "low":
        if loss_pct > FAST_LOSS_PCT:
            reason = f"Perte hebdo trop rapide : {_fmt_pct(loss_pct)}% (max 1%)"
        elif rpe >= HIGH_RPE:
            reason = f"RPE élevé ({_fmt_rpe(rpe)}/10) = récupération insuffisante"
        else:
            reason = "Niveau d'énergie faible signalé"
        return Recommendation(
            type="nutrition",
            action="+100kcal",
            message="Augmente de 100 kcal/jour pour mieux récupérer",
            reason=reason,
            priority="high",
        )

    if has_pain or rpe >= HIGH_RPE:
        return Recommendation(
            type="training",
            action="-1 set",
            message="Réduis d'1 série par exercice + privilégie les mouvements doux",
            reason=(
                "Douleur signalée : priorité à la récupération"
                if has_pain
                else f"RPE trop élevé ({_fmt_rpe(rpe)}/10) : risque de surentraînement"
            ),
            priority="high",
        )

    if rpe <= COMFORTABLE_RPE and sessions_completed >= MIN_SESSIONS_FOR_VOLUME:
        return Recommendation(
            type="training",
            action="+1 set",
            message="Ajoute 1 série sur tes exercices principaux pour progresser",
            reason=(
                f"RPE confortable ({_fmt_rpe(rpe)}/10) + {sessions_completed} séances faites : "
                "tu peux monter en volume"
            ),
            priority="medium",
        )

    return Recommendation(
        type="none",
        action="no_change",
        message="Continue comme ça, tu progresses bien ! 🎯",
        reason="Tous les indicateurs sont dans la zone optimale",
        priority="low",
    )
