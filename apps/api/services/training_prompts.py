"""
Prompt and tool definitions for training generation.

All user-facing text produced by the model is French.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

DEFAULT_EXPERIENCE_LEVEL = "intermediate"

_EXERCISE_ITEM_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "sets": {"type": "number"},
        "reps": {"type": "string"},
        "rest": {"type": "number"},
        "rpe": {"type": "number"},
        "rir": {"type": "number"},
        "tips": {"type": "array", "items": {"type": "string"}},
        "commonMistakes": {"type": "array", "items": {"type": "string"}},
        "alternatives": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["name", "sets", "reps", "rest", "rpe", "rir", "tips", "commonMistakes", "alternatives"],
}

WEEKLY_SESSION_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "generate_training_session",
        "description": "Generate a complete training session",
        "parameters": {
            "type": "object",
            "properties": {
                "sessionName": {"type": "string"},
                "warmup": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of 3-5 warmup exercises with duration",
                },
                "exercises": {"type": "array", "items": _EXERCISE_ITEM_SCHEMA},
                "checklist": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Pre-session checklist with 3-5 items",
                },
                "coachNotes": {"type": "string", "description": "2-3 sentences of personalized coach advice"},
                "estimatedTime": {"type": "number", "description": "Estimated session duration in minutes"},
            },
            "required": ["sessionName", "warmup", "exercises", "checklist", "coachNotes", "estimatedTime"],
        },
    },
}

SINGLE_SESSION_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "generate_training_session",
        "description": "Génère une séance d'entraînement structurée",
        "parameters": {
            "type": "object",
            "properties": {"exercises": {"type": "array", "items": _EXERCISE_ITEM_SCHEMA}},
            "required": ["exercises"],
        },
    },
}


def _join(values: Optional[List[Any]], fallback: str) -> str:
    items = [str(v) for v in (values or []) if v not in (None, "")]
    return ", ".join(items) if items else fallback


def build_weekly_session_messages(
    session_number: int,
    session_type: str,
    duration: int,
    goals,
    preferences,
) -> List[Dict[str, str]]:
    level = getattr(preferences, "experience_level", None) or DEFAULT_EXPERIENCE_LEVEL

    system_prompt = f"""Tu es un coach sportif expert qui crée des programmes d'entraînement personnalisés.
Tu dois générer une séance complète et détaillée en français.

IMPORTANT: Tous les textes doivent être en français.

La séance doit inclure:
- Un nom descriptif de la séance
- Un échauffement spécifique (3-5 exercices avec durée)
- Une liste d'exercices principaux adaptés au niveau et à l'équipement disponible
- Une checklist pré-séance (3-5 items)
- Des notes personnalisées du coach (2-3 phrases encourageantes et techniques)
- Un temps estimé total

Chaque exercice doit inclure:
- Nombre de séries et répétitions adapté au niveau
- Temps de repos optimal
- RPE (Rate of Perceived Exertion) et RIR (Reps In Reserve) cibles
- 2-3 consignes techniques clés
- 2-3 erreurs fréquentes à éviter
- 2-3 exercices alternatifs

Adapte la difficulté selon le niveau: {level}"""

    user_prompt = f"""Génère la séance {session_number} de type "{session_type}" pour une semaine d'entraînement.

Profil utilisateur:
- Objectif: {goals.goal_type or 'non défini'}
- Niveau: {level}
- Lieu: {goals.location or 'non défini'}
- Équipement: {_join(goals.equipment, 'Équipement de base')}
- Durée cible: {duration} minutes
- Type de session préférée: {getattr(preferences, 'session_type', None) or 'strength'}
- Zones prioritaires: {_join(getattr(preferences, 'priority_zones', None), 'Aucune')}
- Limitations: {_join(getattr(preferences, 'limitations', None), 'Aucune')}
- Exercices à éviter: {getattr(preferences, 'exercises_to_avoid', None) or 'Aucun'}
- Exercices favoris: {getattr(preferences, 'favorite_exercises', None) or 'Aucun'}

Génère une séance complète et motivante !"""

    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


def build_single_session_messages(goals, prefs, history_count: int) -> List[Dict[str, str]]:
    system_prompt = f"""Tu es un coach sportif expert. Tu dois générer une séance d'entraînement personnalisée.

DONNÉES UTILISATEUR :
- Âge : {goals.age} ans
- Sexe : {goals.sex}
- Taille : {goals.height} cm
- Poids : {goals.weight} kg
- Objectif : {goals.goal_type}
- Niveau : {prefs.experience_level}
- Type de séance : {prefs.session_type}
- Split : {prefs.split_preference or 'non défini'}
- Fréquence : {goals.frequency} séances/semaine
- Durée : {goals.session_duration} minutes
- Lieu : {goals.location}
- Équipement : {_join(goals.equipment, 'aucun')}
- Zones prioritaires : {_join(prefs.priority_zones, 'équilibré')}
- Limitations : {_join(prefs.limitations, 'aucune')}
- Exercices favoris : {prefs.favorite_exercises or 'aucune préférence'}
- Exercices à éviter : {prefs.exercises_to_avoid or 'aucun'}
- Focus progression : {prefs.progression_focus or 'non défini'}
- Historique : {history_count} séances complétées

CONTRAINTES :
- Générer 5-7 exercices adaptés
- Respecter l'équipement disponible et le lieu
- Éviter les exercices contre-indiqués par les limitations
- Adapter l'intensité au niveau d'expérience
- Durée totale : {goals.session_duration} minutes (incluant échauffement et repos)

FORMAT DE RÉPONSE :
Chaque exercice doit avoir :
- name: Nom de l'exercice en français
- sets: Nombre de séries (2-5)
- reps: Répétitions ou durée (ex: "10-12", "30s", "max")
- rest: Temps de repos en secondes (30-180)
- rpe: Niveau d'effort perçu 1-10
- rir: Répétitions en réserve 0-4
- tips: 2-3 conseils d'exécution
- commonMistakes: 2-3 erreurs fréquentes
- alternatives: 2-3 exercices alternatifs"""

    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": "Génère une séance d'entraînement personnalisée pour cet utilisateur."},
    ]


def build_training_plan_prompts(answers: Dict[str, Any]):
    """Global weekly plan (structure only, no per-exercise coaching)."""
    system_prompt = (
        "Tu es un coach sportif professionnel certifié. Tu crées des programmes d'entraînement "
        "sûrs, progressifs et adaptés au profil. Réponds UNIQUEMENT avec un objet JSON valide, "
        "sans markdown ni commentaire. Tous les textes sont en français."
    )
    user_prompt = f"""Crée un programme d'entraînement hebdomadaire pour ce profil :
- Objectif : {answers.get('goal_type') or 'non défini'}
- Niveau : {answers.get('experience_level') or DEFAULT_EXPERIENCE_LEVEL}
- Fréquence : {answers.get('frequency') or 3} séances/semaine
- Durée : {answers.get('session_duration') or 60} minutes
- Lieu : {answers.get('location') or 'non défini'}
- Équipement : {_join(answers.get('equipment'), 'aucun')}
- Limitations : {_join(answers.get('limitations'), 'aucune')}

Format attendu :
{{
  "weeklyPlan": [
    {{"day": "Lundi", "focus": "string", "exercises": [{{"name": "string", "sets": 3, "reps": "10-12", "rest": 90}}]}}
  ],
  "progressionTips": ["string"],
  "notes": "string"
}}"""
    return system_prompt, user_prompt
