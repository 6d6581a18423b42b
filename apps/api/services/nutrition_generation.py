"""
Nutrition generators backed by the LLM gateway: daily nutrition plan, single
meal from target macros, and the health-data reformatter used on the profile
page. Every model answer is a JSON object (fences stripped before parsing).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from models import Goals
from services import llm_gateway
from services.energy_calculator import (
    calculate_bmi,
    calculate_bmr,
    calculate_tdee,
    calories_from_macros,
    target_calories,
)

logger = logging.getLogger(__name__)

MEAL_CATEGORY_LABELS = {
    "breakfast": "petit-déjeuner",
    "lunch": "déjeuner",
    "dinner": "dîner",
    "snack": "snack",
}
MEAL_TYPE_LABELS = {"sweet": "sucré", "savory": "salé"}

HEALTH_DATA_DEFAULTS = {
    "allergies": (
        "Aucune allergie alimentaire déclarée. Tu peux profiter d'une alimentation variée "
        "sans restriction particulière."
    ),
    "restrictions": (
        "Aucune restriction alimentaire spécifique. Ton plan inclura tous les groupes d'aliments."
    ),
    "healthConditions": (
        "Aucune condition particulière signalée. Programme basé sur les recommandations standard."
    ),
}


def _join(values, fallback: str) -> str:
    items = [str(v) for v in (values or []) if v not in (None, "")]
    return ", ".join(items) if items else fallback


def compute_energy_baseline(goals: Goals) -> Dict[str, Optional[int]]:
    bmr = calculate_bmr(goals.weight, goals.height, goals.age, goals.sex)
    tdee = calculate_tdee(bmr, goals.activity_level)
    return {
        "bmi": calculate_bmi(goals.weight, goals.height),
        "bmr": bmr,
        "tdee": tdee,
        "targetCalories": target_calories(tdee, goals.goal_type),
    }


def build_nutrition_plan_prompt(goals: Goals, baseline: Dict[str, Optional[int]]) -> str:
    target_loss = f"\n- Objectif de perte: {goals.target_weight_loss} kg" if goals.target_weight_loss else ""
    return f"""Tu es un expert en nutrition sportive. Génère un plan nutritionnel personnalisé détaillé.

INFORMATIONS UTILISATEUR:
- Objectif: {goals.goal_type}
- Âge: {goals.age} ans
- Sexe: {goals.sex}
- Poids: {goals.weight} kg
- Taille: {goals.height} cm
- Niveau d'activité: {goals.activity_level}
- Fréquence d'entraînement: {goals.frequency}x/semaine
- Repas par jour: {goals.meals_per_day}
- Petit-déjeuner: {'Oui' if goals.has_breakfast else 'Non'}
- Restrictions alimentaires: {_join(goals.restrictions, 'Aucune')}
- Allergies: {_join(goals.allergies, 'Aucune')}{target_loss}

REPÈRES CALCULÉS (Mifflin-St Jeor):
- BMR: {baseline.get('bmr') or 'inconnu'} kcal
- TDEE: {baseline.get('tdee') or 'inconnu'} kcal
- Calories cibles suggérées: {baseline.get('targetCalories') or 'inconnues'} kcal

INSTRUCTIONS:
1. Vérifie le BMR et le TDEE
2. Détermine l'objectif calorique selon le but (déficit/maintien/surplus)
3. Calcule les macros optimales (protéines, glucides, lipides)
4. Génère un plan de repas type pour une journée
5. Fournis des recommandations pratiques

Réponds UNIQUEMENT avec un JSON structuré comme ceci (pas de markdown, juste le JSON pur):
{{
  "bmi": number,
  "bmr": number,
  "tdee": number,
  "targetCalories": number,
  "macros": {{"protein": number, "carbs": number, "fats": number}},
  "mealPlan": [
    {{"name": "Petit-déjeuner", "time": "07h00", "calories": number, "foods": ["aliment (quantité)"]}}
  ],
  "recommendations": ["conseil 1", "conseil 2", "conseil 3"]
}}"""


def generate_nutrition_plan(goals: Goals) -> Dict[str, Any]:
    baseline = compute_energy_baseline(goals)
    plan = llm_gateway.complete_json(
        build_nutrition_plan_prompt(goals, baseline),
        "Génère le plan nutritionnel maintenant.",
        temperature=0.7,
    )
    # Fill what the model left out from the local computation.
    for key, value in baseline.items():
        if plan.get(key) is None and value is not None:
            plan[key] = value
    plan.setdefault("macros", {})
    plan.setdefault("mealPlan", [])
    plan.setdefault("recommendations", [])
    return plan


def build_meal_prompt(protein: float, carbs: float, fats: float, meal_type: str, category: str, calories: int) -> str:
    return f"""Tu es un nutritionniste expert. Génère un repas {MEAL_TYPE_LABELS[meal_type]} pour le {MEAL_CATEGORY_LABELS[category]} avec exactement ces macros : {protein:g}g protéines, {carbs:g}g glucides, {fats:g}g lipides (environ {calories} kcal).

Réponds UNIQUEMENT avec un objet JSON valide dans ce format exact :
{{
  "name": "Nom du repas",
  "description": "Description courte et appétissante",
  "ingredients": ["ingredient 1 avec quantité", "ingredient 2 avec quantité"],
  "instructions": ["étape 1", "étape 2"],
  "macros": {{"protein": {protein:g}, "carbs": {carbs:g}, "fats": {fats:g}, "calories": {calories}}}
}}

Règles strictes :
- Le repas doit être réaliste, équilibré et savoureux
- Les quantités d'ingrédients doivent correspondre précisément aux macros demandées
- Liste 5-8 ingrédients maximum
- 3-5 étapes de préparation maximum
- Adapte la complexité au type de repas
- Pas de markdown, juste le JSON brut"""


def generate_meal(protein: float, carbs: float, fats: float, meal_type: str, category: str) -> Dict[str, Any]:
    calories = calories_from_macros(protein, carbs, fats)
    logger.info(
        "Generating meal",
        extra={"extra_fields": {"protein": protein, "carbs": carbs, "fats": fats, "type": meal_type, "category": category}},
    )
    meal = llm_gateway.complete_json(
        build_meal_prompt(protein, carbs, fats, meal_type, category, calories),
        f"Génère un repas {MEAL_TYPE_LABELS[meal_type]} pour le {MEAL_CATEGORY_LABELS[category]}",
    )
    macros = meal.get("macros") if isinstance(meal.get("macros"), dict) else {}
    macros.setdefault("protein", protein)
    macros.setdefault("carbs", carbs)
    macros.setdefault("fats", fats)
    macros.setdefault("calories", calories)
    meal["macros"] = macros
    return meal


def build_health_data_prompt(allergies: str, restrictions: str, health_conditions: str) -> str:
    return f"""Tu es un assistant nutrition/santé expert. Reformate les informations suivantes de manière claire, professionnelle et DÉTAILLÉE.

DONNÉES À REFORMATER :
- Allergies : "{allergies or 'Aucune'}"
- Restrictions : "{restrictions or 'Aucune'}"
- Conditions de santé : "{health_conditions or 'Aucune'}"

Pour les ALLERGIES : type, aliments à éviter absolument, formes cachées possibles, 2-3 alternatives.
Pour les RESTRICTIONS : régime exact, catégories d'aliments concernées, carences à surveiller, sources alternatives.
Pour les CONDITIONS DE SANTÉ : reformulation précise, implications nutritionnelles, nutriments à privilégier et à limiter.

IMPORTANT : Chaque réponse doit faire 2-4 phrases complètes et informatives.

Réponds UNIQUEMENT en JSON avec cette structure exacte :
{{
  "allergies": "...",
  "restrictions": "...",
  "healthConditions": "..."
}}

Si un champ est vide ou "Aucune", réponds avec une phrase rassurante :
- allergies: "{HEALTH_DATA_DEFAULTS['allergies']}"
- restrictions: "{HEALTH_DATA_DEFAULTS['restrictions']}"
- healthConditions: "{HEALTH_DATA_DEFAULTS['healthConditions']}"
"""


def format_health_data(allergies: str, restrictions: str, health_conditions: str) -> Dict[str, str]:
    formatted = llm_gateway.complete_json(
        build_health_data_prompt(allergies, restrictions, health_conditions),
        "Formate ces données de santé de manière professionnelle et détaillée.",
    )
    return {key: str(formatted.get(key) or default) for key, default in HEALTH_DATA_DEFAULTS.items()}
