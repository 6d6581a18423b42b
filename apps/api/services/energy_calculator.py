"""
Energy Calculation Service

Body metrics used by the nutrition plan and the onboarding emails:
- BMI = weight_kg / (height_m)²
- BMR (Mifflin-St Jeor)
- TDEE = BMR × activity factor
"""
from typing import Optional

ACTIVITY_FACTORS = {
    "sedentary": 1.2,
    "light": 1.375,
    "moderate": 1.55,
    "active": 1.725,
    "very_active": 1.9,
}
DEFAULT_ACTIVITY_FACTOR = 1.55

# Daily calorie adjustment per goal type
GOAL_CALORIE_DELTA = {
    "weight-loss": -400,
    "lose_weight": -400,
    "muscle-gain": 300,
    "gain_muscle": 300,
}


def calculate_bmi(weight_kg: Optional[float], height_cm: Optional[float]) -> Optional[float]:
    """
    Calculate BMI from weight (kg) and height (cm).

    Returns:
        BMI rounded to 1 decimal place, or None if inputs are missing

    Examples:
        >>> calculate_bmi(70, 175)
        22.9
        >>> calculate_bmi(70, None)
    """
    if weight_kg is None or height_cm is None:
        return None
    if weight_kg <= 0 or height_cm <= 0:
        return None
    height_m = float(height_cm) / 100.0
    return round(float(weight_kg) / (height_m ** 2), 1)


def calculate_bmr(
    weight_kg: Optional[float],
    height_cm: Optional[float],
    age: Optional[int],
    sex: Optional[str],
) -> Optional[int]:
    """
    Mifflin-St Jeor basal metabolic rate (kcal/day).

    The sex constant is +5 for men and -161 for women; an unknown sex uses
    the male constant.
    """
    if not weight_kg or not height_cm:
        return None
    constant = -161 if (sex or "").lower() in ("female", "f", "femme") else 5
    return round(10 * weight_kg + 6.25 * height_cm - 5 * (age or 30) + constant)


def calculate_tdee(bmr: Optional[int], activity_level: Optional[str]) -> Optional[int]:
    if bmr is None:
        return None
    return round(bmr * ACTIVITY_FACTORS.get(activity_level or "", DEFAULT_ACTIVITY_FACTOR))


def target_calories(tdee: Optional[int], goal_type: Optional[str]) -> Optional[int]:
    if tdee is None:
        return None
    return tdee + GOAL_CALORIE_DELTA.get(goal_type or "", 0)


def calories_from_macros(protein_g: float, carbs_g: float, fats_g: float) -> int:
    """4 kcal/g for protein and carbs, 9 kcal/g for fat."""
    return round(4 * protein_g + 4 * carbs_g + 9 * fats_g)
