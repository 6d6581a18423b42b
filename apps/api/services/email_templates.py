"""
Transactional email content (French).

Each builder returns an ``EmailContent`` rendered into the shared layout.
User-provided values are HTML-escaped before they are interpolated.
"""

from dataclasses import dataclass
from html import escape
from typing import List, Optional, Tuple

from core.config import settings
from services.energy_calculator import calculate_bmr

BRAND_NAME = "Pulse.ai"
DEFAULT_RECIPIENT_NAME = "Champion"

_GOAL_LABELS = {
    "lose_weight": "perdre du poids",
    "weight-loss": "perdre du poids",
    "gain_muscle": "prendre du muscle",
    "muscle-gain": "prendre du muscle",
    "maintain": "maintenir ta forme",
    "general-fitness": "maintenir ta forme",
    "general-health": "maintenir ta forme",
    "wellness": "maintenir ta forme",
    "improve_endurance": "améliorer ton endurance",
    "endurance": "améliorer ton endurance",
    "improve_strength": "gagner en force",
    "strength": "gagner en force",
}

_LEVEL_LABELS = {
    "beginner": "débutant",
    "intermediate": "intermédiaire",
    "advanced": "avancé",
}


@dataclass
class EmailContent:
    subject: str
    html: str
    text: str


@dataclass
class WeeklyStats:
    sessions_completed: int = 0
    total_sessions: int = 0
    weight_start: Optional[float] = None
    weight_end: Optional[float] = None
    nutrition_adherence: Optional[int] = None
    current_streak: int = 0
    goal_label: str = "atteindre tes objectifs"

    @property
    def adherence_percent(self) -> int:
        if self.total_sessions <= 0:
            return 0
        return round(self.sessions_completed / self.total_sessions * 100)

    @property
    def weight_change(self) -> Optional[float]:
        if self.weight_start is None or self.weight_end is None:
            return None
        return round(self.weight_end - self.weight_start, 1)


def translate_goal_type(goal_type: Optional[str]) -> str:
    return _GOAL_LABELS.get(goal_type or "", "atteindre tes objectifs")


def translate_experience_level(level: Optional[str]) -> str:
    return _LEVEL_LABELS.get(level or "", "motivé")


def app_url(path: str) -> str:
    return f"{settings.WEB_APP_BASE_URL.rstrip('/')}{path}"


def _button(text: str, url: str, primary: bool = True) -> str:
    if primary:
        style = (
            "display:inline-block;padding:16px 32px;border-radius:14px;background:#3B82F6;"
            "font-size:16px;font-weight:700;color:#ffffff;text-decoration:none"
        )
    else:
        style = "display:inline-block;padding:12px 24px;font-size:14px;font-weight:600;color:#3B82F6;text-decoration:none"
    return f'<p style="text-align:center;margin:20px 0"><a href="{escape(url)}" style="{style}">{escape(text)}</a></p>'


def _stats_row(stats: List[Tuple[str, str]]) -> str:
    cells = "".join(
        f'<td align="center" style="padding:12px"><div style="font-size:24px;font-weight:800;color:#0F172A">{escape(value)}</div>'
        f'<div style="font-size:12px;color:#64748B">{escape(label)}</div></td>'
        for label, value in stats
    )
    return f'<table role="presentation" width="100%" style="background:#F8FAFC;border-radius:16px;margin:16px 0"><tr>{cells}</tr></table>'


def render_layout(
    *,
    title: str,
    body_html: str,
    subtitle: Optional[str] = None,
    cta: Optional[Tuple[str, str]] = None,
    secondary_cta: Optional[Tuple[str, str]] = None,
    stats: Optional[List[Tuple[str, str]]] = None,
    footer_note: Optional[str] = None,
) -> str:
    """Shared HTML shell. ``title``, ``subtitle`` and ``footer_note`` are escaped here."""
    parts = [
        '<!DOCTYPE html><html lang="fr"><head><meta charset="utf-8"></head>',
        '<body style="margin:0;background:#F1F5F9;font-family:system-ui,-apple-system,Segoe UI,Roboto,Arial,sans-serif;color:#334155">',
        '<div style="max-width:600px;margin:0 auto;padding:24px">',
        f'<div style="text-align:center;padding:16px 0;font-size:22px;font-weight:800;color:#3B82F6">{BRAND_NAME}</div>',
        '<div style="background:#ffffff;border-radius:20px;padding:32px">',
        f'<h1 style="margin:0 0 8px;font-size:24px;color:#0F172A">{escape(title)}</h1>',
    ]
    if subtitle:
        parts.append(f'<p style="margin:0 0 16px;font-size:16px;color:#64748B">{escape(subtitle)}</p>')
    if stats:
        parts.append(_stats_row(stats))
    parts.append(body_html)
    if cta:
        parts.append(_button(cta[0], cta[1]))
    if secondary_cta:
        parts.append(_button(secondary_cta[0], secondary_cta[1], primary=False))
    parts.append("</div>")
    if footer_note:
        parts.append(f'<p style="text-align:center;font-size:13px;color:#64748B;margin:20px 0 0">{escape(footer_note)}</p>')
    parts.append(
        f'<p style="text-align:center;font-size:12px;color:#94A3B8;margin:12px 0">{BRAND_NAME} · '
        f'<a href="mailto:{escape(settings.SUPPORT_INBOX_EMAIL)}" style="color:#94A3B8">{escape(settings.SUPPORT_INBOX_EMAIL)}</a></p>'
    )
    parts.append("</div></body></html>")
    return "".join(parts)


def _list(items: List[str]) -> str:
    lis = "".join(f'<li style="margin-bottom:8px">{item}</li>' for item in items)
    return f'<ul style="margin:0;padding-left:20px">{lis}</ul>'


def welcome_email(name: Optional[str]) -> EmailContent:
    display = name or DEFAULT_RECIPIENT_NAME
    body = (
        "<p>Nous sommes ravis de t'accueillir dans la communauté Pulse-AI ! "
        "Tu viens de faire le premier pas vers une transformation complète.</p>"
        '<div style="background:#F9FAFB;border-left:4px solid #667EEA;padding:15px;margin:20px 0">'
        "<strong>🎁 Ta première séance est offerte !</strong><br>"
        "Découvre dès maintenant comment Pulse-AI personnalise ton entraînement.</div>"
        "<p><strong>Ce qui t'attend :</strong></p>"
        + _list([
            "🏋️ Plans d'entraînement 100% personnalisés",
            "🥗 Programmes nutrition adaptés à tes objectifs",
            "📊 Suivi de progression en temps réel",
            "🎯 Ajustements intelligents basés sur tes feedbacks",
        ])
    )
    html = render_layout(
        title=f"Bonjour {display} ! 👋",
        subtitle="Ton coach personnel sport + nutrition",
        body_html=body,
        cta=("Commencer mon entraînement 💪", app_url("/dashboard")),
        footer_note="Tu reçois cet email car tu viens de créer un compte sur Pulse-AI.",
    )
    text = (
        f"Bonjour {display} !\n\nBienvenue sur Pulse-AI. Ta première séance est offerte.\n"
        f"Commence ici : {app_url('/dashboard')}\n"
    )
    return EmailContent(subject="Bienvenue sur Pulse-AI ! 🎯", html=html, text=text)


def onboarding_day1_email(name: str, goal_label: str, level_label: str, frequency: int) -> EmailContent:
    body = (
        '<div style="background:#F0F9FF;border-radius:12px;padding:20px;margin:16px 0">'
        '<p style="margin:0 0 12px;font-weight:700;color:#0369A1">🎯 Ce qu\'Alex a prévu pour toi :</p>'
        + _list([
            f"<strong>{frequency} séances/semaine</strong> adaptées à ton niveau {escape(level_label)}",
            "<strong>Progression automatique</strong> basée sur tes retours post-séance",
            "<strong>Alternatives instantanées</strong> si un exercice ne te convient pas",
        ])
        + "</div>"
        '<p style="text-align:center;font-size:14px;color:#64748B"><em>💡 Astuce : après chaque séance, '
        "donne ton ressenti en 30 secondes pour qu'Alex ajuste la difficulté.</em></p>"
    )
    html = render_layout(
        title=f"Hey {name} ! 👋",
        subtitle=f"Alex, ton coach IA, a préparé un programme personnalisé pour {goal_label}.",
        body_html=body,
        cta=("Voir mon programme", app_url("/training")),
        footer_note="Alex analyse tes performances pour optimiser chaque séance.",
    )
    text = f"Hey {name} !\n\nAlex a préparé ta semaine : {frequency} séances. {app_url('/training')}\n"
    return EmailContent(subject=f"{name}, Alex t'a préparé ta semaine 💪", html=html, text=text)


def estimate_daily_targets(goals) -> Tuple[int, int]:
    """(calories, protein g) shown in the day-3 email. Mifflin-St Jeor, male constant."""
    weight = getattr(goals, "weight", None)
    bmr = calculate_bmr(weight, getattr(goals, "height", None), getattr(goals, "age", None), "male")
    calories = bmr if bmr is not None else 2000
    protein = round(weight * 1.8) if weight else 120
    return calories, protein


def onboarding_day3_email(name: str, goal_label: str, goals) -> EmailContent:
    calories, protein = estimate_daily_targets(goals)
    body = (
        '<p style="font-weight:700;color:#0F172A">🍽️ Ce que Julie peut faire pour toi :</p>'
        + _list([
            "Générer des <strong>recettes adaptées</strong> à tes restrictions",
            "Répondre à toutes tes <strong>questions nutrition</strong>",
            "T'aider à <strong>comprendre les étiquettes</strong> alimentaires",
        ])
    )
    html = render_layout(
        title=f"Salut {name} ! 🥗",
        subtitle=f"Je suis Julie, ta coach nutrition IA. J'ai analysé ton profil pour {goal_label}.",
        stats=[("CALORIES", str(calories)), ("PROTÉINES", f"{protein}g")],
        body_html=body,
        cta=("Parler à Julie", app_url("/coach-julie")),
        secondary_cta=("Voir mon plan nutrition →", app_url("/nutrition")),
        footer_note="Julie adapte ses conseils à tes préférences et allergies.",
    )
    text = f"Salut {name} !\n\nObjectifs estimés : {calories} kcal, {protein} g de protéines.\n{app_url('/coach-julie')}\n"
    return EmailContent(subject=f"{name}, Julie a calculé tes macros 🥗", html=html, text=text)


def onboarding_day7_email(name: str, goal_label: str, completed: int, total: int) -> EmailContent:
    total = total or 3
    adherence = round(completed / total * 100) if total > 0 else 0
    if completed >= total:
        encouragement = "🏆 Incroyable ! Tu as complété toutes tes séances !"
    elif completed >= 1:
        encouragement = "💪 Beau début ! Continue sur cette lancée."
    else:
        encouragement = "🚀 La semaine prochaine sera la tienne !"
    body = (
        '<div style="background:#FEF3C7;border-radius:12px;padding:20px;margin:16px 0;border-left:4px solid #F59E0B">'
        '<p style="margin:0;font-weight:600;color:#92400E">🔥 La régularité est la clé du succès. Chaque séance compte !</p></div>'
        + _list([
            "Tes séances s'<strong>adaptent automatiquement</strong> à tes retours",
            "N'oublie pas ton <strong>check-in hebdomadaire</strong> pour ajuster ton plan",
            "Discute avec <strong>Alex ou Julie</strong> si tu as des questions",
        ])
    )
    html = render_layout(
        title=f"Ta 1ère semaine, {name} ! 📊",
        subtitle=encouragement,
        stats=[
            ("Séances", f"{completed}/{total}"),
            ("Adhérence", f"{adherence}%"),
            ("Objectif", goal_label.split(" ")[0]),
        ],
        body_html=body,
        cta=("Voir ma prochaine séance", app_url("/training")),
        secondary_cta=("Faire mon check-in →", app_url("/training")),
        footer_note="On continue ensemble la semaine prochaine 💪",
    )
    text = f"{name}, ta 1ère semaine : {completed}/{total} séances ({adherence}%).\n{app_url('/training')}\n"
    return EmailContent(subject=f"{name}, ta 1ère semaine en résumé 📊", html=html, text=text)


def checkin_reminder_email(name: Optional[str]) -> EmailContent:
    display = name or DEFAULT_RECIPIENT_NAME
    body = (
        "<p><strong>2 minutes</strong> pour ajuster ton programme et maximiser tes résultats.</p>"
        + _list(["✅ Poids de la semaine", "✅ Adhérence nutrition", "✅ Difficulté des entraînements"])
        + '<p style="text-align:center;font-size:14px;color:#64748B">💡 Ton programme sera automatiquement '
        "ajusté en fonction de tes réponses.</p>"
    )
    html = render_layout(
        title=f"Hey {display} ! 👋",
        subtitle="C'est l'heure de ton check-in hebdomadaire !",
        body_html=body,
        cta=("Faire mon check-in →", app_url("/training")),
        footer_note="Le check-in prend moins de 2 minutes et aide Alex à optimiser tes séances.",
    )
    text = f"Hey {display} !\n\nTon check-in hebdomadaire t'attend : {app_url('/training')}\n"
    return EmailContent(subject=f"⏰ {display}, ton check-in t'attend !", html=html, text=text)


def _performance_message(adherence: int) -> str:
    if adherence >= 100:
        return "🏆 Semaine parfaite ! Tu es incroyable !"
    if adherence >= 75:
        return "🔥 Excellent travail cette semaine !"
    if adherence >= 50:
        return "💪 Beau travail, on continue !"
    if adherence > 0:
        return "🚀 Chaque séance compte, tu progresses !"
    return "👋 On reprend cette semaine ?"


def weekly_digest_email(name: Optional[str], stats: WeeklyStats) -> EmailContent:
    display = name or DEFAULT_RECIPIENT_NAME
    rows = [("Séances", f"{stats.sessions_completed}/{stats.total_sessions}")]
    change = stats.weight_change
    if change is not None and stats.weight_end is not None:
        if change == 0:
            change_text = "stable"
        elif change > 0:
            change_text = f"+{change} kg"
        else:
            change_text = f"{change} kg"
        rows.append(("Poids", f"{stats.weight_end} kg ({change_text})"))
    if stats.nutrition_adherence is not None:
        rows.append(("Nutrition", f"{stats.nutrition_adherence}%"))
    if stats.current_streak > 0:
        rows.append(("Streak", f"{stats.current_streak} {'séances' if stats.current_streak > 1 else 'séance'}"))

    performance = _performance_message(stats.adherence_percent)
    body = (
        f'<div style="text-align:center;padding:20px;background:#3B82F6;border-radius:16px;color:#ffffff;'
        f'font-size:18px;font-weight:700">{escape(performance)}</div>'
        '<div style="background:#FEF3C7;border-radius:12px;padding:16px;margin:20px 0;border-left:4px solid #F59E0B">'
        f'<p style="margin:0;font-size:14px;color:#92400E">💡 <strong>Objectif :</strong> {escape(stats.goal_label)}. '
        "Chaque effort compte pour y arriver !</p></div>"
    )
    html = render_layout(
        title="Ta semaine en un coup d'œil 📊",
        subtitle=f"Objectif : {stats.goal_label}",
        stats=rows,
        body_html=body,
        cta=("Voir ma prochaine séance", app_url("/training")),
        secondary_cta=("Faire mon check-in →", app_url("/training")),
        footer_note="On se retrouve la semaine prochaine pour ton prochain récap !",
    )
    text = "\n".join([f"{display}, ton récap' de la semaine :"] + [f"- {label} : {value}" for label, value in rows])
    return EmailContent(subject=f"{display}, ton récap' de la semaine 🔥", html=html, text=text)


def support_request_email(name: str, email: str, subject: str, message: str) -> EmailContent:
    """Message forwarded to the support inbox. Inputs are raw; escaped here."""
    safe_message = escape(message).replace("\n", "<br>")
    body = (
        f"<p><strong>De :</strong> {escape(name)} ({escape(email)})</p>"
        f"<p><strong>Sujet :</strong> {escape(subject)}</p><hr>"
        f"<p><strong>Message :</strong></p><p>{safe_message}</p>"
    )
    html = render_layout(title="Nouveau message de support", body_html=body)
    text = f"De : {name} ({email})\nSujet : {subject}\n\n{message}\n"
    return EmailContent(subject=f"[Support] {subject}", html=html, text=text)


def support_confirmation_email(name: str, message: str) -> EmailContent:
    safe_message = escape(message).replace("\n", "<br>")
    body = (
        "<p>Nous avons bien reçu votre message et nous vous répondrons dans les plus brefs délais.</p>"
        f"<p><strong>Votre message :</strong></p><p>{safe_message}</p><hr><p>L'équipe Pulse-AI</p>"
    )
    html = render_layout(title=f"Bonjour {name},", body_html=body)
    text = f"Bonjour {name},\n\nNous avons bien reçu votre message.\n\nL'équipe Pulse-AI\n"
    return EmailContent(subject="Nous avons bien reçu votre message", html=html, text=text)


def password_reset_email(name: Optional[str], link: str) -> EmailContent:
    display = name or DEFAULT_RECIPIENT_NAME
    minutes = settings.PASSWORD_RESET_TOKEN_TTL_MINUTES
    html = render_layout(
        title="Réinitialise ton mot de passe",
        subtitle=f"Bonjour {display}",
        body_html=(
            "<p>Tu as demandé à réinitialiser ton mot de passe Pulse-AI. "
            f"Le lien ci-dessous est valable {minutes} minutes.</p>"
        ),
        cta=("Choisir un nouveau mot de passe", link),
        footer_note="Si tu n'es pas à l'origine de cette demande, ignore simplement cet email.",
    )
    text = (
        f"Bonjour {display},\n\nPour choisir un nouveau mot de passe : {link}\n"
        f"Ce lien est valable {minutes} minutes.\n"
    )
    return EmailContent(subject="Réinitialisation de ton mot de passe Pulse-AI", html=html, text=text)
