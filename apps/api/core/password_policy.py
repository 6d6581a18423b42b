"""
Password policy validation.

Requirements:
- 8 to 72 characters (bcrypt limit)
- At least one letter and one digit
- Not in the common password blocklist
"""
import re
from typing import Tuple, List

COMMON_PASSWORDS = {
    "password", "password1", "password123", "123456", "12345678", "1234567890",
    "qwerty", "qwerty123", "azerty", "azerty123", "abc123", "letmein", "welcome",
    "motdepasse", "soleil", "bonjour", "admin", "admin123", "iloveyou", "jetaime",
    "passw0rd", "p@ssw0rd", "fitness", "fitness123", "musculation", "pulse", "pulse123",
}


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """Return (is_valid, list_of_error_messages)."""
    errors = []

    if len(password) < 8:
        errors.append("Le mot de passe doit contenir au moins 8 caractères")

    if len(password) > 72:
        errors.append("Le mot de passe ne doit pas dépasser 72 caractères")

    if not re.search(r'[A-Za-zÀ-ÿ]', password):
        errors.append("Le mot de passe doit contenir au moins une lettre")

    if not re.search(r'\d', password):
        errors.append("Le mot de passe doit contenir au moins un chiffre")

    if password.lower() in COMMON_PASSWORDS:
        errors.append("Ce mot de passe est trop courant")

    return len(errors) == 0, errors
