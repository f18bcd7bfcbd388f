"""Structure de champs par défaut d'un nouvel utilisateur (modèle de CV long)."""

from __future__ import annotations

from cvfields.domain.entities import FieldType, UserDataField, utcnow_iso

# (id = tag, libellé, type)
DEFAULT_FIELDS: list[tuple[str, str, FieldType]] = [
    # Informations personnelles
    ("photo", "Photo", "image"),
    ("name", "Nom", "text"),
    ("firstname", "Prénom", "text"),
    ("email", "Email", "text"),
    ("phone", "Téléphone", "text"),
    ("address", "Adresse", "text"),
    ("birthdate", "Date de naissance", "date"),
    ("nationality", "Nationalité", "text"),
    ("linkedin", "LinkedIn", "url"),
    ("website", "Site web / Portfolio", "url"),
    # Profil
    ("summary", "Résumé professionnel / Profil", "text"),
    ("objective", "Objectif professionnel", "text"),
    # Parcours
    ("experience", "Expériences professionnelles", "text"),
    ("current_position", "Poste actuel", "text"),
    ("education", "Formations", "text"),
    ("degrees", "Diplômes", "text"),
    # Compétences
    ("skills", "Compétences techniques", "text"),
    ("soft_skills", "Compétences comportementales / Soft skills", "text"),
    ("technical_skills", "Compétences techniques détaillées", "text"),
    ("tools", "Outils et technologies", "text"),
    ("languages", "Langues", "text"),
    # Divers
    ("certifications", "Certifications", "text"),
    ("projects", "Projets", "text"),
    ("publications", "Publications", "text"),
    ("references", "Références", "text"),
    ("interests", "Centres d'intérêt", "text"),
    ("additional_info", "Informations complémentaires", "text"),
    ("availability", "Disponibilité", "text"),
    ("mobility", "Mobilité", "text"),
]


def default_fields(base_language: str = "fr") -> list[UserDataField]:
    """Champs vides de la structure par défaut, tous dans `base_language`."""
    now = utcnow_iso()
    return [
        UserDataField(
            id=field_id,
            name=name,
            tag=field_id,
            type=field_type,
            base_language=base_language,
            created_at=now,
            updated_at=now,
        )
        for field_id, name, field_type in DEFAULT_FIELDS
    ]
