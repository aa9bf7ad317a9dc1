"""Default content used by the bootstrap seeds and as fallbacks for blank settings."""

DEFAULT_CONTACT_EMAIL = "contact@cecilartiste.com"
DEFAULT_HERO_IMAGE_URL = "https://i.postimg.cc/brcb2z8C/21314712-8c8f-4d76-829b-f9a4fc4ecb31.png"
DEFAULT_ACCENT_COLOR = "#ff6f61"
DEFAULT_PALETTE = "vibrant"
DEFAULT_PHOTO_TITLE = "Photographie du portfolio"
DEFAULT_MESSAGE_SUBJECT = "Autres"
FALLBACK_SLUG = "categorie"

DEFAULT_SETTINGS = {
    "contact_email": DEFAULT_CONTACT_EMAIL,
    "hero_intro_heading": "Qui suis-je ?",
    "hero_intro_subheading": "Cécile, photographe professionnelle à Amiens",
    "hero_intro_body": (
        "Artiste photographe spécialisée dans les univers colorés, j’immortalise vos histoires "
        "à Amiens et partout où elles me portent. Reportages de mariages, portraits signature ou "
        "projets professionnels : je me déplace en France et à l’international pour créer des "
        "images lumineuses qui vous ressemblent."
    ),
    "hero_intro_image_url": DEFAULT_HERO_IMAGE_URL,
}

# Seeded by name, in display order.
DEFAULT_CATEGORIES = [
    "Mariage",
    "Portrait",
    "Famille",
    "Grossesse & naissance",
    "Entreprise",
]

DEFAULT_EXPERIENCES = [
    {
        "title": "Reportage de mariage",
        "description": "Des préparatifs à la soirée, un récit lumineux et spontané de votre journée.",
        "icon": "💍",
    },
    {
        "title": "Portrait signature",
        "description": "Une séance guidée, en studio ou en extérieur, pour révéler votre personnalité.",
        "icon": "📸",
    },
    {
        "title": "Projets professionnels",
        "description": "Images de marque, portraits d'équipe et événements pour raconter votre activité.",
        "icon": "✨",
    },
]

DEFAULT_STUDIO_INSIGHTS = [
    {"stat_value": "180", "stat_caption": "mariages immortalisés", "data_count": 180},
    {"stat_value": "12", "stat_caption": "années d'expérience", "data_count": 12},
    {"stat_value": "950+", "stat_caption": "séances portrait", "data_count": 950},
]
