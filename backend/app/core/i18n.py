"""
Two-language message catalog (en-CA / fr-FR) for texts the coaching engine
emits itself. Model-generated text is localized by BilingualTextCache.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Optional

EN_CA = "en-CA"
FR_FR = "fr-FR"
SUPPORTED_LANGUAGES = (EN_CA, FR_FR)
DEFAULT_LANGUAGE = EN_CA

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

_CATALOG: Dict[str, Dict[str, str]] = {
    EN_CA: {
        "critical.title": "Critical Body Language Alert",
        "critical.fallback": "Critical body language issue detected.",
        "warning.title": "Body Language Tip",
        "warning.fallback": "Body language needs improvement.",
        "encouragement.title": "Looking Good",
        "encouragement.strong": "Everything's okay. Keep it up.",
        "encouragement.minor": "Everything looks good overall. Keep it up.",
        "setup.title": "Setup Required",
        "setup.message": "Please add your API key in the extension popup.",
        "error.title": "Analysis Error",
        "error.message": "Failed to analyze frame. Check your API key, provider, and network connection.",
        "meetingStart.title": "Meeting Monitoring Started",
        "meetingStart.message": "Live coaching is now tracking your meeting.",
        "meetingEndNotice.title": "Meeting Ended",
        "meetingEndNotice.message": "{minutes} minutes monitored. Summary report is ready.",
        "meetingEnd.title": "Meeting Monitoring Ended",
        "meetingEnd.withSummary": "Summary report is ready.",
        "meetingEnd.noData": "No analyzable frames captured this session.",
        "monitoringOff.title": "Monitoring Turned Off",
        "monitoringOff.message": "Live coaching is paused until you turn it back on.",
        "monitoringOn.title": "Monitoring Turned On",
        "monitoringOn.message": "Open your meeting to resume live coaching.",
        "recorderOffline.title": "Picture Saver Offline",
        "recorderOffline.message": "Start the local frame recorder to save camera pictures.",
        "recorderOnline.title": "Picture Saver Connected",
        "recorderOnline.message": "Frames are being saved by the local frame recorder.",
        "feed.defaultTitle": "Live coaching update",
    },
    FR_FR: {
        "critical.title": "Alerte critique de langage corporel",
        "critical.fallback": "Probleme critique de langage corporel detecte.",
        "warning.title": "Conseil de langage corporel",
        "warning.fallback": "Le langage corporel peut etre ameliore.",
        "encouragement.title": "Belle presence",
        "encouragement.strong": "Tout va bien. Continuez ainsi.",
        "encouragement.minor": "Tout semble bien dans l'ensemble. Continuez ainsi.",
        "setup.title": "Configuration requise",
        "setup.message": "Ajoutez votre cle API dans la fenetre de l'extension.",
        "error.title": "Erreur d'analyse",
        "error.message": "Echec de l'analyse de l'image. Verifiez votre cle API, le fournisseur et la connexion reseau.",
        "meetingStart.title": "Surveillance de reunion demarree",
        "meetingStart.message": "Le coaching en direct suit maintenant votre reunion.",
        "meetingEndNotice.title": "Reunion terminee",
        "meetingEndNotice.message": "{minutes} minutes surveillees. Le rapport de synthese est pret.",
        "meetingEnd.title": "Surveillance de reunion terminee",
        "meetingEnd.withSummary": "Le rapport de synthese est pret.",
        "meetingEnd.noData": "Aucune image analysable capturee pendant cette session.",
        "monitoringOff.title": "Surveillance desactivee",
        "monitoringOff.message": "Le coaching en direct est en pause jusqu'a sa reactivation.",
        "monitoringOn.title": "Surveillance activee",
        "monitoringOn.message": "Ouvrez votre reunion pour reprendre le coaching en direct.",
        "recorderOffline.title": "Enregistreur d'images hors ligne",
        "recorderOffline.message": "Demarrez l'enregistreur local pour sauvegarder les images de la camera.",
        "recorderOnline.title": "Enregistreur d'images connecte",
        "recorderOnline.message": "Les images sont sauvegardees par l'enregistreur local.",
        "feed.defaultTitle": "Mise a jour du coaching en direct",
    },
}


def resolve_language(language: Optional[str]) -> str:
    return FR_FR if language == FR_FR else EN_CA


def other_language(language: Optional[str]) -> str:
    return EN_CA if resolve_language(language) == FR_FR else FR_FR


def language_label(language: Optional[str]) -> str:
    """Human label used in translation instructions."""
    return "French" if resolve_language(language) == FR_FR else "Canadian English"


def t(language: Optional[str], key: str, **params: Any) -> str:
    resolved = resolve_language(language)
    template = _CATALOG[resolved].get(key) or _CATALOG[DEFAULT_LANGUAGE].get(key) or key
    return _PLACEHOLDER.sub(lambda m: str(params[m.group(1)]) if m.group(1) in params else "", template)


def t_all(key: str, **params: Any) -> Dict[str, str]:
    """Catalog text for every supported language."""
    return {language: t(language, key, **params) for language in SUPPORTED_LANGUAGES}
