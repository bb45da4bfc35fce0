"""
Internationalization (i18n) module for the domain intelligence system.

Provides translations for all user-facing messages in German (de) and English (en).
"""

from typing import Optional


SUPPORTED_LANGUAGES = frozenset({"de", "en"})
DEFAULT_LANGUAGE = "en"


# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    # Domain validation messages
    "validation.invalid_input": {
        "de": "Ungültige Eingabe",
        "en": "Invalid Input",
    },
    "validation.empty_input": {
        "de": "Bitte eine Domain eingeben",
        "en": "Please enter a domain",
    },
    "validation.forbidden_chars": {
        "de": "Domain enthält ungültige Zeichen",
        "en": "Domain contains forbidden characters",
    },
    "validation.missing_dot": {
        "de": "Domain muss mindestens einen Punkt enthalten",
        "en": "Domain must contain at least one dot",
    },
    "validation.idna_error": {
        "de": "IDNA-Kodierung fehlgeschlagen: {error}",
        "en": "IDNA encoding failed: {error}",
    },

    # Scan lifecycle
    "scan.started": {
        "de": "Analyse gestartet für {domain}",
        "en": "Scanning {domain}",
    },
    "scan.complete": {
        "de": "Analyse abgeschlossen",
        "en": "Scan Complete",
    },
    "scan.failed": {
        "de": "Analyse fehlgeschlagen: {error}",
        "en": "Scan Failed: {error}",
    },

    # Metadata errors
    "metadata.timeout": {
        "de": "Zeitüberschreitung beim Abrufen der Metadaten (erneut versuchen oder die Website ist langsam)",
        "en": "Request timed out while fetching metadata (try again or website may be slow)",
    },
    "metadata.failed": {
        "de": "Metadaten konnten nicht abgerufen werden",
        "en": "Failed to fetch metadata",
    },

    # Record section headings
    "section.scan": {
        "de": "Domain-Analyse",
        "en": "Domain Analysis",
    },
    "section.reputation": {
        "de": "Reputation",
        "en": "Reputation",
    },
    "section.metadata": {
        "de": "Seiten-Metadaten",
        "en": "Page Metadata",
    },

    # Field labels
    "label.domain": {"de": "Domain", "en": "Domain"},
    "label.created": {"de": "Erstellt", "en": "Created"},
    "label.expires": {"de": "Läuft ab", "en": "Expires"},
    "label.domain_age": {"de": "Domain-Alter", "en": "Domain Age"},
    "label.registrar": {"de": "Registrar", "en": "Registrar"},
    "label.name_servers": {"de": "Nameserver", "en": "Name Servers"},
    "label.ip_address": {"de": "IP-Adresse", "en": "IP Address"},
    "label.location": {"de": "Standort", "en": "Location"},
    "label.isp": {"de": "Provider", "en": "ISP"},
    "label.abuse_score": {"de": "Missbrauchswert", "en": "Abuse Score"},
    "label.vpn_proxy": {"de": "VPN/Proxy", "en": "VPN/Proxy"},
    "label.risk_level": {"de": "Risikostufe", "en": "Risk Level"},
    "label.analysis_stats": {"de": "Analyse-Statistik", "en": "Analysis Stats"},
    "label.title": {"de": "Titel", "en": "Title"},
    "label.description": {"de": "Beschreibung", "en": "Description"},
    "label.completeness": {"de": "Vollständigkeit", "en": "Completeness"},
    "label.error": {"de": "Fehler", "en": "Error"},
    "label.yes": {"de": "Ja", "en": "Yes"},
    "label.no": {"de": "Nein", "en": "No"},

    # Key rotation
    "keys.none_configured": {
        "de": "Keine IPQS-API-Schlüssel konfiguriert",
        "en": "No IPQS API keys configured",
    },
    "keys.status_line": {
        "de": "Schlüssel {index}: {key} - {status}",
        "en": "Key {index}: {key} - {status}",
    },
    "keys.selected": {
        "de": "Aktiver Schlüssel: {index}",
        "en": "Active key: {index}",
    },

    # Configuration
    "config.written": {
        "de": "Konfiguration geschrieben nach {path}",
        "en": "Configuration written to {path}",
    },
    "config.load_failed": {
        "de": "Konfiguration konnte nicht geladen werden: {error}",
        "en": "Failed to load configuration: {error}",
    },
    "config.save_failed": {
        "de": "Konfiguration konnte nicht gespeichert werden: {error}",
        "en": "Failed to save configuration: {error}",
    },
    "config.not_found": {
        "de": "Keine Konfiguration unter {path}; mit 'config init' anlegen",
        "en": "No configuration at {path}; create one with 'config init'",
    },
    "config.exists": {
        "de": "Konfiguration {path} existiert bereits (--force zum Überschreiben)",
        "en": "Configuration {path} already exists (--force to overwrite)",
    },
    "config.source": {
        "de": "Konfiguration aus {path}",
        "en": "Configuration from {path}",
    },

    # Proxy server
    "server.starting": {
        "de": "Proxy-Server startet auf {host}:{port}",
        "en": "Proxy server starting on {host}:{port}",
    },
}


def get_message(
    key: str,
    language: Optional[str] = None,
    **kwargs,
) -> str:
    """
    Get a translated message by key.

    Args:
        key: The message key (e.g., 'scan.failed')
        language: Language code ('de' or 'en'). Defaults to DEFAULT_LANGUAGE.
        **kwargs: Format arguments for the message template

    Returns:
        The translated and formatted message string.
        Unknown keys are returned as-is; unknown languages fall back to
        DEFAULT_LANGUAGE.

    Examples:
        >>> get_message('scan.complete', 'en')
        'Scan Complete'
        >>> get_message('scan.failed', 'de', error='timeout')
        'Analyse fehlgeschlagen: timeout'
    """
    if language is None or language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language) or translations.get(DEFAULT_LANGUAGE)
    if message is None:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except KeyError:
            pass

    return message


def get_missing_translations(language: str) -> set[str]:
    """Message keys that have no translation for `language`."""
    return {key for key, translations in TRANSLATIONS.items() if language not in translations}


def validate_translations() -> dict[str, set[str]]:
    """Map each supported language to its missing message keys."""
    return {language: get_missing_translations(language) for language in SUPPORTED_LANGUAGES}
