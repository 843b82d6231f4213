"""iwmenu - Internationalization translations.

Provides menu labels, prompts and notification texts for 4 languages:
English, Spanish, French and German.
"""

import locale
import os

TRANSLATIONS = {
    'English': {
        'scan': 'Scan',
        'scanning': 'Scanning...',
        'known_networks': 'Known Networks',
        'hidden_network': 'Connect to Hidden Network',
        'settings': 'Settings',
        'enable_autoconnect': 'Enable Autoconnect',
        'disable_autoconnect': 'Disable Autoconnect',
        'forget_network': 'Forget Network',
        'disable_adapter': 'Disable Adapter',
        'switch_mode_to_ap': 'Switch to Access Point Mode',
        'switch_mode_to_station': 'Switch to Station Mode',
        'power_on_device': 'Power On Device',
        'start_ap': 'Start AP',
        'stop_ap': 'Stop AP',
        'set_ssid': 'Set SSID',
        'set_password': 'Set Password',
        'select_adapter': 'Select adapter',
        'passphrase_prompt': 'Passphrase for {ssid}',
        'username_prompt': 'Username for {ssid}',
        'password_prompt': 'Password for {ssid}',
        'ssid_prompt': 'Enter SSID',
        'ap_password_prompt': 'Enter password',
        'hidden_ssid_prompt': 'Hidden network SSID',
        'scan_started': 'Scanning for networks...',
        'scan_finished': 'Scan completed',
        'connected': 'Connected to {ssid}',
        'connect_failed': 'Failed to connect to {ssid}: {reason}',
        'disconnected': 'Disconnected from {ssid}',
        'forgot': 'Forgot {ssid}',
        'autoconnect_enabled': 'Autoconnect enabled for {ssid}',
        'autoconnect_disabled': 'Autoconnect disabled for {ssid}',
        'adapter_enabled': 'Adapter enabled',
        'adapter_disabled': 'Adapter disabled',
        'adapter_remains_disabled': 'Adapter remains disabled',
        'ap_started': 'Access Point {ssid} started',
        'ap_stopped': 'Access Point stopped',
        'ap_failed': 'Failed to start Access Point: {reason}',
        'mode_switched': 'Switched to {mode} mode',
        'no_adapter': 'No wireless adapter found',
        'timed_out': 'timed out',
        'operation_failed': 'Operation failed: {reason}',
    },

    'Español': {
        'scan': 'Buscar',
        'scanning': 'Buscando...',
        'known_networks': 'Redes conocidas',
        'hidden_network': 'Conectar a red oculta',
        'settings': 'Ajustes',
        'enable_autoconnect': 'Activar conexión automática',
        'disable_autoconnect': 'Desactivar conexión automática',
        'forget_network': 'Olvidar red',
        'disable_adapter': 'Desactivar adaptador',
        'switch_mode_to_ap': 'Cambiar a modo punto de acceso',
        'switch_mode_to_station': 'Cambiar a modo estación',
        'power_on_device': 'Encender dispositivo',
        'start_ap': 'Iniciar AP',
        'stop_ap': 'Detener AP',
        'set_ssid': 'Definir SSID',
        'set_password': 'Definir contraseña',
        'select_adapter': 'Seleccionar adaptador',
        'passphrase_prompt': 'Contraseña para {ssid}',
        'username_prompt': 'Usuario para {ssid}',
        'password_prompt': 'Contraseña para {ssid}',
        'ssid_prompt': 'Introducir SSID',
        'ap_password_prompt': 'Introducir contraseña',
        'hidden_ssid_prompt': 'SSID de la red oculta',
        'scan_started': 'Buscando redes...',
        'scan_finished': 'Búsqueda completada',
        'connected': 'Conectado a {ssid}',
        'connect_failed': 'No se pudo conectar a {ssid}: {reason}',
        'disconnected': 'Desconectado de {ssid}',
        'forgot': '{ssid} olvidada',
        'autoconnect_enabled': 'Conexión automática activada para {ssid}',
        'autoconnect_disabled': 'Conexión automática desactivada para {ssid}',
        'adapter_enabled': 'Adaptador activado',
        'adapter_disabled': 'Adaptador desactivado',
        'adapter_remains_disabled': 'El adaptador sigue desactivado',
        'ap_started': 'Punto de acceso {ssid} iniciado',
        'ap_stopped': 'Punto de acceso detenido',
        'ap_failed': 'No se pudo iniciar el punto de acceso: {reason}',
        'mode_switched': 'Cambiado a modo {mode}',
        'no_adapter': 'No se encontró ningún adaptador inalámbrico',
        'timed_out': 'tiempo agotado',
        'operation_failed': 'La operación falló: {reason}',
    },

    'Français': {
        'scan': 'Rechercher',
        'scanning': 'Recherche...',
        'known_networks': 'Réseaux connus',
        'hidden_network': 'Se connecter à un réseau masqué',
        'settings': 'Paramètres',
        'enable_autoconnect': 'Activer la connexion automatique',
        'disable_autoconnect': 'Désactiver la connexion automatique',
        'forget_network': 'Oublier le réseau',
        'disable_adapter': "Désactiver l'adaptateur",
        'switch_mode_to_ap': "Passer en mode point d'accès",
        'switch_mode_to_station': 'Passer en mode station',
        'power_on_device': "Allumer l'appareil",
        'start_ap': 'Démarrer le PA',
        'stop_ap': 'Arrêter le PA',
        'set_ssid': 'Définir le SSID',
        'set_password': 'Définir le mot de passe',
        'select_adapter': 'Choisir un adaptateur',
        'passphrase_prompt': 'Phrase secrète pour {ssid}',
        'username_prompt': "Nom d'utilisateur pour {ssid}",
        'password_prompt': 'Mot de passe pour {ssid}',
        'ssid_prompt': 'Saisir le SSID',
        'ap_password_prompt': 'Saisir le mot de passe',
        'hidden_ssid_prompt': 'SSID du réseau masqué',
        'scan_started': 'Recherche de réseaux...',
        'scan_finished': 'Recherche terminée',
        'connected': 'Connecté à {ssid}',
        'connect_failed': 'Échec de la connexion à {ssid} : {reason}',
        'disconnected': 'Déconnecté de {ssid}',
        'forgot': '{ssid} oublié',
        'autoconnect_enabled': 'Connexion automatique activée pour {ssid}',
        'autoconnect_disabled': 'Connexion automatique désactivée pour {ssid}',
        'adapter_enabled': 'Adaptateur activé',
        'adapter_disabled': 'Adaptateur désactivé',
        'adapter_remains_disabled': "L'adaptateur reste désactivé",
        'ap_started': "Point d'accès {ssid} démarré",
        'ap_stopped': "Point d'accès arrêté",
        'ap_failed': "Impossible de démarrer le point d'accès : {reason}",
        'mode_switched': 'Passage en mode {mode}',
        'no_adapter': 'Aucun adaptateur sans fil trouvé',
        'timed_out': 'délai dépassé',
        'operation_failed': "L'opération a échoué : {reason}",
    },

    'Deutsch': {
        'scan': 'Suchen',
        'scanning': 'Suche läuft...',
        'known_networks': 'Bekannte Netzwerke',
        'hidden_network': 'Mit verstecktem Netzwerk verbinden',
        'settings': 'Einstellungen',
        'enable_autoconnect': 'Automatisch verbinden aktivieren',
        'disable_autoconnect': 'Automatisch verbinden deaktivieren',
        'forget_network': 'Netzwerk vergessen',
        'disable_adapter': 'Adapter deaktivieren',
        'switch_mode_to_ap': 'In den Access-Point-Modus wechseln',
        'switch_mode_to_station': 'In den Station-Modus wechseln',
        'power_on_device': 'Gerät einschalten',
        'start_ap': 'AP starten',
        'stop_ap': 'AP stoppen',
        'set_ssid': 'SSID festlegen',
        'set_password': 'Passwort festlegen',
        'select_adapter': 'Adapter auswählen',
        'passphrase_prompt': 'Passphrase für {ssid}',
        'username_prompt': 'Benutzername für {ssid}',
        'password_prompt': 'Passwort für {ssid}',
        'ssid_prompt': 'SSID eingeben',
        'ap_password_prompt': 'Passwort eingeben',
        'hidden_ssid_prompt': 'SSID des versteckten Netzwerks',
        'scan_started': 'Suche nach Netzwerken...',
        'scan_finished': 'Suche abgeschlossen',
        'connected': 'Verbunden mit {ssid}',
        'connect_failed': 'Verbindung mit {ssid} fehlgeschlagen: {reason}',
        'disconnected': 'Verbindung zu {ssid} getrennt',
        'forgot': '{ssid} vergessen',
        'autoconnect_enabled': 'Automatisch verbinden für {ssid} aktiviert',
        'autoconnect_disabled': 'Automatisch verbinden für {ssid} deaktiviert',
        'adapter_enabled': 'Adapter aktiviert',
        'adapter_disabled': 'Adapter deaktiviert',
        'adapter_remains_disabled': 'Adapter bleibt deaktiviert',
        'ap_started': 'Access Point {ssid} gestartet',
        'ap_stopped': 'Access Point gestoppt',
        'ap_failed': 'Access Point konnte nicht gestartet werden: {reason}',
        'mode_switched': 'In den Modus {mode} gewechselt',
        'no_adapter': 'Kein WLAN-Adapter gefunden',
        'timed_out': 'Zeitüberschreitung',
        'operation_failed': 'Vorgang fehlgeschlagen: {reason}',
    },
}


def detect_system_language():
    """Detect the system language from environment variables.

    Returns:
        The language name matching available translations, or 'English'.
    """
    lang_code = None
    for var in ['LC_ALL', 'LC_MESSAGES', 'LANG', 'LANGUAGE']:
        lang_code = os.environ.get(var)
        if lang_code:
            break

    if not lang_code:
        lang_tuple = locale.getlocale()
        if lang_tuple and lang_tuple[0]:
            lang_code = lang_tuple[0]

    if not lang_code:
        return 'English'

    lang_prefix = lang_code.split('_')[0].split('.')[0].lower()

    lang_map = {
        'en': 'English',
        'es': 'Español',
        'fr': 'Français',
        'de': 'Deutsch',
    }

    return lang_map.get(lang_prefix, 'English')


def resolve_language(language=None):
    """Map a configured language (name or code) onto a TRANSLATIONS key."""
    if not language:
        return detect_system_language()
    if language in TRANSLATIONS:
        return language
    prefix = language.split('_')[0].split('.')[0].lower()
    return {
        'en': 'English',
        'es': 'Español',
        'fr': 'Français',
        'de': 'Deutsch',
    }.get(prefix, 'English')


def get_text(key, language='English', **fmt):
    """Retrieve a translated string for the given key and language.

    Args:
        key: The translation key to look up.
        language: The language name (default: 'English').
        **fmt: Values substituted into the string's {fields}.

    Returns:
        The translated string, or the English fallback, or the key itself.
    """
    lang_dict = TRANSLATIONS.get(language, TRANSLATIONS['English'])
    text = lang_dict.get(key, TRANSLATIONS['English'].get(key, key))
    return text.format(**fmt) if fmt else text
