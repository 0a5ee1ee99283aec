"""Internal constants shared across the library."""

TOPIC_GPS = "umbrella/gps"
TOPIC_STATUS = "umbrella/status"
TOPIC_SOS = "umbrella/sos"
TOPIC_WEATHER = "umbrella/weather"
TOPIC_EMAILS = "umbrella/emails"

#: Topics the relay subscribes to on every (re)connect.
DEVICE_TOPICS: tuple[str, ...] = (TOPIC_GPS, TOPIC_STATUS, TOPIC_SOS, TOPIC_WEATHER)

DEFAULT_BROKER_URL = "mqtt://broker.hivemq.com:1883"
MAP_LINK_BASE = "https://maps.google.com/?q="

SUBJECT_SOS = "\N{POLICE CARS REVOLVING LIGHT} Smart Umbrella SOS"
SUBJECT_WEATHER = "\N{WARNING SIGN}\N{VARIATION SELECTOR-16} Smart Umbrella Weather Alert"
SUBJECT_OTP = "Your Smart Umbrella OTP"


def map_link(latitude: float, longitude: float, base: str = MAP_LINK_BASE) -> str:
    """Build a map URL pointing at *latitude*, *longitude*."""
    return f"{base}{latitude},{longitude}"
