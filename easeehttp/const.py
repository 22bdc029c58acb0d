"""Constants for the Easee HTTP python library."""

USER_AGENT = "python-easee-http"

API_URL = "https://api.easee.com/api"
SIGNALR_URL = "https://streams.easee.com/hubs/chargers"

LOGIN = "/accounts/login"
REFRESH_TOKEN = "/accounts/refresh_token"

DEFAULT_TIMEOUT = 10
DEFAULT_RECONNECT_INTERVAL = 3
MAX_REFRESH_RETRIES = 5
MAX_LOGIN_RETRIES = 5

# Token lifecycle, all values in seconds
SAFETY_MARGIN = 60
MIN_BUFFER_TIME = 300
EARLY_RENEWAL_THRESHOLD = 600
RENEWAL_PERCENTAGE = 0.75
REFRESH_BACKOFF = 2
AUTH_WAIT_TIMEOUT = 30
FALLBACK_LIFETIME = 900

FIRST_CHECK_DELAY = 2
CHECK_INVALID_CREDENTIALS = 300
CHECK_NO_TOKEN = 60
CHECK_MIN = 30
CHECK_MAX = 300

MIN_PASSWORD_LENGTH = 6

CHARGER = "charger"
SITE = "site"
CIRCUIT = "circuit"
