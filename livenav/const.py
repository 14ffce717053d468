DOMAIN = "livenav"
VERSION = "0.3.0"

# Provider endpoints
GEOCODE_API_URL = "https://maps.googleapis.com/maps/api/geocode/json"
DIRECTIONS_API_URL = "https://maps.googleapis.com/maps/api/directions/json"
SEARCH_API_URL = "https://geocode.maps.co/search"

REQUEST_TIMEOUT = 10  # seconds per provider call, no automatic retry

# Traffic monitoring (seconds)
TRAFFIC_MONITOR_INTERVAL = 180  # route refresh while driving

# Traffic classification thresholds (percent delay over free-flow duration)
MODERATE_DELAY_PCT = 15.0
HEAVY_DELAY_PCT = 40.0

# Device location options (seconds)
MANUAL_FIX_TIMEOUT = 10       # one-shot "use my location" fix
MANUAL_FIX_MAXIMUM_AGE = 60
WATCH_FIX_TIMEOUT = 15        # each fix of the continuous watch
WATCH_FIX_MAXIMUM_AGE = 30
WATCH_POLL_INTERVAL = 5       # gap between fixes of a polling watch

MIN_QUERY_LENGTH = 2

# Provider status strings (Google JSON APIs)
STATUS_OK = "OK"
STATUS_ZERO_RESULTS = "ZERO_RESULTS"
STATUS_NOT_FOUND = "NOT_FOUND"
STATUS_OVER_QUERY_LIMIT = "OVER_QUERY_LIMIT"
STATUS_REQUEST_DENIED = "REQUEST_DENIED"
STATUS_INVALID_REQUEST = "INVALID_REQUEST"

# Curated well-known places, tried before any network call.
# Order matters: the first substring match wins.
LOCATION_SUGGESTIONS: list[tuple[str, float, float]] = [
    ("Mumbai, India", 19.0760, 72.8777),
    ("Delhi, India", 28.7041, 77.1025),
    ("Bangalore, India", 12.9716, 77.5946),
    ("Hyderabad, India", 17.3850, 78.4867),
    ("Chennai, India", 13.0827, 80.2707),
    ("Kolkata, India", 22.5726, 88.3639),
    ("Pune, India", 18.5204, 73.8567),
    ("Ahmedabad, India", 23.0225, 72.5714),
    ("New York, USA", 40.7128, -74.0060),
    ("London, UK", 51.5074, -0.1278),
    ("Paris, France", 48.8566, 2.3522),
    ("Tokyo, Japan", 35.6762, 139.6503),
]

# Last-resort city patterns, matched as substrings of the lower-cased query
CITY_PATTERNS: dict[str, tuple[float, float]] = {
    "delhi":     (28.7041, 77.1025),
    "mumbai":    (19.0760, 72.8777),
    "bangalore": (12.9716, 77.5946),
    "hyderabad": (17.3850, 78.4867),
    "chennai":   (13.0827, 80.2707),
    "kolkata":   (22.5726, 88.3639),
    "pune":      (18.5204, 73.8567),
    "new york":  (40.7128, -74.0060),
    "london":    (51.5074, -0.1278),
    "paris":     (48.8566, 2.3522),
    "tokyo":     (35.6762, 139.6503),
}

# Transit request parameters
TRANSIT_MODES = ("bus", "rail", "subway")
TRANSIT_ROUTING_PREFERENCE = "less_walking"
TRAFFIC_MODEL = "best_guess"
