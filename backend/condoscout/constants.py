"""
Business constants for the CondoScout concierge.

These values are fixed product behaviour and are not env-overridable. For
operational parameters that vary per environment (model name, storage
backend), see config.py.
"""

API_TITLE = "CondoScout API"
API_VERSION = "0.1.0"

# --- Concierge persona ---
# Sent as the system instruction of every chat context; never user-controllable.
SYSTEM_INSTRUCTION = """You are Royce, an elite Real Estate and Lifestyle Concierge.
Your mission is to assist users in discovering the perfect condominiums, apartments, or hotels tailored to their specific lifestyle and needs.

RULES:
1. You MUST use the 'googleMaps' tool to find real-world locations that match the user's criteria.
2. When a user specifies a budget (e.g., "20000 THB"), try to find places that likely fit that category or politely explain you are showing the best matches in the area.
3. Provide a sophisticated, concise summary of *why* you selected these properties.
4. If the user asks for "apartments" or "condos", look for residential buildings or serviced apartments.
5. If the user asks for "hotels", look for hotels.
6. Always include the location context (e.g., "located near the BTS", "in the heart of Siam").
7. Tone: Professional, polite, knowledgeable, and slightly upscale (like a high-end concierge).

When you return places, the UI will display them as cards with a SATELLITE MAP VIEW of the location.
Ensure the places you find are specific buildings or hotels so the map pin is accurate."""

# --- Sessions ---
WELCOME_MESSAGE_ID = "welcome"
WELCOME_TEXT = (
    "👋 Hello, I'm **Royce**.\n\n"
    "I am your personal real estate concierge. I'll help you find condominiums, "
    "apartments, or luxury hotels.\n\n"
    "*\"Show me some 1-bedroom apartments in Sukhumvit near the station.\"*"
)
DEFAULT_SESSION_TITLE = "New Search"
SESSION_TITLE_MAX_CHARS = 30
SESSION_TITLE_ELLIPSIS = "..."

# --- Turn outcomes ---
# Returned in place of a provider reply when the chat service fails.
PROVIDER_APOLOGY_TEXT = (
    "I apologize, but I am unable to access the property database at this moment. "
    "Please try again shortly."
)
# Used when the provider answers with places but no text.
EMPTY_REPLY_TEXT = "I've curated a list of properties for you:"
# Used when the orchestration layer itself fails while resolving a turn.
CONNECTION_ERROR_TEXT = "Connection error. Please try again."

# --- Storage keys ---
SESSIONS_KEY_PREFIX = "condoscout_sessions_"
GUEST_SESSIONS_KEY = "condoscout_guest_sessions"
IDENTITY_KEY_PREFIX = "condoscout_user_"

# --- HTTP headers ---
GUEST_SESSION_HEADER = "X-Guest-Session"
REQUEST_ID_HEADER = "X-Request-ID"
