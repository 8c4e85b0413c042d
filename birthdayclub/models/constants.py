"""Constants for Birthday Club.

This module centralizes the magic numbers and default values used throughout the application.
"""

# OTP
OTP_LENGTH = 6
OTP_TTL_MINUTES = 10

# Registration validation
NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 254
MIN_AGE_YEARS = 5
MAX_AGE_YEARS = 120
SCRIPT_MARKER = "<script"

# Form fields that humans never fill in (hidden in the UI)
HONEYPOT_FIELDS = ("website", "url", "phone", "fax")

# Rate limiting
BIRTHDAY_EMAILS_OPERATION = "send-birthday-emails"
DEFAULT_RATE_LIMIT = 2
DEFAULT_RATE_WINDOW_HOURS = 24
