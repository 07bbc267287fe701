"""
Domain limits shared by request validation and the services.
"""

# Coordinates (WGS84)
MIN_LATITUDE = -90
MAX_LATITUDE = 90
MIN_LONGITUDE = -180
MAX_LONGITUDE = 180

# Places and regions
MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_SHORT_DESCRIPTION_LENGTH = 300
MAX_ADDRESS_LENGTH = 500
MAX_PHONE_LENGTH = 20

# Check-ins
MAX_COMMENT_LENGTH = 1000
MAX_CAPTION_LENGTH = 200
MIN_RATING = 1
MAX_RATING = 5
DUPLICATE_CHECKIN_WINDOW_HOURS = 24  # advisory only, never enforced

# Listings
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
