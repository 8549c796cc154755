"""
Constants shared by the attendance gate services
"""

# Setting key holding the company-wide network allowlist
COMPANY_ALLOWED_IPS_KEY = "company_allowed_ips"

# Allowlist entries that disable network checking altogether
NETWORK_WILDCARDS = frozenset({"*", "0.0.0.0/0", "::/0"})

# Device identifier sources, in lookup order: header, then body/query field
DEVICE_ID_HEADER = "x-device-id"

# History pagination
HISTORY_DEFAULT_LIMIT = 50
ADMIN_HISTORY_DEFAULT_LIMIT = 100
HISTORY_MAX_LIMIT = 500

SUPERSEDED_NOTE = "Automatically rejected - superseded by another approved request"
CANCELLED_NOTE = "Cancelled by user"
ADMIN_MARK_NOTE = "Marked by admin"
