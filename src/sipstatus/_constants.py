"""Internal constants shared across the package."""

# ------------------------------------------------------------------
# Upstream device naming
# ------------------------------------------------------------------

DEVICE_PREFIXES: tuple[str, ...] = ("PJSIP/", "SIP/")
DEVICE_STATE_EVENTS: frozenset[str] = frozenset({"DeviceStateChange", "DeviceState"})
DEVICE_STATE_LIST_ACTION = "DeviceStateList"
DEVICE_STATE_LIST_COMPLETE = "DeviceStateListComplete"

# Events that are too chatty (or purely auth bookkeeping) for the diagnostic log.
NOISY_EVENTS: frozenset[str] = frozenset(
    {
        "ChallengeSent",
        "SuccessfulAuth",
        "RequestBadFormat",
        "ChallengeResponseFailed",
    }
)
NOISY_EVENT_PREFIXES: tuple[str, ...] = ("RTCP",)
NOISY_USER_EVENTS: frozenset[str] = frozenset({"CDRPROSYNC"})

# ------------------------------------------------------------------
# Visibility
# ------------------------------------------------------------------

#: Extensions this long or shorter are only shown to authenticated viewers.
PRIVATE_EXTENSION_MAX_LEN = 4

# ------------------------------------------------------------------
# Event stream wire format
# ------------------------------------------------------------------

SSE_CONNECTED = "data: Connected to updates\n\n"
SSE_KEEPALIVE = ":\n\n"
SSE_DATA_PREFIX = "data: "

# ------------------------------------------------------------------
# Delivery / timing defaults
# ------------------------------------------------------------------

SUBSCRIBER_CAPACITY = 100
DELIVERY_TIMEOUT_SECONDS = 0.1
KEEPALIVE_INTERVAL_SECONDS = 30.0
SYNC_CEILING_SECONDS = 10.0
CONNECT_WAIT_SECONDS = 5.0
SESSION_LIFETIME_SECONDS = 24 * 3600
SESSION_COOKIE_NAME = "sipstatus_session"
