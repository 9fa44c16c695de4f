"""Format constants."""

FORMAT_NAME = "bendybutt-v1"

MAX_MESSAGE_SIZE = 8192
MAX_DEPTH = 64

CONTENT_SIG_PREFIX = b"bendybutt"

PAYLOAD_LENGTH = 5
ENVELOPE_LENGTH = 2

# two-byte tag + 32-byte public key
FEED_TOKEN_LENGTH = 34
HMAC_KEY_LENGTH = 32
