"""Constants used throughout the application."""

# Record types
PACK_RECORD_TYPE = "ContentPack"
BOOTSTRAP_RECORD_TYPE = "Bootstrap"

# Content pack fields
VERSION_FIELD = "version"
MANIFEST_FIELD = "manifest"
CUSTOM_URLS_FIELD = "customURLs"

# Bootstrap fields
LATEST_PACK_FIELD = "latestPack"

# Asset keys
ASSET_PREFIX = "asset_"
MAX_KEY_LENGTH = 255
KEY_SUFFIX_RESERVE = 5
EMPTY_KEY_FALLBACK = "file"

# Custom URLs kept per pack
MAX_CUSTOM_URLS = 5

# Attachment name of the serialized manifest
MANIFEST_FILENAME = "manifest.json"

# Version stored on a cleared bootstrap pointer
CLEARED_VERSION = 0
