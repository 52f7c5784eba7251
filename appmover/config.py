"""
Configuration and constants for Android App Mover.
"""
import os
import shutil

ADB_BINARY = shutil.which("adb") or "adb"
LOCAL_SHELL = shutil.which("sh") or "/system/bin/sh"

# Device used when no serial is given; None means the shell is spawned locally
DEVICE_SERIAL = os.environ.get("ANDROID_SERIAL") or None

# Prefix of the id-tagged output markers
MARKER_PREFIX = "__RTX_"

# Robust prompt patterns for various Android shells/ROMs
SHELL_PROMPT_PATTERNS = [
    r'[\$#]\s*$',           # Simple $ or # at end
    r':\S*\s*[\$#]\s*$',    # path:dir $ or #
    r'@\S+:\S*\s*[\$#]\s*$' # user@host:dir $ or #
]

# Applied when a command is run with timeout 0
DEFAULT_COMMAND_TIMEOUT_MS = 5000

# Seconds to wait for the user to grant root
SU_TIMEOUT = 15

# Seconds a fire-and-forget command gets to start before its session is closed
SEND_GRACE_SECONDS = 2.0

# File operations go through busybox on most rooted ROMs
BUSYBOX = os.environ.get("APPMOVER_BUSYBOX", "busybox")

# Partition layout
DATA_ROOT = "/data"
SYSTEM_ROOT = "/system"
EXTERNAL_STORAGE = os.environ.get("APPMOVER_EXTERNAL_STORAGE", "/sdcard")
TRASH_DIR = ".roottools.trash"
CODE_CACHE_DIR = "/data/dalvik-cache"
PRIVATE_DATA_ROOT = "/data/data"
APP_SUBDIR = "app"

# Package file extensions
APK_EXT = ".apk"
ODEX_EXT = ".odex"
METADATA_EXT = ".metadata"

# Version byte written at the start of every sidecar file
METADATA_VERSION = 1

# Worker threads used by the manager
MAX_WORKERS = 4
