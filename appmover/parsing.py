"""
Pure parsers for shell output.

Everything here takes raw lines (or raw text) and returns typed results, so
it can be tested without a device.
"""
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import MARKER_PREFIX, APK_EXT
from .models import ErrorKind


# ==================== PACKAGE FILENAMES ====================

def package_from_filename(name: str, suffixes: Sequence[str] = (APK_EXT,)) -> Optional[str]:
    """
    Extract the package name from an app directory entry.

    "com.example.app-1.apk" -> "com.example.app". The name is taken up to the
    last '-', falling back to the last '~'. Entries without a known suffix or
    without a separator yield None.
    """
    name = name.strip()
    for suffix in suffixes:
        if name.endswith(suffix):
            stem = name[:-len(suffix)]
            break
    else:
        return None

    sep = stem.rfind("-")
    if sep <= 0:
        sep = stem.rfind("~")
    if sep <= 0:
        return None
    return stem[:sep]


def equals_package(name: str, package: str, suffixes: Sequence[str] = (APK_EXT,)) -> bool:
    return package_from_filename(name, suffixes) == package


def match_package(names: Iterable[str], package: str,
                  suffixes: Sequence[str] = (APK_EXT,)) -> Optional[str]:
    """First entry in listing order that belongs to package."""
    for name in names:
        if equals_package(name, package, suffixes):
            return name.strip()
    return None


def classify_listing(lines: Iterable[str], package: str,
                     suffixes: Sequence[str] = (APK_EXT,)) -> Tuple[ErrorKind, Optional[str]]:
    """
    Interpret the output of `ls <dir> | grep <package>`.

    Returns (NONE, filename) on the first match, BUSYBOX if busybox reported
    a failure and nothing matched, NOT_EXISTING otherwise.
    """
    error = ErrorKind.NOT_EXISTING
    for line in lines:
        if equals_package(line, package, suffixes):
            return ErrorKind.NONE, line.strip()
        if "fail" in line:
            error = ErrorKind.BUSYBOX
    return error, None


def cached_packages(entry: str) -> List[str]:
    """
    Packages referenced by a code-cache entry.

    "data@app@com.example.app-1.apk@classes.dex" -> ["com.example.app"]
    """
    packages = []
    for segment in entry.strip().split("@"):
        if segment.endswith(APK_EXT):
            package = package_from_filename(segment)
            if package:
                packages.append(package)
    return packages


# ==================== DISK SPACE ====================

_UNITS_KB = {"K": 1, "M": 1024, "G": 1024 * 1024, "T": 1024 * 1024 * 1024}


def _to_kb(token: str) -> Optional[int]:
    token = token.strip()
    if not token:
        return None
    unit = token[-1].upper()
    try:
        if unit in _UNITS_KB:
            return int(float(token[:-1]) * _UNITS_KB[unit])
        return int(token)
    except ValueError:
        return None


def parse_df_free_kb(lines: Sequence[str]) -> Optional[int]:
    """
    Free space in kilobytes from `df <path>` output.

    Understands busybox df (1K-blocks ... Available), toolbox df
    (Size Used Free Blksize with K/M/G suffixes) and the old single-line
    toolbox format ("/system: 516040K total, 451536K used, 64504K available").
    """
    text = "\n".join(lines)

    m = re.search(r'(\d+)K available', text)
    if m:
        return int(m.group(1))

    rows = [line.split() for line in lines if line.strip()]
    if len(rows) < 2:
        return None
    header = rows[0]
    # busybox wraps long filesystem names onto their own line
    tokens = [t for row in rows[1:] for t in row]

    if "Available" in header:
        for i in range(len(tokens) - 2):
            if tokens[i].isdigit() and tokens[i + 1].isdigit() and tokens[i + 2].isdigit():
                return int(tokens[i + 2])
        return None

    if "Free" in header and len(tokens) >= 4:
        return _to_kb(tokens[3])

    return None


# ==================== COMMAND MARKERS ====================

def begin_marker(command_id: int) -> str:
    return f"{MARKER_PREFIX}{command_id}_BEGIN__"


def end_pattern(command_id: int) -> str:
    """Regex matching the end marker of command_id; group 1 is the exit code."""
    return rf'{re.escape(MARKER_PREFIX)}{command_id}_END_(\d+)__'


def wrap_commands(command_id: int, commands: Sequence[str]) -> str:
    """
    Frame commands with id-tagged markers.

    The markers are split with an empty string literal so the terminal echo
    of the command line never looks like real output.
    """
    begin = f'echo "{MARKER_PREFIX}""{command_id}_BEGIN__"'
    end = f'echo "{MARKER_PREFIX}""{command_id}_END_$?__"'
    return "; ".join([begin] + list(commands) + [end])


def parse_tagged_output(command_id: int, text: str) -> List[str]:
    """
    Lines emitted between the begin and end markers of command_id.

    Output of other commands (e.g. a previously interrupted one) is ignored.
    Empty lines are dropped.
    """
    begin = begin_marker(command_id)
    end = re.compile(end_pattern(command_id))
    lines = []
    collecting = False
    for raw in text.replace('\r\n', '\n').replace('\r', '\n').split('\n'):
        line = raw.strip()
        if not collecting:
            if line == begin:
                collecting = True
            continue
        if end.search(line):
            break
        if line:
            lines.append(line)
    return lines
