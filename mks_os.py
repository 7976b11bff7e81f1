#!/usr/bin/env python3
"""
MKS-OS Shell

An interactive command shell running over a synthetic, in-memory filesystem.
Paths use a DOS-like notation rooted at ``C:\\`` with backslash separators; a
path ending in the separator names a directory, anything else names a file.
The shell keeps a running session (current directory, user, colour theme and
command history) and supports a small DOS/Unix flavoured command set: ``dir``,
``cd``, ``type``, ``edit``, ``mkdir``, ``copy``, ``ren``, ``del`` and friends.

Nothing is persisted: every boot starts from the same seed set of system
directories and files plus a profile for the active user. Output is tagged
with semantic tones (primary, success, warning, error, accent) which the
current theme maps onto terminal colours via colorama. Optional settings are
read from a YAML file (``mks_os.yaml``).
"""

import argparse
import logging
import operator
import os
import sys
import time
import difflib
from cmd import Cmd
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Tuple, Optional, Dict, Callable, Any, Iterator, NamedTuple

# optional module
try:
    import readline  # noqa: F401
except Exception:
    readline = None

import yaml
from colorama import Fore, Style, init as colorama_init

log = logging.getLogger(__name__)

VERSION = "1.3"
AUTHOR = "maksimka1855"

# Path notation. ROOT is both the root directory key and the prefix that
# every absolute path starts with.
SEP = "\\"
ROOT = "C:" + SEP
DRIVE_MARKER = ":" + SEP

# Sentinel line that ends multi-line capture in ``edit``.
END_SENTINEL = "END"

DEFAULT_USER = "user"
DEFAULT_SETTINGS_PATH = "mks_os.yaml"

# Semantic output tones. The first five are bound, in order, to the five
# positions of the colour theme.
PRIMARY = "primary"
SUCCESS = "success"
WARNING = "warning"
ERROR = "error"
ACCENT = "accent"
PLAIN = "plain"
TONES: Tuple[str, ...] = (PRIMARY, SUCCESS, WARNING, ERROR, ACCENT)

DEFAULT_THEME: Tuple[str, ...] = ("CYAN", "GREEN", "YELLOW", "RED", "MAGENTA")

# The 16-colour console palette offered by ``color``: (display name, Fore attribute).
PALETTE: Tuple[Tuple[str, str], ...] = (
    ("Black", "BLACK"),
    ("DarkBlue", "BLUE"),
    ("DarkGreen", "GREEN"),
    ("DarkCyan", "CYAN"),
    ("DarkRed", "RED"),
    ("DarkMagenta", "MAGENTA"),
    ("DarkYellow", "YELLOW"),
    ("Gray", "WHITE"),
    ("DarkGray", "LIGHTBLACK_EX"),
    ("Blue", "LIGHTBLUE_EX"),
    ("Green", "LIGHTGREEN_EX"),
    ("Cyan", "LIGHTCYAN_EX"),
    ("Red", "LIGHTRED_EX"),
    ("Magenta", "LIGHTMAGENTA_EX"),
    ("Yellow", "LIGHTYELLOW_EX"),
    ("White", "LIGHTWHITE_EX"),
)

MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

RULE = "─" * 48
DOUBLE_RULE = "═" * 44

# A reply is the list of (tone, text) lines a command produces.
Line = Tuple[str, str]
Reply = List[Line]


# ---------- Errors ----------
class ShellError(Exception):
    """Base class for conditions reported to the user as a message."""

    tone = ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def lines(self) -> Reply:
        return [(self.tone, self.message)]


class UsageError(ShellError):
    tone = WARNING


class NotFound(ShellError):
    pass


class AlreadyExists(ShellError):
    tone = WARNING


class OutOfRange(ShellError):
    pass


class MalformedInput(ShellError):
    pass


class DivideByZero(ShellError):
    pass


class UnknownCommand(ShellError):
    tone = WARNING

    def __init__(self, name: str, suggestions: Optional[List[str]] = None):
        super().__init__(f"Command '{name}' not found. Type 'help' for help.")
        self.name = name
        self.suggestions = list(suggestions or [])

    def lines(self) -> Reply:
        out = super().lines()
        if self.suggestions:
            out.append((PRIMARY, "Closest matches:"))
            out.extend((ACCENT, f"  - {s}") for s in self.suggestions)
        return out


class InputClosed(Exception):
    """The line source was exhausted or closed."""


# ---------- Utilities ----------
def c(text: Any, color: str = Fore.CYAN) -> str:
    """Colourise text for terminal display."""
    lines = str(text).splitlines() or [""]
    if not color:
        return "\n".join(lines)
    return "\n".join(f"{color}{ln}{Style.RESET_ALL}" for ln in lines)


def spinner(msg: str = "loading", seconds: float = 0.6) -> None:
    """Display a simple spinner for a given duration."""
    s = "|/-\\"
    end = time.time() + seconds
    i = 0
    while time.time() < end:
        sys.stdout.write(f"\r{Fore.YELLOW}{msg}... {s[i % 4]}{Style.RESET_ALL}")
        sys.stdout.flush()
        i += 1
        time.sleep(0.1)
    sys.stdout.write("\r" + " " * (len(msg) + 6) + "\r")
    sys.stdout.flush()


def table(headers: List[str], rows: List[Tuple[Any, ...]], widths: Optional[List[int]] = None) -> List[str]:
    """Render a simple left-aligned table; returns header, rule and body lines."""
    if widths is None:
        widths = [len(h) for h in headers]
        for r in rows:
            for i, cell in enumerate(r):
                widths[i] = max(widths[i], len(str(cell)))

    def fmt(cells) -> str:
        return "".join(f"{str(cell):<{widths[i]}}" for i, cell in enumerate(cells)).rstrip()

    return [fmt(headers), RULE] + [fmt(r) for r in rows]


def fore(name: str) -> str:
    """Return the colorama escape for a colour name such as ``CYAN``."""
    code = getattr(Fore, name.upper(), None)
    if not isinstance(code, str):
        raise ValueError(f"unknown colour: {name}")
    return code


# ---------- Path utilities ----------
def file_name(path: str) -> str:
    """Return the part after the last separator (the path itself if none or trailing)."""
    idx = path.rfind(SEP)
    if 0 <= idx < len(path) - 1:
        return path[idx + 1:]
    return path


def parent_directory_of(path: str) -> str:
    """Return the path up to and including the last separator."""
    idx = path.rfind(SEP)
    if idx > 0:
        return path[:idx + 1]
    return path


def segments(path: str) -> List[str]:
    return path.strip(SEP).split(SEP)


def ascend(path: str) -> str:
    """Return the directory one level above ``path``; the root stays at the root.

    The drive token (``C:``) is not a level of its own, so ``C:\\System\\``
    ascends to ``C:\\`` and ``C:\\a\\b\\`` to ``C:\\a\\``.
    """
    parts = segments(path)
    if parts and parts[0].endswith(":"):
        parts = parts[1:]
    if len(parts) <= 1:
        return ROOT
    return ROOT + SEP.join(parts[:-1]) + SEP


def is_absolute(path: str) -> bool:
    return DRIVE_MARKER in path


def resolve(name: str, current_directory: str) -> str:
    """Resolve a command argument against the current directory.

    Arguments carrying a drive marker are taken as absolute; everything else
    is appended to ``current_directory`` as-is. No ``.``/``..`` folding is
    done here.
    """
    if is_absolute(name):
        return name
    return current_directory + name


# ---------- Namespace store ----------
DIR = "DIR"
FILE = "FILE"


class Entry(NamedTuple):
    kind: str
    name: str
    size: Optional[int]


class Namespace:
    """The virtual filesystem: directory path -> description, file path -> content.

    Both mappings keep insertion order, which is also the listing order.
    Lookups are exact; containment (``list_under``) is a case-insensitive
    prefix match over the keys.
    """

    def __init__(self):
        self.directories: Dict[str, str] = {}
        self.files: Dict[str, str] = {}

    def has_directory(self, path: str) -> bool:
        return path in self.directories

    def has_file(self, path: str) -> bool:
        return path in self.files

    def put_file(self, path: str, content: str, parent_description: Optional[str] = None) -> None:
        """Insert or overwrite a file.

        When ``parent_description`` is given and the file's directory is not
        registered yet, the directory is registered with that description.
        """
        self.files[path] = content
        log.debug("put_file %s (%d chars)", path, len(content))
        if parent_description is not None:
            self.ensure_directory(parent_directory_of(path), parent_description)

    def get_file(self, path: str) -> str:
        try:
            return self.files[path]
        except KeyError:
            raise NotFound(f"File '{path}' not found") from None

    def delete_file(self, path: str) -> None:
        if path not in self.files:
            raise NotFound(f"File '{path}' not found")
        del self.files[path]
        log.debug("delete_file %s", path)

    def copy_file(self, src: str, dst: str) -> None:
        if src not in self.files:
            raise NotFound(f"Source file '{src}' not found")
        self.files[dst] = self.files[src]
        log.debug("copy_file %s -> %s", src, dst)

    def rename_file(self, old: str, new: str) -> None:
        if old not in self.files:
            raise NotFound(f"File '{old}' not found")
        content = self.files[old]
        self.files[new] = content
        if new != old:
            del self.files[old]
        log.debug("rename_file %s -> %s", old, new)

    def make_directory(self, path: str, description: str = "User Created Directory") -> None:
        if path in self.directories:
            raise AlreadyExists(f"Directory '{path}' already exists")
        self.directories[path] = description
        log.debug("make_directory %s", path)

    def ensure_directory(self, path: str, description: str) -> bool:
        """Register ``path`` unless present; returns True when it was added."""
        if path in self.directories:
            return False
        self.directories[path] = description
        log.debug("make_directory %s", path)
        return True

    def list_under(self, prefix: str) -> Iterator[Entry]:
        """Yield every directory, then every file, whose key starts with ``prefix``."""
        folded = prefix.lower()
        for key in self.directories:
            if key.lower().startswith(folded):
                yield Entry(DIR, file_name(key.rstrip(SEP)), None)
        for key, content in self.files.items():
            if key.lower().startswith(folded):
                yield Entry(FILE, file_name(key), len(content))

    def children(self, directory: str) -> List[str]:
        """Names directly inside ``directory``; sub-directories keep a trailing separator."""
        folded = directory.lower()
        names: List[str] = []
        for key in self.directories:
            rest = key[len(directory):]
            if key.lower().startswith(folded) and rest and rest.find(SEP) == len(rest) - 1:
                names.append(rest)
        for key in self.files:
            rest = key[len(directory):]
            if key.lower().startswith(folded) and rest and SEP not in rest:
                names.append(rest)
        return names

    def total_size(self) -> int:
        return sum(len(content) for content in self.files.values())


# ---------- Settings ----------
@dataclass
class Settings:
    user: str = DEFAULT_USER
    theme: List[str] = field(default_factory=lambda: list(DEFAULT_THEME))
    aliases: Dict[str, str] = field(default_factory=dict)
    animate: bool = True
    countdown: int = 3


def load_settings(path: str = DEFAULT_SETTINGS_PATH) -> Settings:
    """Load shell settings from a YAML file; a missing file yields the defaults."""
    settings = Settings()
    if not path or not os.path.exists(path):
        return settings
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of settings")
    if "user" in data:
        settings.user = str(data["user"])
    if "theme" in data:
        theme = [str(name).upper() for name in data["theme"] or []]
        if len(theme) != len(TONES):
            raise ValueError(f"{path}: theme needs exactly {len(TONES)} colours")
        for name in theme:
            fore(name)
        settings.theme = theme
    if "aliases" in data:
        settings.aliases = {str(k).lower(): str(v).lower() for k, v in (data["aliases"] or {}).items()}
    if "animate" in data:
        settings.animate = bool(data["animate"])
    if "countdown" in data:
        settings.countdown = max(0, int(data["countdown"]))
    return settings


# ---------- Session ----------
def profile_text(user: str, when: datetime) -> str:
    return f"[User]\nName={user}\nLevel=User\nLastLogin={when:%d.%m.%Y %H:%M}"


def home_directory(user: str) -> str:
    return f"{ROOT}Users{SEP}{user}{SEP}"


@dataclass
class Session:
    """Mutable per-run context, kept apart from the namespace content."""

    current_directory: str = ROOT
    user_name: str = DEFAULT_USER
    theme: List[str] = field(default_factory=lambda: list(DEFAULT_THEME))
    history: List[str] = field(default_factory=list)
    text_colour: Optional[int] = None
    boot_time: str = ""
    running: bool = True
    power_request: Optional[str] = None

    def change_directory(self, target: str, fs: Namespace) -> str:
        if target == "..":
            # skip ancestors that were never registered (edit can create deep directories)
            parent = ascend(self.current_directory)
            while parent != ROOT and not fs.has_directory(parent):
                parent = ascend(parent)
            self.current_directory = parent
        elif target != ".":
            candidate = resolve(target, self.current_directory)
            if not candidate.endswith(SEP):
                candidate += SEP
            if not fs.has_directory(candidate):
                raise NotFound(f"Directory '{target}' not found")
            self.current_directory = candidate
        return self.current_directory

    def change_user(self, name: str, fs: Namespace, when: datetime) -> None:
        """Switch user, (re)writing the profile and making sure the home directory exists."""
        self.user_name = name
        home = home_directory(name)
        fs.ensure_directory(home, f"Home directory of {name}")
        fs.put_file(home + "profile.ini", profile_text(name, when))

    def rotate_theme(self, index: int) -> None:
        n = len(self.theme)
        if not 0 <= index < n:
            raise OutOfRange(f"Invalid theme number. Use values 0-{n - 1}")
        self.theme = [self.theme[(i + index) % n] for i in range(n)]

    def record_history(self, line: str) -> None:
        if line:
            self.history.append(line)

    def colour_for(self, tone: str) -> str:
        if tone == PLAIN:
            if self.text_colour is None:
                return ""
            return fore(PALETTE[self.text_colour][1])
        return fore(self.theme[TONES.index(tone)])


# ---------- Bootstrap ----------
SEED_DIRECTORIES: Tuple[Tuple[str, str], ...] = (
    (ROOT, "Root Directory"),
    (ROOT + "System" + SEP, "System Files"),
    (ROOT + "Users" + SEP, "User Profiles"),
    (ROOT + "Programs" + SEP, "Applications"),
    (ROOT + "Documents" + SEP, "User Documents"),
)

SEED_FILES: Tuple[Tuple[str, str], ...] = (
    (ROOT + "boot.ini",
     "[boot loader]\ntimeout=30\ndefault=multi(0)disk(0)rdisk(0)partition(1)\\WINDOWS\n"
     "[operating systems]\nmulti(0)disk(0)rdisk(0)partition(1)\\WINDOWS=\"MKS-OS\" /fastdetect"),
    (ROOT + "config.sys",
     "DEVICE=C:\\System\\ANSI.SYS\nFILES=40\nBUFFERS=30\nLASTDRIVE=Z"),
    (ROOT + "autoexec.bat",
     f"@echo off\necho Starting MKS-OS v{VERSION}\npath=C:\\System;C:\\Programs\nprompt=$P$G"),
    (ROOT + "readme.txt",
     "Welcome to MKS-OS!\n\nThis is a text-based operating system.\n\nMain commands:\n"
     "- help: command list\n- dir: list files\n- type: show file contents\n"
     "- cls: clear screen\n- info: system information\n\nUse 'shutdown' or 'reboot' to exit."),
    (ROOT + "System" + SEP + "kernel.sys",
     f"MKS-OS Kernel v{VERSION}\nMemory: 16MB\nProcessor: 386+ compatible\nStatus: Operational"),
)


def seed_filesystem(fs: Namespace, session: Session, when: datetime) -> None:
    """Create the fixed system directories and files plus the active user's profile."""
    for path, description in SEED_DIRECTORIES:
        fs.ensure_directory(path, description)
    for path, content in SEED_FILES:
        fs.put_file(path, content)
    session.change_user(session.user_name, fs, when)


# ---------- Calculator ----------
OPERATORS: Dict[str, Tuple[str, Callable[[float, float], float]]] = {
    "+": ("+", operator.add),
    "-": ("-", operator.sub),
    "*": ("×", operator.mul),
    "/": ("÷", operator.truediv),
}


def _parse_number(text: str) -> Optional[float]:
    if not text or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _fmt_number(value: float) -> str:
    text = repr(value)
    return text[:-2] if text.endswith(".0") else text


def calculate(expression: str) -> str:
    """Evaluate a single binary operation.

    Spaces are dropped and the expression is split at the first operator
    character found scanning left to right; both sides must be plain numbers.
    ``4+6/2`` is therefore rejected, as its right side is ``6/2``.
    """
    expr = expression.replace(" ", "")
    index = next((i for i, ch in enumerate(expr) if ch in OPERATORS), -1)
    if index > 0:
        a = _parse_number(expr[:index])
        b = _parse_number(expr[index + 1:])
        if a is None or b is None:
            raise MalformedInput("Invalid number format")
        symbol, fn = OPERATORS[expr[index]]
        if expr[index] == "/" and b == 0:
            raise DivideByZero("Error: division by zero!")
        return f"{_fmt_number(a)} {symbol} {_fmt_number(b)} = {_fmt_number(fn(a, b))}"
    single = _parse_number(expr)
    if single is None:
        raise MalformedInput("Invalid expression")
    return f"Number: {_fmt_number(single)}"


# ---------- Host ----------
class ConsoleHost:
    """Power hooks for a shell running as a plain console process.

    Nothing is powered off for real; the request is remembered so ``main``
    can stop, or boot a fresh session for a reboot.
    """

    def __init__(self):
        self.pending: Optional[str] = None

    def request_shutdown(self) -> None:
        log.info("host shutdown requested")
        self.pending = "shutdown"

    def request_reboot(self) -> None:
        log.info("host reboot requested")
        self.pending = "reboot"


# ---------- Command handlers ----------
def _ok(msg: str) -> Reply:
    return [(SUCCESS, msg)]


def _need(args: List[str], count: int, usage: str) -> None:
    if len(args) < count:
        raise UsageError(f"Usage: {usage}")


def h_help(shell: "MKShell", args: List[str]) -> Reply:
    """Show the command reference, or the entry for a single command."""
    if args:
        name = args[0].lower()
        key = shell.aliases.get(name, name)
        if key not in HELP_TEXT:
            raise NotFound(f"No help for '{args[0]}'")
        usage, desc = HELP_TEXT[key]
        return [(PRIMARY, usage), (SUCCESS, f"  {desc}")]
    out: Reply = [(PRIMARY, "COMMAND HELP MENU"), (PRIMARY, DOUBLE_RULE)]
    out.extend((SUCCESS, f"  {usage:<18} - {desc}") for usage, desc in HELP_TEXT.values())
    out.append((PRIMARY, DOUBLE_RULE))
    return out


def h_cls(shell: "MKShell", args: List[str]) -> Reply:
    """Clear the screen."""
    shell.stdout.write("\033c")
    return []


def h_echo(shell: "MKShell", args: List[str]) -> Reply:
    _need(args, 1, "echo <text>")
    return [(PLAIN, " ".join(args))]


def _listing_prefix(shell: "MKShell", target: str) -> str:
    path = resolve(target, shell.session.current_directory)
    if not path.endswith(SEP) and shell.fs.has_directory(path + SEP):
        path += SEP
    return path


def h_dir(shell: "MKShell", args: List[str]) -> Reply:
    """List directories and files under a path (default: the current directory).

    Containment is by case-insensitive key prefix, so every nested entry below
    the path is listed, directories first.
    """
    path = _listing_prefix(shell, args[0]) if args else shell.session.current_directory
    entries = list(shell.fs.list_under(path))
    rows = [(e.name, f"<{DIR}>" if e.kind == DIR else FILE, "-" if e.size is None else f"{e.size} bytes")
            for e in entries]
    head, rule, *body = table(["Name", "Type", "Size"], rows, widths=[25, 11, 1])
    out: Reply = [(PRIMARY, f"Contents of {path}:"), (PRIMARY, head), (PRIMARY, rule)]
    for entry, text in zip(entries, body):
        out.append((ACCENT if entry.kind == DIR else SUCCESS, text))
    out.append((PRIMARY, RULE))
    dirs = sum(1 for e in entries if e.kind == DIR)
    files = [e for e in entries if e.kind == FILE]
    total = sum(e.size for e in files)
    out.append((PRIMARY, f"Directories: {dirs}, Files: {len(files)}, Total: {total} bytes"))
    return out


def h_cd(shell: "MKShell", args: List[str]) -> Reply:
    if args:
        shell.session.change_directory(args[0], shell.fs)
    return _ok(f"Current directory: {shell.session.current_directory}")


def h_type(shell: "MKShell", args: List[str]) -> Reply:
    """Print a file's content."""
    _need(args, 1, "type <filename>")
    content = shell.fs.get_file(resolve(args[0], shell.session.current_directory))
    out: Reply = [(PRIMARY, f"Contents of {args[0]}:"), (PRIMARY, DOUBLE_RULE)]
    out.extend((PLAIN, ln) for ln in content.splitlines() or [""])
    out.append((PRIMARY, DOUBLE_RULE))
    return out


def h_edit(shell: "MKShell", args: List[str]) -> Reply:
    """Overwrite a file with lines typed until a line reading ``END``.

    The file's directory is registered as a user directory when missing.
    """
    _need(args, 1, "edit <filename>")
    name = args[0]
    path = resolve(name, shell.session.current_directory)
    shell.emit([
        (PRIMARY, f"Editing file: {name}"),
        (PRIMARY, f"Enter content (type '{END_SENTINEL}' on separate line to finish):"),
        (PRIMARY, DOUBLE_RULE),
    ])
    lines: List[str] = []
    while True:
        line = shell.read_line()
        if line == END_SENTINEL:
            break
        lines.append(line)
    content = "".join(ln + "\n" for ln in lines)
    shell.fs.put_file(path, content, parent_description="User Directory")
    return [(PRIMARY, DOUBLE_RULE), (SUCCESS, f"File '{name}' saved ({len(content)} bytes)")]


def h_mkdir(shell: "MKShell", args: List[str]) -> Reply:
    _need(args, 1, "mkdir <dirname>")
    name = args[0].rstrip(SEP)
    if not name:
        raise UsageError("Usage: mkdir <dirname>")
    path = shell.session.current_directory + name + SEP
    try:
        shell.fs.make_directory(path)
    except AlreadyExists:
        raise AlreadyExists(f"Directory '{name}' already exists") from None
    return _ok(f"Directory '{name}' created")


def h_rm(shell: "MKShell", args: List[str]) -> Reply:
    _need(args, 1, "del <filename>")
    shell.fs.delete_file(resolve(args[0], shell.session.current_directory))
    return _ok(f"File '{args[0]}' deleted")


def h_copy(shell: "MKShell", args: List[str]) -> Reply:
    _need(args, 2, "copy <source> <destination>")
    src, dst = args[0], args[1]
    cwd = shell.session.current_directory
    shell.fs.copy_file(resolve(src, cwd), resolve(dst, cwd))
    return _ok(f"File copied from '{src}' to '{dst}'")


def h_ren(shell: "MKShell", args: List[str]) -> Reply:
    _need(args, 2, "rename <oldname> <newname>")
    old, new = args[0], args[1]
    cwd = shell.session.current_directory
    shell.fs.rename_file(resolve(old, cwd), resolve(new, cwd))
    return _ok(f"File renamed from '{old}' to '{new}'")


def h_history(shell: "MKShell", args: List[str]) -> Reply:
    history = shell.session.history
    if not history:
        return [(WARNING, "Command history is empty")]
    out: Reply = [(PRIMARY, "Command History:"), (PRIMARY, DOUBLE_RULE)]
    out.extend((SUCCESS, f"{i:03d} {line}") for i, line in enumerate(history, 1))
    out.append((PRIMARY, DOUBLE_RULE))
    return out


def _index_arg(text: str, error: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise OutOfRange(error) from None


def h_theme(shell: "MKShell", args: List[str]) -> Reply:
    """List the theme colours, or rotate the theme by N positions."""
    session = shell.session
    if not args:
        out: Reply = [(PRIMARY, "Available themes:")]
        out.extend((tone, f"  {i}: {name.title()}") for i, (tone, name) in enumerate(zip(TONES, session.theme)))
        return out
    index = _index_arg(args[0], f"Invalid theme number. Use values 0-{len(session.theme) - 1}")
    session.rotate_theme(index)
    return _ok(f"Theme changed to {session.theme[0].title()}")


def h_color(shell: "MKShell", args: List[str]) -> Reply:
    """List the console palette, or pick the colour used for plain text."""
    if not args:
        out: Reply = [(PRIMARY, "Available colors:")]
        out.extend((PLAIN, f"  {i}: {name}") for i, (name, _) in enumerate(PALETTE))
        return out
    error = f"Invalid color number. Use values 0-{len(PALETTE) - 1}"
    index = _index_arg(args[0], error)
    if not 0 <= index < len(PALETTE):
        raise OutOfRange(error)
    shell.session.text_colour = index
    return [(PLAIN, "Text color changed successfully!")]


def h_user(shell: "MKShell", args: List[str]) -> Reply:
    session = shell.session
    if not args:
        return _ok(f"Current user: {session.user_name}")
    session.change_user(args[0], shell.fs, shell.clock())
    return _ok(f"User changed to: {session.user_name}")


def _field(label: str, value: Any) -> str:
    return f"  {label + ':':<17}{value}"


def h_info(shell: "MKShell", args: List[str]) -> Reply:
    session, fs = shell.session, shell.fs
    return [
        (PRIMARY, "SYSTEM INFORMATION"),
        (PRIMARY, DOUBLE_RULE),
        (SUCCESS, _field("System", f"MKS-OS v{VERSION}")),
        (SUCCESS, _field("Kernel", "MKS-OS Python shell")),
        (SUCCESS, _field("Developer", AUTHOR)),
        (SUCCESS, _field("Current User", session.user_name)),
        (SUCCESS, _field("Directory", session.current_directory)),
        (SUCCESS, _field("Boot Time", session.boot_time)),
        (PRIMARY, DOUBLE_RULE),
        (WARNING, _field("Total Files", len(fs.files))),
        (WARNING, _field("Total Dirs", len(fs.directories))),
        (WARNING, _field("Command History", len(session.history))),
        (WARNING, _field("Current Time", f"{shell.clock():%H:%M:%S}")),
        (PRIMARY, DOUBLE_RULE),
    ]


def h_mem(shell: "MKShell", args: List[str]) -> Reply:
    fs = shell.fs
    return [
        (PRIMARY, "Memory Information:"),
        (PRIMARY, RULE),
        (SUCCESS, f"File System: {len(fs.files)} files, {len(fs.directories)} directories"),
        (SUCCESS, f"Command History: {len(shell.session.history)} entries"),
        (SUCCESS, f"Total file size: {fs.total_size()} bytes"),
        (WARNING, "System Memory (simulated):"),
        (SUCCESS, "  Available: 16 MB"),
        (SUCCESS, "  Used: 2 MB"),
        (SUCCESS, "  Free: 14 MB"),
        (PRIMARY, RULE),
    ]


def h_ver(shell: "MKShell", args: List[str]) -> Reply:
    return [(PRIMARY, f"MKS-OS version {VERSION}")]


def h_time(shell: "MKShell", args: List[str]) -> Reply:
    return _ok(f"Current time: {shell.clock():%H:%M:%S}")


def h_date(shell: "MKShell", args: List[str]) -> Reply:
    now = shell.clock()
    return _ok(f"Today: {WEEKDAYS[now.weekday()]}, {MONTHS[now.month - 1]} {now.day}, {now.year}")


def h_pwd(shell: "MKShell", args: List[str]) -> Reply:
    return _ok(f"Current directory: {shell.session.current_directory}")


def h_calc(shell: "MKShell", args: List[str]) -> Reply:
    if not args:
        return [
            (PRIMARY, "Simple calculator. Examples:"),
            (WARNING, "  calc 5 + 3"),
            (WARNING, "  calc 10 * 2.5"),
            (WARNING, "  calc 4+6/2"),
        ]
    return _ok(calculate(" ".join(args)))


def h_shutdown(shell: "MKShell", args: List[str]) -> Reply:
    """Stop the session and ask the host to power off."""
    shell.emit([
        (WARNING, "Preparing to shutdown..."),
        (WARNING, "Saving system settings..."),
        (WARNING, "Stopping processes..."),
        (WARNING, "Shutting down MKS-OS..."),
    ])
    for i in range(shell.settings.countdown, 0, -1):
        shell.emit([(ERROR, f"System will shutdown in {i}...")])
        if shell.settings.animate:
            time.sleep(1)
    shell.session.running = False
    shell.session.power_request = "shutdown"
    return []


def h_reboot(shell: "MKShell", args: List[str]) -> Reply:
    shell.session.running = False
    shell.session.power_request = "reboot"
    return [(WARNING, "Rebooting system...")]


def h_exit(shell: "MKShell", args: List[str]) -> Reply:
    shell.session.running = False
    return _ok("Ending session...")


# Aliases (alternate name -> canonical command)
ALIASES: Dict[str, str] = {
    "clear": "cls",
    "ls": "dir",
    "cat": "type",
    "about": "info",
    "del": "rm",
    "rename": "ren",
}


# Built-in commands mapping (canonical name -> handler)
Handler = Callable[["MKShell", List[str]], Reply]
BUILTINS: "OrderedDict[str, Handler]" = OrderedDict({
    "help": h_help,
    "cls": h_cls,
    "echo": h_echo,
    # filesystem
    "dir": h_dir,
    "cd": h_cd,
    "type": h_type,
    "edit": h_edit,
    "mkdir": h_mkdir,
    "rm": h_rm,
    "copy": h_copy,
    "ren": h_ren,
    # session
    "history": h_history,
    "theme": h_theme,
    "color": h_color,
    "user": h_user,
    # reports
    "info": h_info,
    "mem": h_mem,
    "ver": h_ver,
    "time": h_time,
    "date": h_date,
    "pwd": h_pwd,
    "calc": h_calc,
    # session end
    "shutdown": h_shutdown,
    "reboot": h_reboot,
    "exit": h_exit,
})


# Human-readable help: canonical name -> (usage, description)
HELP_TEXT: "OrderedDict[str, Tuple[str, str]]" = OrderedDict({
    "help": ("help [command]", "Show this help"),
    "cls": ("cls / clear", "Clear screen"),
    "echo": ("echo <text>", "Print text"),
    "dir": ("dir / ls [path]", "List files and folders"),
    "cd": ("cd <path>", "Change directory"),
    "type": ("type / cat <file>", "Show file contents"),
    "info": ("info / about", "System information"),
    "time": ("time", "Current time"),
    "date": ("date", "Current date"),
    "calc": ("calc <expr>", "Simple calculator"),
    "edit": ("edit <file>", "Edit file"),
    "mkdir": ("mkdir <name>", "Create directory"),
    "rm": ("rm / del <file>", "Delete file"),
    "copy": ("copy <src> <dst>", "Copy file"),
    "ren": ("ren <old> <new>", "Rename file"),
    "history": ("history", "Command history"),
    "theme": ("theme <num>", "Change theme (0-4)"),
    "color": ("color <num>", "Change text color (0-15)"),
    "user": ("user <name>", "Change user"),
    "ver": ("ver", "System version"),
    "mem": ("mem", "Memory information"),
    "pwd": ("pwd", "Current directory"),
    "shutdown": ("shutdown", "Shutdown system"),
    "reboot": ("reboot", "Reboot system"),
    "exit": ("exit", "Exit shell"),
})

# commands whose arguments are virtual paths, for tab completion
PATH_COMMANDS = {"dir", "cd", "type", "edit", "rm", "copy", "ren"}


def _split_cmd_args(line: str) -> Tuple[str, List[str]]:
    """Split a command line into the lower-cased command name and its arguments."""
    parts = line.split()
    if not parts:
        return "", []
    return parts[0].lower(), parts[1:]


# ---------- Shell ----------
class MKShell(Cmd):
    """The command loop: one line in, one command executed, prompt again."""

    def __init__(self, settings: Optional[Settings] = None, host: Optional[ConsoleHost] = None,
                 stdin=None, stdout=None, clock: Callable[[], datetime] = datetime.now):
        super().__init__(stdin=stdin, stdout=stdout)
        if stdin is not None:
            self.use_rawinput = False
        self.settings = settings or Settings()
        self.host = host or ConsoleHost()
        self.clock = clock
        self.commands: "OrderedDict[str, Handler]" = OrderedDict(BUILTINS)
        self.aliases: Dict[str, str] = dict(ALIASES)
        for alias, target in self.settings.aliases.items():
            if target not in self.commands:
                raise ValueError(f"alias '{alias}' points at unknown command '{target}'")
            self.aliases[alias] = target
        self.index: List[str] = sorted(set(self.commands) | set(self.aliases))

        self.fs = Namespace()
        booted = self.clock()
        self.session = Session(user_name=self.settings.user, theme=list(self.settings.theme),
                               boot_time=f"{booted:%H:%M:%S}")
        seed_filesystem(self.fs, self.session, booted)
        self.intro = c(f"MKS-OS v{VERSION} successfully loaded!\nType 'help' for command list\n",
                       self.session.colour_for(PRIMARY))
        self._saved_readline: Optional[Tuple[Any, str]] = None

    @property
    def prompt(self) -> str:
        s = self.session
        return c(f"{s.user_name}@{s.current_directory}> ", s.colour_for(PRIMARY))

    # ---- output / input
    def emit(self, reply: Reply) -> None:
        for tone, text in reply:
            self.stdout.write(c(text, self.session.colour_for(tone)) + "\n")
        self.stdout.flush()

    def read_line(self, prompt: str = "") -> str:
        """Read one raw line from the input source; raises InputClosed at end of input."""
        if self.use_rawinput:
            try:
                return input(prompt)
            except EOFError:
                raise InputClosed() from None
        if prompt:
            self.stdout.write(prompt)
            self.stdout.flush()
        line = self.stdin.readline()
        if not line:
            raise InputClosed()
        return line.rstrip("\r\n")

    # ---- helpers
    def _resolve(self, name: str) -> Tuple[str, Handler]:
        """Resolve a folded command name (or alias) to its canonical key and handler."""
        key = self.aliases.get(name, name)
        if key in self.commands:
            return key, self.commands[key]
        raise UnknownCommand(name, difflib.get_close_matches(name, self.index, n=3, cutoff=0.75))

    def dispatch(self, line: str) -> None:
        """Run one input line; every failure ends up as printed output."""
        name, args = _split_cmd_args(line)
        if not name:
            return
        reply: Reply = []
        try:
            key, handler = self._resolve(name)
            log.debug("dispatch %s %r", key, args)
            reply = handler(self, args)
        except InputClosed:
            self.session.running = False
            reply = [(WARNING, "Input closed; ending session.")]
        except ShellError as e:
            reply = e.lines()
        except Exception as e:
            log.exception("command %r failed", name)
            reply = [(ERROR, f"Command '{name}' failed: {e}")]
        self.emit(reply)

    # ---- core overrides
    def cmdloop(self, intro=None):
        """Read and run lines until a command ends the session or input runs out.

        End of input is detected by ``read_line`` itself, so a line reading
        ``EOF`` is just another (unknown) command.
        """
        self.preloop()
        try:
            if intro is not None:
                self.intro = intro
            if self.intro:
                self.stdout.write(str(self.intro) + "\n")
            stop = False
            while not stop:
                try:
                    line = self.read_line(self.prompt)
                except InputClosed:
                    self.session.running = False
                    self.stdout.write("\n")
                    break
                line = self.precmd(line)
                stop = self.onecmd(line)
                stop = self.postcmd(stop, line)
            self.postloop()
        finally:
            self._restore_readline()

    def preloop(self) -> None:
        if not (readline and self.use_rawinput and self.completekey):
            return
        self._saved_readline = (readline.get_completer(), readline.get_completer_delims())
        readline.set_completer(self.complete)
        # paths contain '\' and ':' which readline splits words on by default
        readline.set_completer_delims(" \t\n")
        readline.parse_and_bind(self.completekey + ": complete")
        readline.parse_and_bind("set completion-ignore-case on")

    def _restore_readline(self) -> None:
        if self._saved_readline is None:
            return
        completer, delims = self._saved_readline
        readline.set_completer(completer)
        readline.set_completer_delims(delims)
        self._saved_readline = None

    def precmd(self, line: str) -> str:
        self.session.record_history(line)
        return line

    def onecmd(self, line: str) -> bool:
        self.dispatch(line)
        return not self.session.running

    def emptyline(self) -> bool:
        return False

    def postloop(self) -> None:
        if self.session.power_request == "shutdown":
            self.host.request_shutdown()
        elif self.session.power_request == "reboot":
            self.host.request_reboot()

    # tab completion
    def completenames(self, text, *ignored):
        folded = text.lower()
        return [k for k in self.index if k.startswith(folded)]

    def completedefault(self, text: str, line: str, begidx: int, endidx: int):
        """Complete virtual paths for commands that take them."""
        name, _ = _split_cmd_args(line)
        if self.aliases.get(name, name) not in PATH_COMMANDS:
            return []
        return self._complete_path(text)

    def complete_help(self, text, *ignored):
        return self.completenames(text)

    def _complete_path(self, text: str) -> List[str]:
        """Return completions for a partial path, relative or absolute.

        Sub-directories are suggested with a trailing separator so completion
        can continue into them. Matching ignores case.
        """
        cut = text.rfind(SEP) + 1
        head, partial = text[:cut], text[cut:].lower()
        base = resolve(head, self.session.current_directory) if head else self.session.current_directory
        return [head + name for name in self.fs.children(base) if name.lower().startswith(partial)]


# ---------- main ----------
BANNER = r"""
 __  __ _  __ ____        ___  ____
|  \/  | |/ // ___|      / _ \/ ___|
| |\/| | ' / \___ \ ____| | | \___ \
| |  | | . \  ___) |____| |_| |___) |
|_|  |_|_|\_\|____/      \___/|____/
"""


def show_boot_screen(animate: bool = True) -> None:
    print("\033c", end="")
    print(c(BANNER, Fore.MAGENTA))
    print(c(f"        Text Operating System v{VERSION}\n", Fore.MAGENTA))
    for step in ("Initializing CPU", "Checking memory", "Initializing file system", "Loading command shell"):
        if animate:
            spinner(step, 0.4)
        print(c(f"{step}...", Fore.GREEN))
    print()


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mks-os", description="MKS-OS interactive shell")
    parser.add_argument("--config", default=DEFAULT_SETTINGS_PATH, help="YAML settings file")
    parser.add_argument("--user", help="user to log in as")
    parser.add_argument("--no-animate", action="store_true", help="skip boot and shutdown pacing")
    parser.add_argument("--debug", action="store_true", help="debug logging on stderr")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="[%(asctime)s] %(levelname)s: %(message)s",
    )
    colorama_init(autoreset=True)
    host = ConsoleHost()
    crashes = 0
    while True:
        host.pending = None
        try:
            settings = load_settings(args.config)
            if args.user:
                settings.user = args.user
            if args.no_animate:
                settings.animate = False
            shell = MKShell(settings=settings, host=host)
            show_boot_screen(settings.animate)
        except Exception as e:
            log.exception("initialization failed")
            print(c(f"Initialization error: {e}", Fore.RED))
            return 1
        try:
            shell.cmdloop()
        except KeyboardInterrupt:
            print()
            return 0
        except Exception as e:
            log.exception("session loop failed")
            print(c(f"\nCritical error: {e}", Fore.RED))
            crashes += 1
            if crashes >= 3:
                return 1
            host.request_reboot()
        if host.pending != "reboot":
            break
    print(c("MKS-OS halted.", Fore.MAGENTA))
    return 0


if __name__ == "__main__":
    sys.exit(main())
