"""
Language runtime registry.

Maps a language key to the container image, source filename and command
sequence used to run it. Adding a language means adding one entry to
``DEFAULT_PROFILES``; nothing else in the engine branches on the language.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from polyrun.exceptions import UnsupportedLanguageError

logger = logging.getLogger(__name__)

Command = Tuple[str, ...]


@dataclass(frozen=True)
class LanguageProfile:
    """How to run one language.

    ``commands`` holds one command for interpreted languages and a compile
    command followed by a run command for compiled ones. Commands run in the
    container working directory where the source file is mounted.
    """
    key: str
    image: str
    filename: str
    commands: Tuple[Command, ...]

    def __post_init__(self):
        if not self.commands:
            raise ValueError(f"Profile {self.key!r} has no commands")
        object.__setattr__(self, "commands", tuple(tuple(c) for c in self.commands))

    @property
    def two_phase(self) -> bool:
        return len(self.commands) > 1

    @property
    def compile_command(self) -> Optional[Command]:
        return self.commands[0] if self.two_phase else None

    @property
    def run_command(self) -> Command:
        return self.commands[-1]


DEFAULT_PROFILES: Tuple[LanguageProfile, ...] = (
    LanguageProfile("python", "python:3.11-slim", "main.py", (("python", "main.py"),)),
    LanguageProfile(
        "java", "eclipse-temurin:17-jdk", "Main.java",
        (("javac", "Main.java"), ("java", "Main")),
    ),
    LanguageProfile("javascript", "node:18-alpine", "main.js", (("node", "main.js"),)),
    LanguageProfile(
        "typescript", "denoland/deno:alpine", "main.ts",
        (("deno", "run", "--quiet", "main.ts"),),
    ),
    LanguageProfile("go", "golang:1.21-alpine", "main.go", (("go", "run", "main.go"),)),
    LanguageProfile(
        "rust", "rust:1.75-slim", "main.rs",
        (("rustc", "-o", "main", "main.rs"), ("./main",)),
    ),
    LanguageProfile(
        "c", "gcc:13", "main.c",
        (("gcc", "-o", "main", "main.c"), ("./main",)),
    ),
    LanguageProfile(
        "cpp", "gcc:13", "main.cpp",
        (("g++", "-o", "main", "main.cpp"), ("./main",)),
    ),
    LanguageProfile(
        "csharp", "mono:6.12", "Program.cs",
        (("mcs", "-out:main.exe", "Program.cs"), ("mono", "main.exe")),
    ),
    LanguageProfile("php", "php:8.2-cli", "main.php", (("php", "main.php"),)),
    LanguageProfile("ruby", "ruby:3.2-slim", "main.rb", (("ruby", "main.rb"),)),
    LanguageProfile("bash", "ubuntu:22.04", "main.sh", (("bash", "main.sh"),)),
)

DEFAULT_ALIASES: Dict[str, str] = {
    "py": "python",
    "python3": "python",
    "js": "javascript",
    "node": "javascript",
    "ts": "typescript",
    "golang": "go",
    "rs": "rust",
    "c++": "cpp",
    "cs": "csharp",
    "c#": "csharp",
    "rb": "ruby",
    "sh": "bash",
    "shell": "bash",
}


def _normalize(language: str) -> str:
    return (language or "").strip().lower()


class LanguageRegistry:
    """Lookup table of language profiles.

    Profiles are immutable; registering a key that already exists replaces the
    entry rather than mutating the old profile.
    """

    def __init__(
        self,
        profiles: Iterable[LanguageProfile] = (),
        aliases: Optional[Dict[str, str]] = None,
    ):
        self._profiles: Dict[str, LanguageProfile] = {}
        self._aliases: Dict[str, str] = {}
        for profile in profiles:
            self.register(profile)
        for alias, key in (aliases or {}).items():
            self.add_alias(alias, key)

    def register(self, profile: LanguageProfile) -> None:
        key = _normalize(profile.key)
        if key in self._profiles:
            logger.debug(f"Replacing language profile: {key}")
        self._profiles[key] = profile

    def add_alias(self, alias: str, key: str) -> None:
        key = _normalize(key)
        if key not in self._profiles:
            raise UnsupportedLanguageError(key, self.languages())
        self._aliases[_normalize(alias)] = key

    def resolve(self, language: str) -> LanguageProfile:
        key = _normalize(language)
        key = self._aliases.get(key, key)
        profile = self._profiles.get(key)
        if profile is None:
            raise UnsupportedLanguageError(language, self.languages())
        return profile

    def supports(self, language: str) -> bool:
        key = _normalize(language)
        return self._aliases.get(key, key) in self._profiles

    def languages(self) -> List[str]:
        return sorted(self._profiles)

    def profiles(self) -> List[LanguageProfile]:
        return [self._profiles[key] for key in self.languages()]

    def images(self) -> List[str]:
        seen = []
        for profile in self.profiles():
            if profile.image not in seen:
                seen.append(profile.image)
        return seen

    def __contains__(self, language: str) -> bool:
        return self.supports(language)

    def __len__(self) -> int:
        return len(self._profiles)


def default_registry() -> LanguageRegistry:
    """Build a registry holding the reference language table."""
    return LanguageRegistry(DEFAULT_PROFILES, DEFAULT_ALIASES)
