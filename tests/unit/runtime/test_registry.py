"""
Unit tests for the language runtime registry.
"""
import dataclasses

import pytest

from polyrun.exceptions import UnsupportedLanguageError
from polyrun.runtime.registry import (
    DEFAULT_PROFILES,
    LanguageProfile,
    LanguageRegistry,
    default_registry,
)

REFERENCE_LANGUAGES = [
    "python", "java", "javascript", "typescript", "go", "rust",
    "c", "cpp", "csharp", "php", "ruby",
]


class TestLanguageProfile:
    def test_single_phase(self):
        profile = LanguageProfile("python", "python:3.11-slim", "main.py", (("python", "main.py"),))
        assert not profile.two_phase
        assert profile.compile_command is None
        assert profile.run_command == ("python", "main.py")

    def test_two_phase(self):
        profile = LanguageProfile(
            "c", "gcc:13", "main.c", (("gcc", "-o", "main", "main.c"), ("./main",))
        )
        assert profile.two_phase
        assert profile.compile_command == ("gcc", "-o", "main", "main.c")
        assert profile.run_command == ("./main",)

    def test_commands_normalized_to_tuples(self):
        profile = LanguageProfile("ruby", "ruby:3.2-slim", "main.rb", [["ruby", "main.rb"]])
        assert profile.commands == (("ruby", "main.rb"),)

    def test_no_commands_raises(self):
        with pytest.raises(ValueError, match="has no commands"):
            LanguageProfile("empty", "busybox", "main.txt", ())

    def test_immutable(self):
        profile = DEFAULT_PROFILES[0]
        with pytest.raises(dataclasses.FrozenInstanceError):
            profile.image = "other"


class TestDefaultRegistry:
    @pytest.mark.parametrize("language", REFERENCE_LANGUAGES)
    def test_reference_languages_registered(self, language):
        registry = default_registry()
        profile = registry.resolve(language)
        assert profile.key == language
        assert profile.image
        assert profile.filename

    def test_java_compiles_then_runs(self):
        profile = default_registry().resolve("java")
        assert profile.filename == "Main.java"
        assert profile.commands == (("javac", "Main.java"), ("java", "Main"))

    @pytest.mark.parametrize("language", ["java", "rust", "c", "cpp", "csharp"])
    def test_compiled_languages_are_two_phase(self, language):
        assert default_registry().resolve(language).two_phase

    @pytest.mark.parametrize("language", ["python", "javascript", "typescript", "go", "php", "ruby"])
    def test_interpreted_languages_are_single_phase(self, language):
        assert not default_registry().resolve(language).two_phase

    def test_resolve_is_case_insensitive(self):
        registry = default_registry()
        assert registry.resolve("  Python ").key == "python"
        assert registry.resolve("JAVA").key == "java"

    @pytest.mark.parametrize("alias,key", [("py", "python"), ("js", "javascript"), ("c++", "cpp"), ("golang", "go")])
    def test_aliases(self, alias, key):
        assert default_registry().resolve(alias).key == key

    def test_unknown_language_raises(self):
        registry = default_registry()
        with pytest.raises(UnsupportedLanguageError, match="Unsupported language: cobol") as exc_info:
            registry.resolve("cobol")
        assert exc_info.value.language == "cobol"
        assert "python" in exc_info.value.details["supported"]

    def test_empty_language_raises(self):
        with pytest.raises(UnsupportedLanguageError):
            default_registry().resolve("")

    def test_images_deduplicated(self):
        images = default_registry().images()
        assert len(images) == len(set(images))
        assert "gcc:13" in images


class TestLanguageRegistry:
    def test_register_adds_language(self):
        registry = LanguageRegistry()
        assert len(registry) == 0
        registry.register(LanguageProfile("lua", "nickblah/lua:5.4", "main.lua", (("lua", "main.lua"),)))
        assert "lua" in registry
        assert registry.resolve("LUA").image == "nickblah/lua:5.4"
        assert registry.languages() == ["lua"]

    def test_register_replaces_existing(self):
        registry = default_registry()
        registry.register(LanguageProfile("python", "python:3.12-slim", "main.py", (("python", "main.py"),)))
        assert registry.resolve("python").image == "python:3.12-slim"
        assert registry.resolve("py").image == "python:3.12-slim"

    def test_alias_to_unknown_language_raises(self):
        registry = LanguageRegistry()
        with pytest.raises(UnsupportedLanguageError):
            registry.add_alias("x", "missing")

    def test_supports(self):
        registry = default_registry()
        assert registry.supports("rb")
        assert not registry.supports("cobol")
