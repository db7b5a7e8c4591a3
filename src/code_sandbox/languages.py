"""Language registry: file extension or language name to build/run profile.

The table is built once from compiled-in defaults and exposed through a
read-only mapping, so concurrent executions can share it without locking.

Example:
    ```python
    registry = LanguageRegistry.default()
    profile = registry.resolve(".cpp")
    profile = registry.resolve("c++")          # same profile
    registry.artifact_path(Path("/w/a.cpp"), profile)  # /w/a.out
    ```
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType

from code_sandbox import constants
from code_sandbox.exceptions import UnsupportedLanguageError
from code_sandbox.models import Language, LanguageProfile

# Alternate spellings accepted by resolve(), in addition to the Language values.
LANGUAGE_ALIASES: Mapping[str, Language] = MappingProxyType(
    {
        "py": Language.PYTHON,
        "python3": Language.PYTHON,
        "js": Language.JAVASCRIPT,
        "node": Language.JAVASCRIPT,
        "golang": Language.GO,
        "c++": Language.CPP,
        "cxx": Language.CPP,
        "sh": Language.BASH,
        "shell": Language.BASH,
    }
)


def build_default_profiles(base_timeout_seconds: int = constants.DEFAULT_TIMEOUT_SECONDS) -> list[LanguageProfile]:
    """Reference deployment profiles.

    Interpreted languages get `base_timeout_seconds`, compiled languages get
    COMPILED_TIMEOUT_MULTIPLIER times that to cover compile + run.
    """
    compiled_timeout = base_timeout_seconds * constants.COMPILED_TIMEOUT_MULTIPLIER
    return [
        LanguageProfile(
            language=Language.PYTHON,
            extensions=(".py",),
            command="python3",
            # compile() without writing __pycache__ into the shared work dir
            compile_args=("-c", "import sys; compile(open(sys.argv[1], 'rb').read(), sys.argv[1], 'exec')"),
            run_command=("python3",),
            timeout_seconds=base_timeout_seconds,
            compile_timeout_seconds=base_timeout_seconds,
            known_exit_codes={1: "Python syntax error"},
        ),
        LanguageProfile(
            language=Language.JAVASCRIPT,
            extensions=(".js",),
            command="node",
            compile_args=("--check",),
            run_command=("node",),
            timeout_seconds=base_timeout_seconds,
            compile_timeout_seconds=base_timeout_seconds,
            known_exit_codes={1: "JavaScript syntax error"},
        ),
        LanguageProfile(
            language=Language.GO,
            extensions=(".go",),
            command="go",
            compile_args=("build",),
            syntax_check_args=("vet",),
            output_flag="-o",
            needs_compile=True,
            timeout_seconds=compiled_timeout,
            compile_timeout_seconds=compiled_timeout,
            known_exit_codes={1: "Go compilation error"},
        ),
        LanguageProfile(
            language=Language.C,
            extensions=(".c",),
            command="gcc",
            compile_args=("-Wall", "-O2"),
            syntax_check_args=("-Wall", "-fsyntax-only"),
            output_flag="-o",
            needs_compile=True,
            artifact_suffix=".out",
            timeout_seconds=compiled_timeout,
            compile_timeout_seconds=compiled_timeout,
            known_exit_codes={1: "C compilation error"},
        ),
        LanguageProfile(
            language=Language.CPP,
            extensions=(".cpp",),
            command="g++",
            compile_args=("-Wall", "-O2", "-std=c++17"),
            syntax_check_args=("-Wall", "-std=c++17", "-fsyntax-only"),
            output_flag="-o",
            needs_compile=True,
            artifact_suffix=".out",
            timeout_seconds=compiled_timeout,
            compile_timeout_seconds=compiled_timeout,
            known_exit_codes={1: "C++ compilation error"},
        ),
        LanguageProfile(
            language=Language.BASH,
            extensions=(".sh",),
            command="bash",
            compile_args=("-n",),
            run_command=("bash",),
            timeout_seconds=base_timeout_seconds,
            compile_timeout_seconds=base_timeout_seconds,
            known_exit_codes={2: "Bash syntax error"},
        ),
    ]


class LanguageRegistry:
    """Read-only lookup from extension or language name to LanguageProfile."""

    def __init__(self, profiles: Iterable[LanguageProfile]) -> None:
        by_language: dict[Language, LanguageProfile] = {}
        by_extension: dict[str, LanguageProfile] = {}
        for profile in profiles:
            if profile.language in by_language:
                raise ValueError(f"Duplicate profile for language {profile.language.value}")
            by_language[profile.language] = profile
            for ext in map(str.lower, profile.extensions):
                if ext in by_extension:
                    raise ValueError(f"Extension {ext} registered twice")
                by_extension[ext] = profile

        self._by_language: Mapping[Language, LanguageProfile] = MappingProxyType(by_language)
        self._by_extension: Mapping[str, LanguageProfile] = MappingProxyType(by_extension)

    @classmethod
    def default(cls, base_timeout_seconds: int = constants.DEFAULT_TIMEOUT_SECONDS) -> LanguageRegistry:
        """Registry with the reference deployment languages."""
        return cls(build_default_profiles(base_timeout_seconds))

    @property
    def profiles(self) -> Mapping[Language, LanguageProfile]:
        return self._by_language

    def languages(self) -> list[Language]:
        return list(self._by_language)

    def supported_extensions(self) -> list[str]:
        return sorted(self._by_extension)

    def resolve(self, extension_or_name: str | Language) -> LanguageProfile:
        """Resolve a file extension (".py"), language name ("python") or alias ("js").

        Raises:
            UnsupportedLanguageError: Nothing registered under that key
        """
        if isinstance(extension_or_name, Language):
            profile = self._by_language.get(extension_or_name)
            if profile is None:
                raise UnsupportedLanguageError(extension_or_name.value, self.supported_extensions())
            return profile

        key = extension_or_name.strip().lower()
        if key.startswith("."):
            profile = self._by_extension.get(key)
        else:
            language = LANGUAGE_ALIASES.get(key)
            if language is None:
                try:
                    language = Language(key)
                except ValueError:
                    language = None
            profile = self._by_language.get(language) if language is not None else None
            if profile is None:
                # Bare extension without the dot ("cpp" is also a name, "go" too)
                profile = self._by_extension.get(f".{key}")

        if profile is None:
            raise UnsupportedLanguageError(extension_or_name, self.supported_extensions())
        return profile

    def profile_for_path(self, path: Path) -> LanguageProfile:
        """Resolve by the file's extension."""
        if not path.suffix:
            raise UnsupportedLanguageError(path.name, self.supported_extensions())
        return self.resolve(path.suffix)

    @staticmethod
    def artifact_path(source: Path, profile: LanguageProfile) -> Path:
        """Deterministic compiled-artifact path: extension stripped, suffix appended.

        /w/tmp_1.c -> /w/tmp_1.out, /w/tmp_1.go -> /w/tmp_1
        """
        return source.with_name(source.stem + profile.artifact_suffix)
