"""Local offline speech for when the synthesis service is unavailable.

Uses the platform speech command: macOS `say` or Linux `espeak-ng`. Speech
runs in an asyncio subprocess that ``stop`` terminates.
"""

import asyncio
import logging
import shutil
from typing import Protocol

from ..errors import LocalSpeechError

logger = logging.getLogger(__name__)

# Words per minute of both `say` and `espeak-ng` at normal speed
BASE_WORDS_PER_MINUTE = 175


class LocalSpeaker(Protocol):
    """Interface for offline speech synthesis."""

    @property
    def name(self) -> str:
        """Short speaker name shown in notices."""
        ...

    @property
    def is_available(self) -> bool:
        """Return True if the speaker can be used on this machine."""
        ...

    async def speak(self, text: str, rate: float = 1.0, volume: float = 1.0) -> None:
        """Speak text and return when speech has finished.

        Args:
            text: Plain text to speak
            rate: Speed multiplier (1.0 = normal)
            volume: Volume from 0.0 to 1.0

        Raises:
            LocalSpeechError: If speech could not be produced
        """
        ...

    async def stop(self) -> None:
        """Stop speaking. Safe to call when silent."""
        ...


class _CommandSpeaker:
    """Runs one speech command at a time."""

    command = ""

    def __init__(self) -> None:
        self._path = shutil.which(self.command)
        self._process: asyncio.subprocess.Process | None = None

    @property
    def name(self) -> str:
        """Name of the speech command."""
        return self.command

    @property
    def is_available(self) -> bool:
        """Check if the speech command is installed."""
        return self._path is not None

    async def _run(self, args: list[str]) -> None:
        if not self.is_available:
            raise LocalSpeechError(f"{self.command} not found")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise LocalSpeechError(f"Cannot run {self.command}: {e}") from e

        process = self._process
        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            await self.stop()
            raise
        finally:
            if self._process is process:
                self._process = None

        # Negative return codes mean stop() terminated the process
        if process.returncode is not None and process.returncode > 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise LocalSpeechError(f"{self.command} failed ({process.returncode}): {message}")

    async def stop(self) -> None:
        """Terminate the running speech command."""
        process = self._process
        if process is None or process.returncode is not None:
            return
        process.terminate()
        await process.wait()


class MacOSSpeaker(_CommandSpeaker):
    """Offline speech with the macOS `say` command.

    Picks the first installed voice whose locale matches the language.
    """

    command = "say"

    def __init__(self, language: str = "ja", voice: str | None = None) -> None:
        """Initialize macOS speaker.

        Args:
            language: Language code used to pick a voice (e.g., "ja")
            voice: Explicit voice name, skips the language lookup
        """
        super().__init__()
        self._language = language
        self._voice = voice
        self._voice_resolved = voice is not None

    async def list_voices(self) -> list[tuple[str, str]]:
        """List installed voices.

        Returns:
            (name, locale) pairs, e.g. ("Kyoko", "ja_JP")
        """
        if not self.is_available:
            return []

        process = await asyncio.create_subprocess_exec(
            "say",
            "-v",
            "?",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        stdout, _ = await process.communicate()
        if process.returncode != 0:
            logger.warning(f"Failed to list macOS voices (status {process.returncode})")
            return []
        return parse_say_voices(stdout.decode("utf-8", errors="replace"))

    async def _resolve_voice(self) -> str | None:
        if not self._voice_resolved:
            self._voice_resolved = True
            for name, locale in await self.list_voices():
                if locale.lower().startswith(self._language.lower()):
                    self._voice = name
                    break
            else:
                logger.warning(f"No '{self._language}' voice installed, using system voice")
            logger.debug(f"Local voice: {self._voice}")
        return self._voice

    async def speak(self, text: str, rate: float = 1.0, volume: float = 1.0) -> None:
        """Speak text with `say`."""
        voice = await self._resolve_voice()
        args = ["say", "-r", str(int(BASE_WORDS_PER_MINUTE * rate))]
        if voice:
            args.extend(["-v", voice])
        # `say` has no volume flag; embedded command sets it
        args.append(f"[[volm {max(0.0, min(1.0, volume)):.2f}]] {text}")
        await self._run(args)


def parse_say_voices(output: str) -> list[tuple[str, str]]:
    """Parse `say -v ?` output.

    Lines look like ``Kyoko               ja_JP    # こんにちは``. Voice names
    may contain spaces, so the locale is the last token before ``#``.
    """
    voices = []
    for line in output.splitlines():
        head = line.split("#", 1)[0].split()
        if len(head) >= 2:
            voices.append((" ".join(head[:-1]), head[-1]))
    return voices


class EspeakSpeaker(_CommandSpeaker):
    """Offline speech with `espeak-ng` on Linux."""

    command = "espeak-ng"

    def __init__(self, language: str = "ja", voice: str | None = None) -> None:
        """Initialize espeak-ng speaker.

        Args:
            language: espeak-ng voice/language code (e.g., "ja")
            voice: Explicit voice name, overrides the language
        """
        super().__init__()
        self._voice = voice or language

    async def speak(self, text: str, rate: float = 1.0, volume: float = 1.0) -> None:
        """Speak text with `espeak-ng`."""
        # Amplitude range is 0-200, 100 is normal
        amplitude = int(max(0.0, min(1.0, volume)) * 100)
        await self._run(
            [
                "espeak-ng",
                "-v",
                self._voice,
                "-s",
                str(int(BASE_WORDS_PER_MINUTE * rate)),
                "-a",
                str(amplitude),
                text,
            ]
        )


def create_local_speaker(
    language: str = "ja",
    voice: str | None = None,
    use_mock: bool = False,
) -> LocalSpeaker:
    """Create the offline speaker for this machine.

    Args:
        language: Preferred language code
        voice: Explicit voice name
        use_mock: If True, return mock implementation for testing

    Returns:
        LocalSpeaker implementation. When no speech command is installed the
        returned speaker reports ``is_available`` False.
    """
    if use_mock:
        from .mock import MockLocalSpeaker

        return MockLocalSpeaker()

    mac = MacOSSpeaker(language=language, voice=voice)
    if mac.is_available:
        logger.info("Using macOS say for local speech")
        return mac

    espeak = EspeakSpeaker(language=language, voice=voice)
    if not espeak.is_available:
        logger.warning("No local speech command found (install espeak-ng)")
    else:
        logger.info("Using espeak-ng for local speech")
    return espeak


__all__ = [
    "EspeakSpeaker",
    "LocalSpeaker",
    "MacOSSpeaker",
    "create_local_speaker",
    "parse_say_voices",
]
