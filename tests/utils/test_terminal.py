"""Tests for terminal capability helpers."""

import locale
import sys
from types import SimpleNamespace

import pytest

import src.utils.terminal as terminal_module
from src.utils.terminal import supports_color, supports_utf8


@pytest.fixture(autouse=True)
def clear_terminal_caches(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear the caches and colour hints before each test."""
    supports_utf8.cache_clear()
    supports_color.cache_clear()
    for key in ("NO_COLOR", "TERM", "WT_SESSION", "ANSICON", "TERM_PROGRAM"):
        monkeypatch.delenv(key, raising=False)


def _fake_stdout(*, encoding: str | None, isatty: bool) -> SimpleNamespace:
    """Create a fake stdout object with specified encoding and isatty behavior."""
    return SimpleNamespace(encoding=encoding, isatty=lambda: isatty)


def test_supports_utf8_true_with_stdout_encoding(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test that supports_utf8 returns True when stdout encoding is UTF-8."""
    monkeypatch.setattr(sys, "stdout", _fake_stdout(encoding="UTF-8", isatty=True))

    assert supports_utf8()


def test_supports_utf8_uses_locale_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that supports_utf8 falls back to locale encoding when encoding is None."""
    monkeypatch.setattr(sys, "stdout", _fake_stdout(encoding=None, isatty=True))
    monkeypatch.setattr(locale, "getpreferredencoding", lambda _: "latin-1")

    assert not supports_utf8()


def test_supports_color_false_when_not_tty(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that supports_color returns False when stdout is not a TTY."""
    monkeypatch.setattr(sys, "stdout", _fake_stdout(encoding="UTF-8", isatty=False))
    monkeypatch.setattr(sys, "platform", "linux")

    assert not supports_color()


def test_supports_color_true_on_linux_tty(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that supports_color returns True on a Linux TTY."""
    monkeypatch.setattr(sys, "stdout", _fake_stdout(encoding="UTF-8", isatty=True))
    monkeypatch.setattr(sys, "platform", "linux")

    assert supports_color()


def test_no_color_and_dumb_terminals(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that NO_COLOR and TERM=dumb disable colours."""
    monkeypatch.setattr(sys, "stdout", _fake_stdout(encoding="UTF-8", isatty=True))
    monkeypatch.setattr(sys, "platform", "linux")

    monkeypatch.setenv("TERM", "dumb")
    assert not supports_color()

    supports_color.cache_clear()
    monkeypatch.delenv("TERM")
    monkeypatch.setenv("NO_COLOR", "1")
    assert not supports_color()


def test_supports_color_windows_session(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that supports_color returns True on Windows with WT_SESSION set."""
    monkeypatch.setattr(sys, "stdout", _fake_stdout(encoding="UTF-8", isatty=True))
    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.setenv("WT_SESSION", "1")

    assert supports_color()


def test_supports_color_windows_without_capabilities(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test that supports_color returns False on Windows without terminal."""
    monkeypatch.setattr(sys, "stdout", _fake_stdout(encoding="UTF-8", isatty=True))
    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.setattr(
        terminal_module.colorama, "fixed_windows_console", False, raising=False
    )

    assert not supports_color()
