from __future__ import annotations

import shutil
import signal
import sys
from dataclasses import dataclass
from typing import Callable, TextIO

from colorama import Fore, Style, just_fix_windows_console

CSI = "\x1b["


@dataclass(frozen=True, slots=True)
class Theme:
    title: str = Fore.CYAN + Style.BRIGHT
    current: str = Fore.GREEN + Style.BRIGHT
    dim: str = Style.DIM
    status: str = Fore.YELLOW + Style.BRIGHT
    reset: str = Style.RESET_ALL


@dataclass(frozen=True, slots=True)
class Frame:
    title: str
    lines: list[str]
    current_idx: int
    context_lines: int
    status: str = ""


class AnsiRenderer:
    """
    Full-frame terminal view of the lyric window around the current line.
    Pure consumer: it draws what the engine hands it and nothing else.
    """

    def __init__(self, use_alt_screen: bool = True, theme: Theme | None = None, out: TextIO | None = None):
        self.use_alt_screen = use_alt_screen
        self.theme = theme or Theme()
        self.out = out or sys.stdout
        self._entered = False
        self._resize_handler: Callable[..., None] | None = None
        self._last_frame: Frame | None = None

    def __enter__(self):
        self.enter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exit()

    def enter(self) -> None:
        if self._entered:
            return
        just_fix_windows_console()
        if self.use_alt_screen:
            self.out.write(CSI + "?1049h")  # alt screen
        self.out.write(CSI + "?25l")  # hide cursor
        self.out.write(CSI + "H" + CSI + "2J")
        self.out.flush()
        self._entered = True

        def _on_resize(signum=None, frame=None):
            if self._last_frame is not None:
                self.draw(self._last_frame)

        self._resize_handler = _on_resize
        if hasattr(signal, "SIGWINCH"):
            signal.signal(signal.SIGWINCH, _on_resize)

    def exit(self) -> None:
        if not self._entered:
            return
        if self._resize_handler is not None and hasattr(signal, "SIGWINCH"):
            signal.signal(signal.SIGWINCH, signal.SIG_DFL)
        self._resize_handler = None
        self.out.write(self.theme.reset)
        self.out.write(CSI + "?25h")  # show cursor
        if self.use_alt_screen:
            self.out.write(CSI + "?1049l")
        self.out.flush()
        self._entered = False
        self._last_frame = None

    def render(
        self,
        title: str,
        lines: list[str],
        current_idx: int,
        context_lines: int = 1,
        status: str = "",
    ) -> None:
        self.draw(Frame(title, list(lines), current_idx, context_lines, status))

    def draw(self, frame: Frame) -> None:
        self._last_frame = frame
        self.out.write(CSI + "H" + CSI + "2J")
        self.out.write("\n".join(self.compose(frame)))
        self.out.write(self.theme.reset)
        self.out.flush()

    def compose(self, frame: Frame) -> list[str]:
        _cols, rows = shutil.get_terminal_size(fallback=(80, 24))
        # title and status rows are reserved
        body_rows = max(rows - 2, 1)
        lines = frame.lines

        if frame.current_idx < 0:
            start = 0
        else:
            start = max(frame.current_idx - frame.context_lines, 0)
        end = min(start + body_rows, len(lines))
        start = max(end - body_rows, 0)

        out = [f"{self.theme.title}♫ {frame.title} ♫{self.theme.reset}"]
        for i in range(start, end):
            style = self.theme.current if i == frame.current_idx else self.theme.dim
            out.append(f"{style}{lines[i]}{self.theme.reset}")
        if frame.status:
            out.append(f"{self.theme.status}{frame.status}{self.theme.reset}")
        return out
