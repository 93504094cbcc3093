"""
Pygame frontend

Draws the effects the engine dispatches and turns keyboard/mouse input into
engine hooks. The window is polled from an asyncio loop so engine tasks
(proceed, rollback, autoplay ticks) run between frames.

Keys:
- Enter / Space / left click: finish typing, then continue
- Backspace / wheel up: go back one statement
- 1-9 or click: pick a choice
- A: autoplay on/off
- Tab: backlog view
- F5 / F9: quick save / quick load
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

import pygame
from pygame import Surface

from ..engine.effects import (
    ChoiceOption,
    ClearDialog,
    CompleteTyping,
    Effect,
    HideChoices,
    PopNvlLine,
    RestoreNvlPage,
    ShowChoices,
    ShowDialog,
    StartParticles,
    StopParticles,
)
from ..engine.renderer import IRenderer
from ..ui.backlog import Backlog
from ..ui.textwrap import fit_lines, wrap_text

if TYPE_CHECKING:  # pragma: no cover
    from ..engine.engine import Engine

logger = logging.getLogger(__name__)

# Logical canvas size (16:9)
LOGICAL_SIZE: Tuple[int, int] = (1280, 720)

PANEL_MARGIN_X = 40
PANEL_MARGIN_BOTTOM = 30
PANEL_HEIGHT = 200
PANEL_PADDING = 20
CHOICE_HEIGHT = 48
CHOICE_GAP = 12


class Theme:
    BACKGROUND = (18, 20, 28)
    PANEL_BG = (15, 20, 35)
    PANEL_BG_ALPHA = 220
    PANEL_BORDER = (80, 100, 140)
    TEXT = (255, 255, 255)
    NAME = (255, 235, 180)
    CHOICE_BG = (40, 55, 90)
    CHOICE_HOVER = (70, 95, 150)
    CHOICE_LOCKED = (60, 60, 60)
    BANNER = (60, 160, 60)
    ERROR = (200, 60, 60)
    PARTICLE = (220, 220, 255)


def init_font(font_path: Optional[str], size: int) -> pygame.font.Font:
    if font_path and Path(font_path).exists():
        return pygame.font.Font(str(font_path), size)
    families = [
        "Noto Sans CJK JP",
        "Noto Sans CJK SC",
        "Source Han Sans",
        "Microsoft YaHei",
        "PingFang SC",
        "DejaVu Sans",
    ]
    return pygame.font.SysFont(families, size)


def parse_color(value: Optional[str], default: Tuple[int, int, int]) -> Tuple[int, int, int]:
    if not value:
        return default
    try:
        c = pygame.Color(value)
    except ValueError:
        return default
    return (c.r, c.g, c.b)


# ============================================================================
# Typewriter
# ============================================================================

@dataclass
class Typewriter:
    """Characters revealed so far, driven by pygame ticks (milliseconds)."""
    text: str = ""
    start_ms: int = 0
    chars_per_second: float = 45.0
    instant: bool = False

    def revealed(self, now_ms: int) -> int:
        if self.instant or self.chars_per_second <= 0:
            return len(self.text)
        elapsed = max(0, now_ms - self.start_ms)
        return min(len(self.text), int(elapsed / 1000.0 * self.chars_per_second))

    def is_complete(self, now_ms: int) -> bool:
        return self.revealed(now_ms) >= len(self.text)

    def visible_text(self, now_ms: int) -> str:
        return self.text[: self.revealed(now_ms)]

    def reveal_all(self) -> None:
        self.instant = True


@dataclass
class Particle:
    x: float
    y: float
    vx: float
    vy: float


@dataclass
class ParticleField:
    name: str
    config: Dict = field(default_factory=dict)
    particles: List[Particle] = field(default_factory=list)

    def spawn(self, width: int, height: int) -> None:
        count = int(self.config.get("count", 60))
        speed = float(self.config.get("speed", 40.0))
        self.particles = [
            Particle(random.uniform(0, width), random.uniform(0, height),
                     random.uniform(-speed / 4, speed / 4), random.uniform(speed / 2, speed))
            for _ in range(count)
        ]

    def update(self, dt: float, width: int, height: int) -> None:
        for p in self.particles:
            p.x = (p.x + p.vx * dt) % width
            p.y = (p.y + p.vy * dt) % height


# ============================================================================
# Renderer
# ============================================================================

class PygameRenderer(IRenderer):
    def __init__(self, title: str = "Tsuzuri", font_path: Optional[str] = None, font_size: int = 28,
                 text_speed: float = 45.0, quick_slot: str = "Save_1", backlog: Optional[Backlog] = None) -> None:
        pygame.init()
        self.screen = pygame.display.set_mode(LOGICAL_SIZE, pygame.RESIZABLE)
        pygame.display.set_caption(title)
        self.canvas = pygame.Surface(LOGICAL_SIZE)
        self.font = init_font(font_path, font_size)
        self._hint_font = init_font(font_path, max(16, int(font_size * 0.7)))
        self.text_speed = float(text_speed)
        self.quick_slot = quick_slot
        self.backlog = backlog
        self.show_backlog = False

        # what is on screen
        self.mode = "adv"
        self.name: Optional[str] = None
        self.name_color: Optional[str] = None
        self.typewriter = Typewriter(chars_per_second=self.text_speed, instant=True)
        self.nvl_lines: List[Tuple[Optional[str], str]] = []
        self.choices: List[ChoiceOption] = []
        self.prompt: Optional[str] = None
        self.particles: Optional[ParticleField] = None
        self._banner: Optional[Tuple[str, Tuple[int, int, int], int]] = None
        self._choice_rects: List[Tuple[pygame.Rect, ChoiceOption]] = []
        self._last_tick = pygame.time.get_ticks()
        self._typing_reported = True

        # engine hooks
        self._proceed_hook: Optional[Callable[[], None]] = None
        self._rollback_hook: Optional[Callable[[], None]] = None
        self._choose_hook: Optional[Callable[[str], None]] = None
        self._autoplay_hook: Optional[Callable[[bool], None]] = None
        self._typing_done_hook: Optional[Callable[[], None]] = None
        self._save_slot_hook: Optional[Callable[..., None]] = None
        self._load_slot_hook: Optional[Callable[[str], None]] = None
        self._auto_mode = False

    # --- hook setters ---
    def set_proceed_hook(self, fn: Callable[[], None]) -> None:
        self._proceed_hook = fn

    def set_rollback_hook(self, fn: Callable[[], None]) -> None:
        self._rollback_hook = fn

    def set_choose_hook(self, fn: Callable[[str], None]) -> None:
        self._choose_hook = fn

    def set_autoplay_hook(self, fn: Callable[[bool], None]) -> None:
        self._autoplay_hook = fn

    def set_typing_done_hook(self, fn: Callable[[], None]) -> None:
        self._typing_done_hook = fn

    def set_save_slot_hook(self, fn: Callable[..., None]) -> None:
        self._save_slot_hook = fn

    def set_load_slot_hook(self, fn: Callable[[str], None]) -> None:
        self._load_slot_hook = fn

    # --- effects ---
    def render(self, effect: Effect) -> None:
        now = pygame.time.get_ticks()
        if isinstance(effect, ShowDialog):
            self.mode = effect.mode
            if effect.mode == "nvl":
                self.nvl_lines.append((effect.name if effect.named else None, effect.text))
            else:
                self.nvl_lines = []
                self.name = effect.name
                self.name_color = effect.color
            self.typewriter = Typewriter(effect.text, now, self.text_speed, instant=not effect.animate)
            self._typing_reported = not effect.animate
        elif isinstance(effect, ClearDialog):
            self.name = None
            self.nvl_lines = []
            self.typewriter = Typewriter(chars_per_second=self.text_speed, instant=True)
        elif isinstance(effect, PopNvlLine):
            if self.nvl_lines:
                self.nvl_lines.pop()
            last = self.nvl_lines[-1][1] if self.nvl_lines else ""
            self.typewriter = Typewriter(last, now, self.text_speed, instant=True)
        elif isinstance(effect, RestoreNvlPage):
            self.mode = "nvl"
            self.nvl_lines = [(None, text) for _, text in effect.lines]
            last = self.nvl_lines[-1][1] if self.nvl_lines else ""
            self.typewriter = Typewriter(last, now, self.text_speed, instant=True)
        elif isinstance(effect, CompleteTyping):
            self.typewriter.reveal_all()
        elif isinstance(effect, ShowChoices):
            self.choices = list(effect.options)
            self.prompt = effect.prompt
        elif isinstance(effect, HideChoices):
            self.choices = []
            self.prompt = None
        elif isinstance(effect, StartParticles):
            self.particles = ParticleField(effect.name, dict(effect.config))
            self.particles.spawn(*LOGICAL_SIZE)
        elif isinstance(effect, StopParticles):
            self.particles = None
        else:
            logger.debug(f"Unhandled effect {type(effect).__name__}")

    def show_error(self, message: str) -> None:
        logger.warning(message)
        self._banner = (message.splitlines()[0], Theme.ERROR, pygame.time.get_ticks() + 4000)

    def show_banner(self, message: str, color: tuple[int, int, int] | None = None) -> None:
        self._banner = (message, color or Theme.BANNER, pygame.time.get_ticks() + 2000)

    def reset_state(self) -> None:
        self.mode = "adv"
        self.name = None
        self.nvl_lines = []
        self.choices = []
        self.prompt = None
        self.particles = None
        self.show_backlog = False
        self.typewriter = Typewriter(chars_per_second=self.text_speed, instant=True)

    # --- input ---
    def _to_logical(self, pos: Tuple[int, int]) -> Tuple[int, int]:
        sw, sh = self.screen.get_size()
        return int(pos[0] * LOGICAL_SIZE[0] / max(1, sw)), int(pos[1] * LOGICAL_SIZE[1] / max(1, sh))

    def _choose(self, option: ChoiceOption) -> None:
        if option.clickable and self._choose_hook:
            self._choose_hook(option.key)

    def _advance(self) -> None:
        if self.choices:
            return
        if self._proceed_hook:
            self._proceed_hook()

    def handle_event(self, event: pygame.event.Event) -> bool:
        """Dispatch one pygame event; False when the window should close."""
        if event.type == pygame.QUIT:
            return False
        if event.type == pygame.KEYDOWN:
            self._banner = None
            if self.show_backlog:
                if event.key in (pygame.K_TAB, pygame.K_ESCAPE, pygame.K_RETURN, pygame.K_SPACE):
                    self.show_backlog = False
                elif event.key == pygame.K_UP and self.backlog:
                    self.backlog.scroll_up()
                elif event.key == pygame.K_DOWN and self.backlog:
                    self.backlog.scroll_down()
                return True
            if event.key in (pygame.K_RETURN, pygame.K_SPACE):
                self._advance()
            elif event.key == pygame.K_BACKSPACE and self._rollback_hook:
                self._rollback_hook()
            elif event.key == pygame.K_TAB:
                self.show_backlog = True
            elif event.key == pygame.K_a and self._autoplay_hook:
                self._auto_mode = not self._auto_mode
                self._autoplay_hook(self._auto_mode)
                self.show_banner("Auto on" if self._auto_mode else "Auto off")
            elif event.key == pygame.K_F5 and self._save_slot_hook:
                self._save_slot_hook(self._quick_slot_id())
                self.show_banner("Quick save")
            elif event.key == pygame.K_F9 and self._load_slot_hook:
                self._load_slot_hook(self.quick_slot)
                self.show_banner("Quick load")
            elif pygame.K_1 <= event.key <= pygame.K_9:
                idx = event.key - pygame.K_1
                if idx < len(self.choices):
                    self._choose(self.choices[idx])
        elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            pos = self._to_logical(event.pos)
            for rect, option in self._choice_rects:
                if rect.collidepoint(pos):
                    self._choose(option)
                    return True
            self._advance()
        elif event.type == pygame.MOUSEWHEEL:
            if self.show_backlog and self.backlog:
                if event.y > 0:
                    self.backlog.scroll_up(2)
                elif event.y < 0:
                    self.backlog.scroll_down(2)
            elif event.y > 0 and self._rollback_hook:
                self._rollback_hook()
        return True

    def _quick_slot_id(self) -> Optional[int]:
        _, _, tail = self.quick_slot.rpartition("_")
        return int(tail) if tail.isdigit() else None

    # --- frame ---
    def update(self, now_ms: int) -> None:
        dt = max(0, now_ms - self._last_tick) / 1000.0
        self._last_tick = now_ms
        if not self._typing_reported and self.typewriter.is_complete(now_ms):
            self._typing_reported = True
            if self._typing_done_hook:
                self._typing_done_hook()
        if self.particles is not None:
            self.particles.update(dt, *LOGICAL_SIZE)
        if self._banner and now_ms > self._banner[2]:
            self._banner = None

    def _measure(self, s: str) -> int:
        return self.font.size(s)[0]

    def _draw_panel(self, surf: Surface, now_ms: int) -> None:
        w, h = LOGICAL_SIZE
        rect = pygame.Rect(PANEL_MARGIN_X, h - PANEL_HEIGHT - PANEL_MARGIN_BOTTOM, w - 2 * PANEL_MARGIN_X, PANEL_HEIGHT)
        panel = pygame.Surface(rect.size, pygame.SRCALPHA)
        panel.fill((*Theme.PANEL_BG, Theme.PANEL_BG_ALPHA))
        surf.blit(panel, rect.topleft)
        pygame.draw.rect(surf, Theme.PANEL_BORDER, rect, width=2, border_radius=12)
        if self.name:
            name_surf = self.font.render(self.name, True, parse_color(self.name_color, Theme.NAME))
            surf.blit(name_surf, (rect.x + PANEL_PADDING, rect.y - name_surf.get_height() - 6))
        max_lines = (rect.height - 2 * PANEL_PADDING) // self.font.get_linesize()
        lines = wrap_text(self.typewriter.visible_text(now_ms), self._measure, rect.width - 2 * PANEL_PADDING)
        y = rect.y + PANEL_PADDING
        for line in fit_lines(lines, max_lines):
            surf.blit(self.font.render(line, True, Theme.TEXT), (rect.x + PANEL_PADDING, y))
            y += self.font.get_linesize()

    def _draw_nvl(self, surf: Surface, now_ms: int) -> None:
        w, h = LOGICAL_SIZE
        shade = pygame.Surface(LOGICAL_SIZE, pygame.SRCALPHA)
        shade.fill((0, 0, 0, 170))
        surf.blit(shade, (0, 0))
        width = w - 4 * PANEL_MARGIN_X
        rendered: List[str] = []
        for i, (name, text) in enumerate(self.nvl_lines):
            if i == len(self.nvl_lines) - 1:
                text = self.typewriter.visible_text(now_ms)
            prefix = f"{name}: " if name else ""
            rendered.extend(wrap_text(prefix + text, self._measure, width))
        max_lines = (h - 4 * PANEL_MARGIN_BOTTOM) // self.font.get_linesize()
        y = 2 * PANEL_MARGIN_BOTTOM
        for line in fit_lines(rendered, max_lines):
            surf.blit(self.font.render(line, True, Theme.TEXT), (2 * PANEL_MARGIN_X, y))
            y += self.font.get_linesize()

    def _draw_centered(self, surf: Surface, now_ms: int) -> None:
        w, h = LOGICAL_SIZE
        lines = wrap_text(self.typewriter.visible_text(now_ms), self._measure, w - 8 * PANEL_MARGIN_X)
        y = h // 2 - len(lines) * self.font.get_linesize() // 2
        for line in lines:
            s = self.font.render(line, True, Theme.TEXT)
            surf.blit(s, (w // 2 - s.get_width() // 2, y))
            y += self.font.get_linesize()

    def _draw_choices(self, surf: Surface) -> None:
        w, h = LOGICAL_SIZE
        self._choice_rects = []
        total = len(self.choices) * (CHOICE_HEIGHT + CHOICE_GAP)
        y = h // 2 - total // 2
        if self.prompt:
            s = self.font.render(self.prompt, True, Theme.NAME)
            surf.blit(s, (w // 2 - s.get_width() // 2, y - s.get_height() - CHOICE_GAP))
        mouse = self._to_logical(pygame.mouse.get_pos())
        for idx, option in enumerate(self.choices, 1):
            rect = pygame.Rect(w // 4, y, w // 2, CHOICE_HEIGHT)
            if not option.clickable:
                color = Theme.CHOICE_LOCKED
            elif rect.collidepoint(mouse):
                color = Theme.CHOICE_HOVER
            else:
                color = Theme.CHOICE_BG
            pygame.draw.rect(surf, color, rect, border_radius=8)
            label = self.font.render(f"{idx}. {option.text}", True, Theme.TEXT)
            surf.blit(label, (rect.x + 16, rect.centery - label.get_height() // 2))
            self._choice_rects.append((rect, option))
            y += CHOICE_HEIGHT + CHOICE_GAP

    def _draw_backlog(self, surf: Surface) -> None:
        surf.fill(Theme.PANEL_BG)
        if not self.backlog:
            return
        width = LOGICAL_SIZE[0] - 4 * PANEL_MARGIN_X
        rendered: List[str] = []
        for line in self.backlog.lines:
            prefix = f"{line.name}: " if line.name else ""
            rendered.extend(wrap_text(prefix + line.text, self._measure, width))
        max_lines = (LOGICAL_SIZE[1] - 4 * PANEL_MARGIN_BOTTOM) // self.font.get_linesize()
        end = len(rendered)
        if self.backlog.view_idx != -1 and len(self.backlog):
            end = max(max_lines, int(len(rendered) * (self.backlog.view_idx + 1) / len(self.backlog)))
        y = 2 * PANEL_MARGIN_BOTTOM
        for line in rendered[max(0, end - max_lines):end]:
            surf.blit(self.font.render(line, True, Theme.TEXT), (2 * PANEL_MARGIN_X, y))
            y += self.font.get_linesize()

    def draw(self, now_ms: int) -> None:
        surf = self.canvas
        surf.fill(Theme.BACKGROUND)
        if self.show_backlog:
            self._draw_backlog(surf)
        else:
            if self.particles is not None:
                for p in self.particles.particles:
                    pygame.draw.circle(surf, Theme.PARTICLE, (int(p.x), int(p.y)), 2)
            if self.mode == "nvl":
                self._draw_nvl(surf, now_ms)
            elif self.mode == "centered":
                self._draw_centered(surf, now_ms)
            elif self.typewriter.text or self.name:
                self._draw_panel(surf, now_ms)
            if self.choices:
                self._draw_choices(surf)
        if self._banner:
            text, color, _ = self._banner
            s = self._hint_font.render(text, True, (255, 255, 255))
            box = pygame.Rect(0, 0, s.get_width() + 24, s.get_height() + 12)
            box.midtop = (LOGICAL_SIZE[0] // 2, 16)
            pygame.draw.rect(surf, color, box, border_radius=6)
            surf.blit(s, (box.x + 12, box.y + 6))
        size = self.screen.get_size()
        if size == LOGICAL_SIZE:
            self.screen.blit(surf, (0, 0))
        else:
            self.screen.blit(pygame.transform.scale(surf, size), (0, 0))
        pygame.display.flip()


async def run_pygame(engine: "Engine", renderer: PygameRenderer, fps: int = 60) -> None:
    """Start the engine and pump pygame events until the window closes."""
    await engine.start()
    clock_delay = 1.0 / max(10, int(fps))
    running = True
    try:
        while running:
            for event in pygame.event.get():
                if not renderer.handle_event(event):
                    running = False
                    break
            now = pygame.time.get_ticks()
            renderer.update(now)
            renderer.draw(now)
            await asyncio.sleep(clock_delay)
    finally:
        engine.autoplay.disable()
        pygame.quit()
