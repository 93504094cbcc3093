from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
import sys

from .actions import Particles
from .engine.adapters.storage import JsonFileStore, MemoryStore
from .engine.config_io import load_config
from .engine.engine import Engine
from .engine.renderer import DummyRenderer, IRenderer
from .script.errors import ScriptError
from .script.model import Script
from .script.parser import load_script

logger = logging.getLogger(__name__)

HELP = "Enter: continue | b: back | 1-9: choose | a: autoplay | save [id] | load <key> | slots | q: quit"


def read_meta(script_path: Path) -> Dict[str, Any]:
    """Optional ``<script>.meta.json``: title, characters, particles, storage."""
    mfile = script_path.with_suffix(".meta.json")
    if not mfile.exists():
        return {}
    try:
        data = json.loads(mfile.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring {mfile}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def build_engine(script: Script, meta: Dict[str, Any], *, renderer: Optional[IRenderer] = None,
                 config: Optional[dict] = None, saves: Optional[str] = None) -> Engine:
    store = JsonFileStore(saves) if saves else MemoryStore()
    engine = Engine(script, renderer=renderer, store=store, config=config, storage=meta.get("storage"))
    engine.add_characters(meta.get("characters") or {})
    particles = engine.registry.get("Particles")
    if isinstance(particles, Particles):
        particles.configure(meta.get("particles") or {})
    return engine


def find_problems(script: Script, engine: Engine) -> List[str]:
    """Unknown jump targets and statements more than one regular handler accepts."""
    problems: List[str] = []
    languages = script.languages() or [None]
    for language in languages:
        known = set(script.labels(language))
        where_lang = f"[{language}] " if language else ""
        for label, step, statement in script.iter_statements(language):
            where = f"{where_lang}{label}:{step}"
            if isinstance(statement, str):
                tokens = statement.split()
                if tokens[:1] == ["jump"] and (len(tokens) < 2 or tokens[1] not in known):
                    target = tokens[1] if len(tokens) > 1 else ""
                    problems.append(f"{where}: jump to unknown label {target!r}")
                matched = engine.registry.candidates(statement, tokens)
            elif isinstance(statement, dict):
                matched = engine.registry.candidates(statement)
                if not matched:
                    problems.append(f"{where}: no handler accepts {statement!r}")
            else:
                continue
            regular = [h.id for h in matched if not h.fallback]
            if len(regular) > 1:
                problems.append(f"{where}: ambiguous statement, matched by {', '.join(regular)}")
    return problems


async def _prompt(text: str) -> Optional[str]:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, input, text)
    except EOFError:
        return None


async def run_headless(engine: Engine) -> int:
    """Terminal loop around a started engine."""
    renderer = engine.renderer
    await engine.start()
    print(HELP)  # noqa: T201
    while True:
        line = await _prompt("> ")
        if line is None:
            break
        cmd, _, rest = line.strip().partition(" ")
        cmd = cmd.lower()
        if cmd in ("q", "quit", "exit"):
            break
        if cmd == "":
            await engine.proceed()
        elif cmd in ("b", "back"):
            await engine.rollback()
        elif cmd == "a":
            engine.autoplay.toggle()
            print(f"autoplay {'on' if engine.autoplay.enabled else 'off'}")  # noqa: T201
        elif cmd.isdigit():
            choices = getattr(renderer, "choices", [])
            idx = int(cmd) - 1
            if 0 <= idx < len(choices):
                await engine.choose(choices[idx][0])
            else:
                print("no such choice")  # noqa: T201
        elif cmd == "save":
            key = await engine.saves.save_to("save_label", int(rest) if rest.strip().isdigit() else None)
            print(f"saved {key}" if key else "not saved")  # noqa: T201
        elif cmd == "load" and rest.strip():
            await engine.saves.load_from_slot(rest.strip())
        elif cmd == "slots":
            for meta in await engine.saves.list_slots():
                print(f"  {meta.key}  {meta.display_name}  ({meta.label})")  # noqa: T201
        else:
            print(HELP)  # noqa: T201
    engine.autoplay.disable()
    return 0


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="tsuzuri", description="Tsuzuri interactive fiction runner")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    sub = parser.add_subparsers(dest="cmd")

    p_run = sub.add_parser("run", help="Play a script")
    p_run.add_argument("script", type=str, help="Path to a .tzr or .json script")
    p_run.add_argument("--pygame", action="store_true", help="Use the pygame window instead of the terminal")
    p_run.add_argument("--config", type=str, default=None, help="JSON config file")
    p_run.add_argument("--saves", type=str, default=None, help="Directory for save slots (kept in memory if omitted)")
    p_run.add_argument("--font", type=str, default=None, help="Path to TTF/OTF font (pygame)")
    p_run.add_argument("--font-size", type=int, default=28, help="Font size (pygame)")

    p_check = sub.add_parser("check", help="Report unknown jump targets and ambiguous statements")
    p_check.add_argument("script", type=str, help="Path to a .tzr or .json script")

    # a bare script path means 'run'
    argv_list = list(argv) if argv is not None else sys.argv[1:]
    if argv_list and not argv_list[0].startswith("-") and argv_list[0] not in {"run", "check"}:
        argv_list = ["run", *argv_list]
    args = parser.parse_args(argv_list)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
                        format="%(levelname)s %(name)s: %(message)s")

    if args.cmd not in ("run", "check"):
        parser.print_help()
        return 2

    script_path = Path(args.script)
    if not script_path.exists():
        print(f"Script not found: {script_path}")  # noqa: T201
        return 2
    try:
        script = load_script(script_path)
    except ScriptError as e:
        print(f"Script error: {e}")  # noqa: T201
        return 1
    meta = read_meta(script_path)

    if args.cmd == "check":
        engine = build_engine(script, meta)
        problems = find_problems(script, engine)
        for p in problems:
            print(p)  # noqa: T201
        if not problems:
            print("ok")  # noqa: T201
        return 1 if problems else 0

    config = load_config(Path(args.config)) if args.config else None
    if args.pygame:
        from .frontends.pygame_frontend import PygameRenderer, run_pygame  # local import to avoid test deps
        title = str(meta.get("title") or "Tsuzuri")
        renderer = PygameRenderer(title=title, font_path=args.font, font_size=args.font_size)
        engine = build_engine(script, meta, renderer=renderer, config=config, saves=args.saves)
        dialog = engine.registry.get("Dialog")
        renderer.backlog = getattr(dialog, "backlog", None)
        renderer.quick_slot = engine.saves.slot_key(engine.saves.prefix("save_label"), 1)
        asyncio.run(run_pygame(engine, renderer))
        return 0

    engine = build_engine(script, meta, renderer=DummyRenderer(), config=config, saves=args.saves)
    return asyncio.run(run_headless(engine))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
