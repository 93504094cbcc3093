from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple
import asyncio
import copy
import inspect
import logging

from .renderer import IRenderer, DummyRenderer
from .adapters.storage import KeyValueStore, MemoryStore
from .autoplay import AutoPlay
from .config_io import default_config
from .events import (
    EventSystem, StatementAppliedEvent, StatementRevertedEvent, ChainHaltedEvent,
    ErrorReportedEvent, GameStartEvent, GameResetEvent,
)
from .handler import Action, Effects, Handler, as_effects
from .history import History
from .registry import HandlerRegistry
from .save_manager import SaveManager
from .state import Cursor, GameState, fresh_globals
from .variables import replace_variables
from ..script.errors import GuardRejection, Rejection, ScriptError, UnresolvedTarget
from ..script.model import Script, Statement, is_callback

logger = logging.getLogger(__name__)

SETTINGS_KEY = "Settings"


class Engine:
    """Statement-dispatch/undo interpreter.

    Owns the script, the handler registry, the cursor (``state``), the undo
    histories, the narrative ``storage`` and the ephemeral ``globals``.
    Handlers return effects and the engine forwards them to the renderer.
    """

    def __init__(self, script: Optional[Script] = None, *, renderer: Optional[IRenderer] = None,
                 store: Optional[KeyValueStore] = None, handlers: Optional[Iterable[Handler]] = None,
                 config: Optional[dict] = None, storage: Optional[Mapping[str, Any]] = None,
                 events: Optional[EventSystem] = None) -> None:
        cfg = config or default_config()
        defaults = default_config()
        self.settings: Dict[str, Any] = {**defaults["engine"], **(cfg.get("engine") or {})}
        self.preferences: Dict[str, Any] = {**defaults["preferences"], **(cfg.get("preferences") or {})}
        self.script = script if script is not None else Script(multi_language=bool(self.settings["multi_language"]))
        self.renderer = renderer or DummyRenderer()
        self.store = store or MemoryStore()
        self.events = events or EventSystem()
        if handlers is None:
            from ..actions import default_handlers
            handlers = default_handlers()
        # registry is per engine; actions reach it through their engine
        self.registry = HandlerRegistry(handlers)
        self.state = GameState(label=self.settings["label"])
        self.histories = History()
        # storage structure captured at construction, restored on every new game
        self._storage_structure: Dict[str, Any] = copy.deepcopy(dict(storage or {}))
        self.storage: Dict[str, Any] = copy.deepcopy(self._storage_structure)
        self.globals: Dict[str, Any] = fresh_globals()
        self.characters: Dict[str, Dict[str, Any]] = {}
        self.functions: Dict[str, Dict[str, Callable[..., Any]]] = {}
        self.saves = SaveManager(self)
        self.autoplay = AutoPlay(self)
        self._tasks: Set[asyncio.Task] = set()
        self._ready = False

    # --- registry / lookups ---
    def register(self, handler: Handler) -> None:
        self.registry.register(handler)

    def history(self, category: str) -> List[Any]:
        return self.histories(category)

    def setting(self, key: str, default: Any = None) -> Any:
        return self.settings.get(key, default)

    @property
    def language(self) -> Optional[str]:
        return self.preferences.get("language") if self.script.multi_language else None

    def label(self, name: Optional[str] = None) -> Optional[Tuple[Statement, ...]]:
        return self.script.label(name or self.state.label, self.language)

    def statement_at(self, cursor: Cursor) -> Optional[Statement]:
        return self.script.statement(cursor.label, cursor.step, self.language)

    def current_statement(self) -> Optional[Statement]:
        return self.statement_at(self.state.cursor)

    def character(self, cid: str) -> Optional[Dict[str, Any]]:
        return self.characters.get(cid)

    def add_characters(self, characters: Mapping[str, Mapping[str, Any]]) -> None:
        for cid, data in characters.items():
            self.characters[cid] = dict(data)

    def fn(self, name: str, apply: Optional[Callable[..., Any]] = None,
           revert: Optional[Callable[..., Any]] = None) -> Optional[Dict[str, Callable[..., Any]]]:
        """Register a reversible function pair, or look one up when no callables are given."""
        if apply is None and revert is None:
            return self.functions.get(name)
        self.functions[name] = {
            "apply": apply or (lambda *a: True),
            "revert": revert or (lambda *a: True),
        }
        return self.functions[name]

    # --- snapshot ---
    def snapshot(self) -> Dict[str, Any]:
        return {
            "history": self.histories.snapshot(),
            "state": self.state.snapshot(),
            "storage": copy.deepcopy(self.storage),
        }

    def restore(self, data: Mapping[str, Any]) -> None:
        self.state.restore(data.get("state") or {})
        self.histories.restore(data.get("history") or {})
        self.storage = copy.deepcopy(dict(data.get("storage") or {}))

    # --- preferences ---
    async def _load_preferences(self) -> None:
        try:
            stored = await self.store.get(SETTINGS_KEY)
        except KeyError:
            stored = None
        merged = dict(self.preferences)
        if isinstance(stored, Mapping):
            merged.update(stored)
        self.preferences = merged
        if stored != merged:
            await self.store.set(SETTINGS_KEY, dict(merged))

    async def set_preference(self, key: str, value: Any) -> None:
        self.preferences[key] = value
        await self.store.set(SETTINGS_KEY, dict(self.preferences))

    # --- group lifecycle ---
    async def setup(self) -> "Engine":
        """setup -> bind -> init for every handler; runs once."""
        if self._ready:
            return self
        await self._load_preferences()
        for handler in self.registry:
            await handler.setup(self)
        self._install_renderer_hooks()
        for handler in self.registry:
            await handler.bind(self)
        for handler in self.registry:
            await handler.init(self)
        self._ready = True
        logger.debug(f"Engine ready with handlers {self.registry.ids()}")
        return self

    async def start(self) -> bool:
        await self.setup()
        self.globals["playing"] = True
        for handler in self.registry:
            await handler.on_start(self)
        self.events.emit(GameStartEvent(from_load=False))
        return await self.run(self.current_statement())

    async def reset(self) -> None:
        """New game: storage, cursor, histories and globals back to their initial values."""
        self.autoplay.disable()
        playing = self.globals.get("playing", False)
        self.storage = copy.deepcopy(self._storage_structure)
        self.state = GameState(label=self.settings["label"])
        self.globals = fresh_globals()
        self.globals["playing"] = playing
        self.histories.clear()
        for handler in self.registry:
            await handler.reset(self)
        self.renderer.reset_state()
        self.events.emit(GameResetEvent())

    # --- renderer boundary ---
    def dispatch(self, result: Effects) -> None:
        for effect in as_effects(result):
            self.renderer.render(effect)

    def report_error(self, error: UnresolvedTarget) -> None:
        logger.warning(f"{error.title}: {error.message}")
        self.renderer.show_error(str(error))
        self.events.emit(ErrorReportedEvent(title=error.title, message=error.message, details=dict(error.details)))

    def _report_script_error(self, error: ScriptError) -> None:
        logger.error(str(error))
        self.renderer.show_error(str(error))

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        """Run an engine coroutine from a synchronous callback (renderer hooks, timers)."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Engine task failed: {exc}", exc_info=exc)

    def _install_renderer_hooks(self) -> None:
        r = self.renderer
        r.set_proceed_hook(lambda: self.spawn(self.proceed()))
        r.set_rollback_hook(lambda: self.spawn(self.rollback()))
        r.set_choose_hook(lambda key: self.spawn(self.choose(key)))
        r.set_autoplay_hook(lambda enable: self.autoplay.enable() if enable else self.autoplay.disable())
        r.set_typing_done_hook(self.typing_finished)
        r.set_save_slot_hook(lambda slot=None: self.spawn(self.saves.save_to("save_label", slot)))
        r.set_load_slot_hook(lambda key: self.spawn(self.saves.load_from_slot(key)))
        r.set_list_slots_hook(self.saves.list_slots)
        r.set_delete_slot_hook(lambda key: self.spawn(self.saves.delete_slot(key)))

    def typing_finished(self) -> None:
        self.globals["finished_typing"] = True

    # --- matching and single-statement lifecycles ---
    def resolve(self, statement: Statement) -> Tuple[Handler, Any]:
        """Handler and constructor arguments for a text or record statement."""
        if isinstance(statement, str):
            text = replace_variables(statement, self.storage, self.settings.get("missing_variable", "undefined"))
            tokens = text.split()
            handler = self.registry.match(text, tokens)
            args: Any = tokens
        elif isinstance(statement, Mapping):
            handler = self.registry.match(statement)
            args = statement
        else:
            raise GuardRejection(f"Not a matchable statement: {statement!r}")
        if handler is None:
            raise UnresolvedTarget(
                "Unknown statement",
                f"No handler accepts {statement!r}",
                {"Label": self.state.label, "Step": self.state.step, "Handlers": self.registry.ids()},
            )
        return handler, args

    def create_action(self, statement: Statement, cycle: str = "Application") -> Action:
        handler, args = self.resolve(statement)
        action = handler.create(args, statement, self)
        action.cycle = cycle
        return action

    async def apply_statement(self, statement: Statement, advance: bool = True) -> bool:
        """will_apply -> apply -> did_apply for one statement; returns the continuation flag.

        Callbacks are called with the engine (``block`` set meanwhile) and always continue.
        """
        if is_callback(statement):
            await self._call(statement)
            return True
        origin = self.state.cursor
        action = self.create_action(statement, "Application")
        action.position = origin
        await action.will_apply()
        self.dispatch(await action.apply(advance))
        proceed = bool(await action.did_apply())
        self.events.emit(StatementAppliedEvent(
            label=origin.label, step=origin.step, statement=statement,
            handler=action.handler.id, proceed=proceed,
        ))
        return proceed

    async def revert_statement(self, statement: Statement, at: Optional[Cursor] = None) -> bool:
        """will_revert -> revert -> did_revert for one statement; returns the continuation flag.

        ``at`` is where the statement sits in the script (the cursor lands there
        afterwards); it defaults to the current cursor.
        """
        action = self.create_action(statement, "Revert")
        action.position = at or self.state.cursor
        await action.will_revert()
        self.dispatch(await action.revert())
        return bool(await action.did_revert())

    async def assert_async(self, fn: Callable[..., Any], *args: Any) -> None:
        """Call fn (sync or async) with ``block`` set; an explicit False result vetoes."""
        previous = self.globals.get("block", False)
        self.globals["block"] = True
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                result = await result
        finally:
            self.globals["block"] = previous
        if result is False:
            raise GuardRejection(f"{getattr(fn, '__name__', 'function')} returned False")

    async def _call(self, callback: Callable[..., Any]) -> None:
        previous = self.globals.get("block", False)
        self.globals["block"] = True
        try:
            result = callback(self)
            if inspect.isawaitable(result):
                await result
        finally:
            self.globals["block"] = previous

    def _halt(self, direction: str, cursor: Cursor, error: BaseException) -> None:
        self.events.emit(ChainHaltedEvent(direction=direction, label=cursor.label, step=cursor.step, reason=str(error)))

    def _chain_limit(self) -> int:
        return int(self.settings.get("chain_limit") or 0)

    def _chain_exceeded(self, count: int) -> bool:
        limit = self._chain_limit()
        if limit and count > limit:
            err = ScriptError(f"Statement chain exceeded {limit} steps", context=f"{self.state.label}:{self.state.step}")
            self._report_script_error(err)
            self._halt("run", self.state.cursor, err)
            return True
        return False

    # --- forward ---
    def _step_forward(self) -> Optional[Statement]:
        seq = self.label() or ()
        if self.state.step < len(seq):
            self.state.move(step=self.state.step + 1)
        return self.current_statement()

    async def run(self, statement: Optional[Statement], advance: bool = True) -> bool:
        """Apply a statement and keep going while handlers signal continuation.

        Returns False when the first statement is absent or a statement was
        rejected; the rejected statement leaves the cursor where it was.
        """
        count = 0
        applied = False
        self.globals["rerun"] = False
        while statement is not None:
            count += 1
            if self._chain_exceeded(count):
                return False
            origin = self.state.cursor
            moves = self.state.moves
            try:
                proceed = await self.apply_statement(statement, advance)
            except GuardRejection as e:
                logger.debug(f"Run halted at {origin.label}:{origin.step}: {e.reason or 'guard'}")
                self.state.move(origin.label, origin.step)
                self._halt("run", origin, e)
                return False
            except UnresolvedTarget as e:
                self.report_error(e)
                self.state.move(origin.label, origin.step)
                self._halt("run", origin, e)
                return False
            except Rejection as e:
                logger.debug(f"Run halted at {origin.label}:{origin.step}: {e}")
                self.state.move(origin.label, origin.step)
                self._halt("run", origin, e)
                return False
            except ScriptError as e:
                self._report_script_error(e)
                self.state.move(origin.label, origin.step)
                self._halt("run", origin, e)
                return False
            applied = True
            if not proceed:
                return True
            if self.state.moves != moves:
                # the handler moved the cursor (jump), possibly onto itself: resume there
                statement = self.current_statement()
                advance = True
                continue
            if not advance:
                return True
            statement = self._step_forward()
        return applied

    async def next(self) -> bool:
        """Advance one step (never past the end of the label) and run from there.

        After going back onto a statement that was undone in place (a jump),
        that statement runs again instead.
        """
        if self.globals.get("rerun"):
            return await self.run(self.current_statement())
        return await self.run(self._step_forward())

    # --- backward ---
    def _revert_target(self) -> Optional[Cursor]:
        if self.state.step >= 1:
            return Cursor(self.state.label, self.state.step - 1)
        for handler in self.registry:
            origin = handler.boundary_origin(self)
            if origin is not None:
                return origin
        return None

    async def revert(self) -> bool:
        """Undo the previous statement and keep going while handlers signal continuation.

        Returns True when at least one statement was reverted without rejection.
        """
        count = 0
        reverted = False
        # the statement under the cursor is undone but not re-applied yet
        pending = bool(self.globals.get("rerun"))
        self.globals["rerun"] = False
        while True:
            count += 1
            if self._chain_exceeded(count):
                return False
            before = self.state.cursor
            moves = self.state.moves
            target = self._revert_target()
            if target is None:
                if pending and not reverted:
                    self.globals["rerun"] = True
                else:
                    await self.run(self.current_statement(), advance=False)
                return reverted
            statement = self.statement_at(target)
            try:
                if statement is None:
                    raise GuardRejection(f"Nothing to revert at {target.label}:{target.step}")
                proceed = await self.revert_statement(statement, at=target)
            except (Rejection, ScriptError) as e:
                if isinstance(e, UnresolvedTarget):
                    self.report_error(e)
                elif isinstance(e, ScriptError):
                    self._report_script_error(e)
                else:
                    logger.debug(f"Revert halted at {before.label}:{before.step}: {e}")
                self.state.move(before.label, before.step)
                self._halt("revert", before, e)
                if pending and not reverted:
                    self.globals["rerun"] = True
                else:
                    # compensate so the visible state matches the cursor
                    await self.run(self.current_statement(), advance=False)
                return False
            if self.state.moves == moves:
                self.state.move(target.label, target.step)
            after = self.state.cursor
            self.events.emit(StatementRevertedEvent(
                label=after.label, step=after.step, statement=statement,
                handler=self._handler_id(statement), proceed=proceed,
            ))
            reverted = True
            if not proceed:
                return True
            self.globals["rerun"] = False

    def _handler_id(self, statement: Statement) -> str:
        try:
            return self.resolve(statement)[0].id
        except (Rejection, ScriptError):
            return ""

    # --- input boundary ---
    def can_proceed(self) -> bool:
        g = self.globals
        if not g.get("playing") or g.get("block") or g.get("distraction_free"):
            return False
        return all(h.can_proceed(self) for h in self.registry)

    def can_revert(self) -> bool:
        g = self.globals
        if not g.get("playing") or g.get("block") or g.get("distraction_free"):
            return False
        return all(h.can_revert(self) for h in self.registry)

    async def proceed(self) -> bool:
        """Player asked to continue: gates, should/will_proceed hooks, then next()."""
        if not self.can_proceed():
            return False
        previous = self.globals.get("block", False)
        self.globals["block"] = True
        try:
            try:
                for handler in self.registry:
                    await handler.should_proceed(self)
            except GuardRejection as e:
                logger.debug(f"Proceed swallowed: {e.reason}")
                return False
            for handler in self.registry:
                await handler.will_proceed(self)
            return await self.next()
        finally:
            self.globals["block"] = previous

    async def rollback(self) -> bool:
        """Player asked to go back: gates, will_rollback hooks, then revert()."""
        if not self.can_revert():
            return False
        previous = self.globals.get("block", False)
        self.globals["block"] = True
        try:
            for handler in self.registry:
                await handler.will_rollback(self)
            return await self.revert()
        finally:
            self.globals["block"] = previous

    async def choose(self, key: str) -> bool:
        """Select an option of the choices currently shown."""
        handler = self.registry.get("Choice")
        if handler is None or not hasattr(handler, "select"):
            raise UnresolvedTarget("Choices unavailable", "No Choice handler is registered")
        previous = self.globals.get("block", False)
        self.globals["block"] = True
        try:
            return await handler.select(self, key)
        finally:
            self.globals["block"] = previous
