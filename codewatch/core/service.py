"""CodeWatch service orchestrator.

The service:
- Builds one WatchTarget per configured filesystem
- Opens a watcher per target and feeds its events to the debounce tracker
- Pushes stabilized paths onto the dispatch queue
- Scans each path for directive comments and dispatches Modify directives
- Shuts down best-effort: watchers stop, queued work drains within a grace period
"""

from __future__ import annotations

import asyncio
from collections import Counter, deque
from collections.abc import Callable

from codewatch.core.agent_process import AgentRuntime, SubprocessAgentRuntime
from codewatch.core.config import Config
from codewatch.core.debounce import DebounceTracker, Scheduler
from codewatch.core.dispatch import DispatchQueue, TaskStatus
from codewatch.core.errors import AgentError, QueueClosedError, ReadError, ScanError, WatchError
from codewatch.core.files import read_file
from codewatch.core.invocation import AgentInvoker, InvocationResult, Reader
from codewatch.core.logging_setup import get_logger, get_target_logger
from codewatch.core.model import ChangeKind, QueueTask, Trigger, TriggerKind, WatchTarget
from codewatch.core.scanner import modify_triggers, scan
from codewatch.core.watcher import GlobIgnoreFilter, Watcher, WatchFactory, watch

logger = get_logger(__name__)

RECENT_LIMIT = 100


class CodeWatchService:
    """Watches file trees and dispatches AI directives to agents."""

    def __init__(
        self,
        config: Config,
        runtime: AgentRuntime | None = None,
        watch_factory: WatchFactory | None = None,
        read: Reader | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize service.

        Args:
            config: Validated configuration.
            runtime: Agent runtime; defaults to subprocess agents from config.
            watch_factory: Watcher factory; defaults to the watchfiles adapter.
            read: Async file reader; defaults to codewatch.core.files.read_file.
            scheduler: Timer factory for the debounce tracker (tests).
            clock: Clock matching ``scheduler`` (tests).
        """
        self.config = config
        self.targets: dict[str, WatchTarget] = {
            name: WatchTarget.from_config(name, fs) for name, fs in config.filesystems.items()
        }
        self.runtime = runtime or SubprocessAgentRuntime(config.agents)
        self._watch = watch_factory or watch
        self._read: Reader = read or read_file

        self.queue = DispatchQueue(self.process_task, config.codewatch.concurrency)
        self.tracker = DebounceTracker(
            self.targets.values(),
            on_stable=self._enqueue,
            on_error=self._on_watch_error,
            scheduler=scheduler,
            clock=clock,
        )
        self.invoker = AgentInvoker(
            self.runtime, read=self._read, timeout_s=config.codewatch.agent_timeout_s
        )

        self.watchers: dict[str, Watcher] = {}
        self.failed_targets: dict[str, WatchError] = {}
        # Status of paths with a task in flight; finished paths are dropped
        self.task_status: dict[tuple[str, str], TaskStatus] = {}
        self.tasks_done = 0
        self.tasks_failed = 0
        self.results: deque[InvocationResult] = deque(maxlen=RECENT_LIMIT)
        self.failed_triggers: deque[Trigger] = deque(maxlen=RECENT_LIMIT)
        self._in_flight: Counter[tuple[str, str]] = Counter()
        self._consumers: dict[str, asyncio.Task[None]] = {}
        self._started = False
        self._stopping = False

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def start(self) -> None:
        """Open a watcher for every target and start the workers.

        Raises:
            WatchError: If any target cannot be set up. Watchers opened so far
                are closed again.
        """
        if self._started:
            return

        for target in self.targets.values():
            try:
                watcher = self._watch(
                    target.root,
                    poll_interval_ms=target.poll_interval_ms,
                    stability_threshold_ms=target.stability_threshold_ms,
                    ignore_filter=GlobIgnoreFilter(target.root, target.ignore),
                )
            except Exception as e:
                for opened in self.watchers.values():
                    await opened.close()
                self.watchers.clear()
                raise WatchError(target.id, e) from e
            self.watchers[target.id] = watcher
            get_target_logger(__name__, target.id).info(
                f"Watching {target.root} (agent: {target.agent_type})"
            )

        self._started = True
        self.queue.start()
        for target_id, watcher in self.watchers.items():
            self._consumers[target_id] = asyncio.create_task(
                self._consume(self.targets[target_id], watcher),
                name=f"codewatch-watch-{target_id}",
            )

    async def _consume(self, target: WatchTarget, watcher: Watcher) -> None:
        try:
            async for event in watcher:
                if self._stopping:
                    break
                self.tracker.on_event(event.kind, target.id, event.path, event.error)
                if event.kind is ChangeKind.ERROR:
                    break
        except Exception as e:
            self._on_watch_error(target.id, e)
        finally:
            await watcher.close()

    def _on_watch_error(self, target_id: str, error: BaseException | None) -> None:
        err = WatchError(target_id, error or "watcher reported an error")
        self.failed_targets[target_id] = err
        logger.error(f"{err}; target will not be restarted")

    def _enqueue(self, task: QueueTask) -> None:
        if self._stopping:
            logger.debug(f"Shutting down; not queuing {task.file_path}")
            self.tracker.release(task.watch_target_id, task.file_path)
            return
        try:
            self.queue.push(task)
        except QueueClosedError as e:
            logger.debug(str(e))
            self.tracker.release(task.watch_target_id, task.file_path)
            return
        self._in_flight[task.key] += 1
        self._set_status(task, TaskStatus.QUEUED)

    def _set_status(self, task: QueueTask, status: TaskStatus) -> None:
        get_target_logger(__name__, task.watch_target_id).debug(
            f"{task.file_path}: {status.value}"
        )
        if status not in (TaskStatus.DONE, TaskStatus.FAILED):
            self.task_status[task.key] = status
            return

        if status is TaskStatus.DONE:
            self.tasks_done += 1
        else:
            self.tasks_failed += 1
        self._in_flight[task.key] -= 1
        if self._in_flight[task.key] <= 0:
            del self._in_flight[task.key]
            self.task_status.pop(task.key, None)

    async def process_task(self, task: QueueTask) -> None:
        """Scan one stabilized path and dispatch its Modify directives.

        Raises:
            ReadError: If the file is missing or unreadable.
            ScanError: If scanning fails.
        """
        self.tracker.release(task.watch_target_id, task.file_path)
        target = self.targets[task.watch_target_id]
        self._set_status(task, TaskStatus.SCANNING)

        try:
            content = await self._read(task.file_path)
            if not content:
                raise ReadError(task.file_path)
            try:
                triggers = scan(task.file_path, content)
            except Exception as e:
                raise ScanError(task.file_path, e) from e
        except (ReadError, ScanError):
            self._set_status(task, TaskStatus.FAILED)
            raise

        for trigger in triggers:
            if trigger.kind is TriggerKind.QUESTION:
                logger.info(f"[AI?] Question noted at {trigger.location}: {trigger.instruction_text}")
            elif trigger.kind is TriggerKind.NOTE:
                logger.info(f"[AI] Comment noted at {trigger.location}: {trigger.instruction_text}")

        modify = modify_triggers(triggers)
        if not modify:
            self._set_status(task, TaskStatus.DONE)
            return

        self._set_status(task, TaskStatus.DISPATCHING)
        timeout = self.config.agent_timeout_for(target.agent_type)
        for trigger in modify:
            try:
                result = await self.invoker.invoke(
                    trigger, target.agent_type, cwd=target.root, timeout_s=timeout
                )
            except (AgentError, ReadError) as e:
                self.failed_triggers.append(trigger)
                get_target_logger(__name__, target.id).error(
                    f"Modify directive at {trigger.location} failed: {e}"
                )
                continue
            self.results.append(result)

        self._set_status(task, TaskStatus.DONE)

    async def stop(self) -> None:
        """Best-effort shutdown.

        Watchers close, pending debounce timers are cancelled and no new tasks
        are accepted. Tasks already queued get ``shutdown_grace_s`` to finish;
        workers still scanning or waiting on an agent after that are cancelled.
        Agent sessions themselves are never killed; ones nobody waits on any
        more are reported as orphans.
        """
        if self._stopping:
            return
        self._stopping = True

        for watcher in self.watchers.values():
            await watcher.close()
        for consumer in self._consumers.values():
            consumer.cancel()
        await asyncio.gather(*self._consumers.values(), return_exceptions=True)
        self._consumers.clear()

        self.tracker.close()
        self.queue.close()
        if self._started:
            await self.queue.drain(self.config.codewatch.shutdown_grace_s)
        await self.queue.stop()

        if self.invoker.orphaned_sessions:
            logger.warning(
                f"{self.invoker.orphaned_sessions} orphaned agent session(s) still running"
            )
        logger.info("CodeWatch stopped")

    async def run_until_stopped(self, stop_event: asyncio.Event) -> None:
        """Start, wait for ``stop_event``, then stop."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()
