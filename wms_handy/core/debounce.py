# wms_handy/core/debounce.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

log = logging.getLogger("wmshandy.debounce")

# fn(token)：token 是调度时的代次，写 state 前用 is_current 校验
DebouncedFn = Callable[[int], Awaitable[None]]


class Debouncer:
    """
    按字段去抖：
    - schedule(key, fn)：取消同 key 的上一个任务，代次 +1，延迟后执行 fn(token)
    - is_current(key, token)：结果回写前校验，过期结果直接丢弃
    - 只有最后一次输入会真正发出请求

    需在事件循环内调用（asyncio.create_task）。
    """

    def __init__(self, delay_seconds: float) -> None:
        self.delay_seconds = delay_seconds
        self._tasks: Dict[str, asyncio.Task] = {}
        self._generations: Dict[str, int] = {}

    def next_token(self, key: str) -> int:
        """不经延迟直接占用一个新代次（非去抖的刷新也要让旧结果失效）。"""
        gen = self._generations.get(key, 0) + 1
        self._generations[key] = gen
        return gen

    def is_current(self, key: str, token: int) -> bool:
        return self._generations.get(key, 0) == token

    def schedule(self, key: str, fn: DebouncedFn) -> asyncio.Task:
        self._cancel_task(key)
        token = self.next_token(key)
        task = asyncio.create_task(self._run(key, token, fn), name=f"debounce:{key}:{token}")
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    def pending(self, key: str) -> Optional[asyncio.Task]:
        task = self._tasks.get(key)
        if task is None or task.done():
            return None
        return task

    def cancel(self, key: str) -> None:
        """取消挂起任务并让在途结果失效。"""
        self._cancel_task(key)
        self.next_token(key)

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)

    async def drain(self) -> None:
        """等所有挂起任务跑完（含去抖延迟）。CLI / 测试里用。"""
        while True:
            tasks = [t for t in self._tasks.values() if not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, key: str, token: int, fn: DebouncedFn) -> None:
        await asyncio.sleep(self.delay_seconds)
        if not self.is_current(key, token):
            return
        log.debug("debounce fire key=%s token=%s", key, token)
        await fn(token)

    def _cancel_task(self, key: str) -> None:
        task = self._tasks.pop(key, None)
        if task is not None and not task.done():
            task.cancel()

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            self._tasks.pop(key, None)
        if not task.cancelled() and task.exception() is not None:
            log.error("debounced task failed key=%s", key, exc_info=task.exception())
