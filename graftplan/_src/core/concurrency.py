# SPDX-FileCopyrightText: Copyright (c) 2026 The Graftplan Developers
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Cancellation tokens and worker offloading for pipeline stages.

Long-running stages run on an executor and poll a :class:`CancellationToken`
at loop boundaries. Cancelling the awaiting coroutine trips the token, so the
worker stops at its next check and its result is never published.
"""

from __future__ import annotations

import asyncio
import functools
import threading
from collections.abc import Awaitable, Callable
from concurrent.futures import Executor
from typing import TypeVar

from .errors import PlanningCancelled

T = TypeVar("T")


class CancellationToken:
    """Thread-safe cancellation flag shared between a coroutine and its worker."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        """Raise :class:`PlanningCancelled` if :meth:`cancel` has been called."""
        if self._event.is_set():
            raise PlanningCancelled("operation was cancelled")


def check_cancelled(token: CancellationToken | None):
    if token is not None:
        token.raise_if_cancelled()


async def run_offloaded(
    func: Callable[..., T],
    *args,
    token: CancellationToken | None = None,
    executor: Executor | None = None,
    **kwargs,
) -> T:
    """Run ``func(*args, cancel=token, **kwargs)`` on ``executor`` and await it.

    Args:
        func: Blocking callable accepting a ``cancel`` keyword argument.
        token: Token handed to the worker. A fresh one is created if omitted.
        executor: Executor to run on. ``None`` uses the loop's default executor.

    Returns:
        The worker's return value.
    """
    loop = asyncio.get_running_loop()
    if token is None:
        token = CancellationToken()
    token.raise_if_cancelled()
    call = functools.partial(func, *args, cancel=token, **kwargs)
    try:
        return await loop.run_in_executor(executor, call)
    except asyncio.CancelledError:
        token.cancel()
        raise


async def gather_or_cancel(*aws: Awaitable, token: CancellationToken | None = None) -> list:
    """Await ``aws`` concurrently; if one fails, cancel the others.

    On failure or cancellation ``token`` is tripped so offloaded workers stop.
    Every task's exception is retrieved, and the first failure in argument
    order is raised.

    Returns:
        Results in argument order.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []

    try:
        _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        if token is not None:
            token.cancel()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    if pending:
        if token is not None:
            token.cancel()
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    failures = [task.exception() for task in tasks if not task.cancelled() and task.exception() is not None]
    if failures:
        raise failures[0]
    return [task.result() for task in tasks]
