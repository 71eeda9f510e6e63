"""Asynchronous mutation task with start/error/success/settled hooks."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

V = TypeVar("V")
R = TypeVar("R")

Hook = Callable[..., Any]


class MutationStatus(str, Enum):
    """Mutation status enumeration."""

    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


async def call_hook(hook: Hook | None, *args: Any) -> Any:
    """Invoke a sync or async hook, awaiting it when needed."""
    if hook is None:
        return None
    result = hook(*args)
    if inspect.isawaitable(result):
        return await result
    return result


@dataclass
class MutationCallbacks:
    """
    Caller-supplied lifecycle hooks.

    Signatures:
        on_start(variables)
        on_error(error, variables)
        on_success(result, variables)
        on_settled(result, error, variables)
    """

    on_start: Hook | None = None
    on_error: Hook | None = None
    on_success: Hook | None = None
    on_settled: Hook | None = None


class Mutation(Generic[V, R]):
    """
    One write against the appointment store, with observable lifecycle.

    ``on_start`` returns a context object (e.g. a rollback snapshot) that is
    handed to the other hooks. ``on_settled`` runs after every attempt,
    success or failure, before ``execute`` returns or raises.
    """

    def __init__(
        self,
        fn: Callable[[V], Awaitable[R]],
        *,
        on_start: Hook | None = None,
        on_error: Hook | None = None,
        on_success: Hook | None = None,
        on_settled: Hook | None = None,
        callbacks: MutationCallbacks | None = None,
    ):
        """Initialize mutation with its dispatch function and hooks."""
        self.fn = fn
        self.on_start = on_start
        self.on_error = on_error
        self.on_success = on_success
        self.on_settled = on_settled
        self.callbacks = callbacks or MutationCallbacks()

        self.status = MutationStatus.IDLE
        self.data: R | None = None
        self.error: Exception | None = None

    @property
    def is_pending(self) -> bool:
        """Check if the mutation is in flight."""
        return self.status == MutationStatus.PENDING

    async def execute(self, variables: V) -> R:
        """
        Run the mutation.

        Args:
            variables: Input passed to the dispatch function and every hook

        Returns:
            Result of the dispatch function

        Raises:
            Exception: Whatever the dispatch function raised, after the
                error and settled hooks have run
        """
        self.status = MutationStatus.PENDING
        self.data = None
        self.error = None
        context = None

        try:
            context = await call_hook(self.on_start, variables)
            await call_hook(self.callbacks.on_start, variables)
            result = await self.fn(variables)
        except (Exception, asyncio.CancelledError) as e:
            self.status = MutationStatus.ERROR
            self.error = e
            await call_hook(self.on_error, e, variables, context)
            await call_hook(self.callbacks.on_error, e, variables)
            raise
        else:
            self.status = MutationStatus.SUCCESS
            self.data = result
            await call_hook(self.on_success, result, variables, context)
            await call_hook(self.callbacks.on_success, result, variables)
            return result
        finally:
            await call_hook(self.on_settled, self.data, self.error, variables, context)
            await call_hook(self.callbacks.on_settled, self.data, self.error, variables)
