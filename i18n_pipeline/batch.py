import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, Tuple, Type, TypeVar, Union

logger = logging.getLogger(__name__)

I = TypeVar("I")
T = TypeVar("T")


@dataclass
class BatchConfig:
    max_concurrent: int = 3
    delay_between_batches: float = 1.0   # secondes entre deux fenêtres
    retry_attempts: int = 3
    retry_base_delay: float = 1.0        # backoff: base * 2**tentative


@dataclass
class BatchResponse(Generic[T]):
    success: bool
    result: Optional[T] = None
    error: Optional[BaseException] = None
    retry_count: int = 0
    cancelled: bool = False


OutcomeCallback = Callable[[int, BatchResponse], Union[Optional[bool], Awaitable[Optional[bool]]]]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class BatchProcessor:
    """
    Exécute une liste d'éléments par fenêtres de `max_concurrent` appels parallèles,
    avec retry et backoff exponentiel par élément.

    La fenêtre suivante ne démarre qu'une fois la précédente entièrement terminée.
    Le résultat `i` correspond toujours à l'élément `i`, quel que soit l'ordre
    de complétion. Aucun timeout n'est imposé : c'est au `processor` de le faire.
    """

    def __init__(self, config: Optional[BatchConfig] = None):
        self.config = config or BatchConfig()
        if self.config.max_concurrent < 1:
            raise ValueError(f"max_concurrent doit être >= 1 (reçu: {self.config.max_concurrent})")

    async def _process_with_retry(
        self,
        processor: Callable[[I], Any],
        item: I,
        no_retry: Tuple[Type[BaseException], ...],
    ) -> BatchResponse:
        attempt = 0
        while True:
            try:
                result = await _maybe_await(processor(item))
                return BatchResponse(success=True, result=result, retry_count=attempt)
            except Exception as exc:
                if attempt >= self.config.retry_attempts or (no_retry and isinstance(exc, no_retry)):
                    logger.debug("Abandon après %d retry: %s", attempt, exc)
                    return BatchResponse(success=False, error=exc, retry_count=attempt)
                backoff = self.config.retry_base_delay * (2 ** attempt)
                logger.warning("Tentative %d échouée (%s), nouvel essai dans %.1fs", attempt + 1, exc, backoff)
                await asyncio.sleep(backoff)
                attempt += 1

    async def process_batch(
        self,
        items: Sequence[I],
        processor: Callable[[I], Any],
        on_outcome: Optional[OutcomeCallback] = None,
        no_retry: Tuple[Type[BaseException], ...] = (),
    ) -> List[BatchResponse]:
        """
        Traite `items` et retourne une réponse par élément, dans l'ordre d'entrée.

        `on_outcome(index, response)` est appelé dans l'ordre d'entrée, dès que
        l'élément `index` et tous ceux qui le précèdent sont terminés, sans
        attendre le reste de la fenêtre. S'il retourne False, les fenêtres
        suivantes ne sont pas lancées et les éléments restants sont marqués
        `cancelled`.
        """
        results: List[Optional[BatchResponse]] = [None] * len(items)
        step = self.config.max_concurrent
        stopped = False

        for start in range(0, len(items), step):
            window = items[start : start + step]
            tasks = [
                asyncio.ensure_future(self._process_with_retry(processor, item, no_retry)) for item in window
            ]
            try:
                for offset, task in enumerate(tasks):
                    response = await task
                    results[start + offset] = response
                    if on_outcome is None or stopped:
                        continue
                    if await _maybe_await(on_outcome(start + offset, response)) is False:
                        stopped = True
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

            if stopped:
                break
            if start + step < len(items):
                await asyncio.sleep(self.config.delay_between_batches)

        return [
            response if response is not None else BatchResponse(success=False, cancelled=True)
            for response in results
        ]
