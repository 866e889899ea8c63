"""
TrendPulse – Event Bus (asyncio.Queue fan-out)
===============================================
Bus de eventos interno que desacopla el productor de cada instrumento
(stream o polling) de su consumidor (agregador + estrategia + riesgo).

  ┌──────────┐            ┌───────────┐
  │   Feed   │──eventos──▸│ Event Bus │──▸ InstrumentTrader (consumidor)
  │ producer │            │ (fan-out) │──▸ otros consumidores ...
  └──────────┘            └───────────┘

Un tópico por instrumento: "market.<INSTRUMENTO>".

MEMORIA:
- Cada consumidor tiene su propia asyncio.Queue acotada.
- Cola llena → se descarta el evento MÁS ANTIGUO (drop-oldest); el
  productor nunca se bloquea.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from trendpulse.shared.logging.logger import get_logger

logger = get_logger("event_bus")


def market_topic(instrument: str) -> str:
    return f"market.{instrument}"


class EventBus:
    """Fan-out event bus basado en asyncio.Queue."""

    def __init__(self, max_queue_size: int = 10_000) -> None:
        self._max_queue_size = max_queue_size
        # tópico → lista de (queue, nombre_consumidor)
        self._subscribers: Dict[str, list[tuple[asyncio.Queue, str]]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, topic: str, consumer_name: str) -> asyncio.Queue:
        """Registra un consumidor y devuelve su Queue exclusiva."""
        async with self._lock:
            queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
            self._subscribers.setdefault(topic, []).append((queue, consumer_name))
            logger.info(
                "Consumidor '%s' suscrito a '%s' (max_queue=%d)",
                consumer_name, topic, self._max_queue_size,
            )
            return queue

    async def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        async with self._lock:
            subs = self._subscribers.get(topic, [])
            self._subscribers[topic] = [(q, n) for q, n in subs if q is not queue]
            if not self._subscribers[topic]:
                self._subscribers.pop(topic)

    async def publish(self, topic: str, data: Any) -> None:
        """Publica a todos los suscriptores del tópico (drop-oldest)."""
        for queue, consumer_name in self._subscribers.get(topic, []):
            if queue.full():
                try:
                    queue.get_nowait()
                    logger.warning(
                        "Cola llena para '%s' en '%s' – evento antiguo descartado",
                        consumer_name, topic,
                    )
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(data)

    async def unsubscribe_all(self, topic: str | None = None) -> None:
        """Desuscribe todos los consumidores (cleanup al shutdown)."""
        async with self._lock:
            if topic:
                self._subscribers.pop(topic, None)
                logger.info("Suscriptores del tópico '%s' eliminados", topic)
            else:
                self._subscribers.clear()
                logger.info("Todos los suscriptores eliminados (shutdown)")

    @property
    def subscriber_count(self) -> int:
        return sum(len(subs) for subs in self._subscribers.values())
