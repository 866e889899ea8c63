"""
TrendPulse – Main Application Entry Point
===========================================
Arranca un InstrumentTrader por instrumento configurado y expone la API
de solo lectura.

ARRANQUE:
  1. Configurar logging
  2. Contenedor de dependencias (settings → configs de venue → adaptadores)
  3. Lifespan startup: iniciar traders en orden de configuración
  4. Lifespan shutdown: detenerlos en orden inverso

  uvicorn trendpulse.main:app --host 0.0.0.0 --port 8888
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trendpulse.container import init_container
from trendpulse.presentation.api.routes import init_routes, router
from trendpulse.shared.config.settings import settings
from trendpulse.shared.logging.logger import get_logger, setup_logging

# ─── Logging ────────────────────────────────────────────────────────────
setup_logging(settings.log_level)
logger = get_logger("main")

# ─── Contenedor de Dependencias ─────────────────────────────────────────
container = init_container(settings)


# ─── FastAPI Lifespan ───────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("=" * 60)
    logger.info("  %s", settings.app_name)
    logger.info("  Venue: %s", settings.venue)
    logger.info("  Instrumentos: %s", ", ".join(settings.instruments))
    logger.info("  Estrategia: %s, periodo %s min", settings.strategy_kind, settings.period_minutes)
    logger.info("  Trading: %s", "ACTIVADO" if settings.can_trade else "solo señales")
    logger.info("=" * 60)

    traders = container.traders
    init_routes(traders)

    started = []
    for trader in traders.values():
        await trader.start()
        started.append(trader)

    logger.info("✓ %d traders iniciados", len(started))

    yield

    # ── SHUTDOWN ──
    logger.info("Iniciando shutdown...")
    for trader in reversed(started):
        await trader.stop()
    await container.event_bus.unsubscribe_all()
    container.close()
    logger.info("✓ Shutdown completo")


# ─── FastAPI App ────────────────────────────────────────────────────────

app = FastAPI(
    title="TrendPulse",
    description="Señales técnicas y gestión de posiciones acotada por riesgo",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
