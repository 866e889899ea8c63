"""
TrendPulse – CLI
==================
  trendpulse backtrack --instrument EUR_USD --strategy ichimoku-trend --period 60
  trendpulse serve [--host 0.0.0.0] [--port 8888]
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Optional, Sequence

from trendpulse.application.services.backtrack_simulator import BacktrackResult
from trendpulse.container import init_container
from trendpulse.domain.entities.signal import Signal
from trendpulse.domain.services.strategies import StrategyKind
from trendpulse.shared.config.settings import settings
from trendpulse.shared.logging.logger import get_logger, setup_logging

logger = get_logger("cli")


def format_summary(result: BacktrackResult) -> str:
    """Resumen legible del backtrack: balance y conteo de decisiones."""
    acted = sum(1 for d in result.decision_trace if d.acted)
    by_signal: dict[Signal, int] = {}
    for decision in result.decision_trace:
        by_signal[decision.signal] = by_signal.get(decision.signal, 0) + 1

    lines = [
        f"Instrumento : {result.instrument}",
        f"Estrategia  : {result.strategy_kind}",
        f"Barras      : {result.bars_replayed}",
        f"Balance     : {result.starting_balance:.2f} → {result.final_balance:.2f}",
        f"Ruina       : {'sí' if result.ruined else 'no'}",
        f"Decisiones  : {len(result.decision_trace)} ({acted} ejecutadas)",
        f"Operaciones : {len(result.trades)}",
    ]
    for signal, count in sorted(by_signal.items(), key=lambda kv: kv[0].value):
        lines.append(f"  {signal.value:<12} {count}")
    return "\n".join(lines)


async def run_backtrack(instrument: str, strategy: str, period: float) -> BacktrackResult:
    container = init_container(settings)
    try:
        return await container.backtrack_usecase.run_backtrack(instrument, strategy, period)
    finally:
        container.close()


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="trendpulse", description="TrendPulse")
    parser.add_argument("--log-level", default=settings.log_level, help="Nivel de logging")
    commands = parser.add_subparsers(dest="command", required=True)

    backtrack = commands.add_parser("backtrack", help="Reproducir histórico contra una cuenta sintética")
    backtrack.add_argument(
        "--instrument", default=settings.instruments[0],
        help="Instrumento (EUR_USD, BTC-EUR...)",
    )
    backtrack.add_argument(
        "--strategy", default=settings.strategy_kind,
        choices=[k.value for k in StrategyKind],
        help="Variante de estrategia",
    )
    backtrack.add_argument(
        "--period", type=float, default=settings.period_minutes,
        help="Duración de la vela en minutos",
    )

    serve = commands.add_parser("serve", help="Arrancar traders + API")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "backtrack":
        result = asyncio.run(run_backtrack(args.instrument, args.strategy, args.period))
        print(format_summary(result))
    else:
        import uvicorn

        uvicorn.run("trendpulse.main:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
