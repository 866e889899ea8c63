"""Application services - Orquestación de riesgo y simulación."""
