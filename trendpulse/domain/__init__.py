"""
TrendPulse – Domain Layer
===========================
Entidades, value objects, errores y servicios puros.

REGLA DE DEPENDENCIA:
Esta capa no importa de application/, infrastructure/ ni presentation/.
"""
