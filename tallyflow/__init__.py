"""tallyflow: nodo de integración Tally.so para el motor de workflows."""

__version__ = "0.1.0"
