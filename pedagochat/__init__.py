"""PedagoChat: knowledge-grounded classroom chat sessions."""

__version__ = "0.3.0"
