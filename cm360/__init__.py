# cm360/__init__.py
"""Cliente read-mostly da API do Campaign Manager 360 (MCP + REST)."""

__version__ = "1.0.0"
