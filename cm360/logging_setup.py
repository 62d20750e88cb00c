# cm360/logging_setup.py
from __future__ import annotations

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Handlers instalados por nós carregam este atributo (permite reconfigurar sem duplicar)
_HANDLER_TAG = "_cm360_handler"


def _tag(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, True)
    return handler


def setup_logging(level: str = "INFO", log_file: Optional[str] = None, *, force: bool = False) -> logging.Logger:
    """
    Configura o logger raiz do pacote (stderr + arquivo opcional).

    - Sempre em STDERR: o STDOUT é o canal do transporte MCP via stdio.
    - `log_file` é truncado na primeira configuração do processo (modo "w").
    - Idempotente: chamadas repetidas não duplicam handlers (use force=True para reconfigurar).
    """
    logger = logging.getLogger("cm360")
    logger.setLevel(level.upper())

    ours = [h for h in logger.handlers if getattr(h, _HANDLER_TAG, False)]
    if ours and not force:
        return logger
    for h in ours:
        logger.removeHandler(h)
        h.close()

    fmt = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Console (stderr)
    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(fmt)
    logger.addHandler(_tag(ch))

    # Arquivo de debug (sobrescrito a cada início de processo)
    if log_file:
        fh = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(_tag(fh))

    logger.propagate = False
    logger.debug("Logging configurado (level=%s, arquivo=%s)", level, log_file or "-")
    return logger
