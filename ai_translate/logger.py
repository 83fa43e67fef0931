import logging
import os
from pathlib import Path

LOG_DIR = Path(os.environ.get("AI_TRANSLATE_LOG_DIR") or Path(__file__).parent.parent / "logs")
LOG_FILE = LOG_DIR / "app.log"

LOG_MODES = ("off", "info", "debug")

# Cache for log mode to avoid repeated config reads
_log_mode_cache = None


def _get_log_mode():
    """Get log mode from the environment, falling back to 'off'."""
    global _log_mode_cache
    if _log_mode_cache is not None:
        return _log_mode_cache

    log_mode = (os.environ.get("AI_TRANSLATE_LOG_MODE") or "off").strip().lower()
    if log_mode not in LOG_MODES:
        log_mode = "off"
    _log_mode_cache = log_mode
    return log_mode


def _levels_for_mode(log_mode):
    if log_mode == 'debug':
        return logging.DEBUG, logging.DEBUG
    if log_mode == 'off':
        # Off mode: a level higher than CRITICAL disables everything
        return logging.CRITICAL + 1, logging.CRITICAL + 1
    return logging.INFO, logging.INFO


def _file_handler(log_format):
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    f_handler = logging.FileHandler(LOG_FILE)
    f_handler.setLevel(logging.DEBUG)
    f_handler.setFormatter(log_format)
    return f_handler


def _apply_mode(logger, log_mode):
    """Bring an already configured logger in line with log_mode."""
    logger_level, console_level = _levels_for_mode(log_mode)
    logger.setLevel(logger_level)
    log_format = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    has_file_handler = any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    has_console_handler = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )

    if log_mode != 'off' and not has_file_handler:
        logger.addHandler(_file_handler(log_format))
    elif log_mode == 'off' and has_file_handler:
        handlers_to_remove = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        for handler in handlers_to_remove:
            handler.close()
            logger.removeHandler(handler)

    if log_mode != 'off' and not has_console_handler:
        c_handler = logging.StreamHandler()
        c_handler.setFormatter(log_format)
        logger.addHandler(c_handler)

    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(console_level)


def set_log_mode(log_mode):
    """Switch log mode and update every logger created by get_logger (call when settings change)."""
    global _log_mode_cache
    log_mode = (log_mode or "off").strip().lower()
    if log_mode not in LOG_MODES:
        raise ValueError(f"Invalid log mode: {log_mode}")
    _log_mode_cache = log_mode

    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        if not logger_name.startswith("ai_translate"):
            continue
        logger = logging.getLogger(logger_name)
        if logger.handlers or getattr(logger, "_ai_translate_managed", False):
            _apply_mode(logger, log_mode)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    log_mode = _get_log_mode()

    logger._ai_translate_managed = True
    _apply_mode(logger, log_mode)
    return logger
