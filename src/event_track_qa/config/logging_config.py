import logging

# Add custom PROGRESS log level (between INFO=20 and WARNING=30)
PROGRESS_LEVEL = 25
logging.addLevelName(PROGRESS_LEVEL, "PROGRESS")


def progress(self, message, *args, **kwargs):
    """Log a progress message at PROGRESS level."""
    if self.isEnabledFor(PROGRESS_LEVEL):
        self._log(PROGRESS_LEVEL, message, args, **kwargs)


# Add the progress method to Logger class
logging.Logger.progress = progress


def log_progress(message):
    """Convenience function to log a progress message."""
    logging.getLogger().progress(message)


def setup_logging(level=logging.INFO, log_file=None):
    """Setup logging configuration for the entire package

    Args:
        level: Logging level for the root logger
        log_file: Optional path of a file that receives a copy of every record

    Returns:
        The configured root logger
    """
    # Matplotlib is chatty about missing fonts when plots are written
    logging.getLogger("matplotlib").setLevel(logging.WARNING)

    # Create formatter
    if level == logging.DEBUG:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

    # Create handlers
    handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    # File handler (optional)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Add our handlers
    for handler in handlers:
        root_logger.addHandler(handler)

    return root_logger


def get_logger(name):
    """Get a logger for a module"""
    return logging.getLogger(name)
