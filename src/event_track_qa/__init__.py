from event_track_qa.config.logging_config import setup_logging

# Initialize logging once for the entire package
setup_logging()
# setup_logging(level=logging.DEBUG)
